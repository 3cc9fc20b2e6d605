"""Scoring for auto-gradable activities.

Only quizzes are scored here.  Each question is worth an equal share of
max_points; an answer earns the share when it matches the question's
correct answer after stripping surrounding whitespace.  A missing or
blank answer is simply wrong.

Both functions are pure: no I/O, no clock, same inputs give the same
result.
"""

from __future__ import annotations

import math

from coursework.core.errors import ActivityFlowMismatch, InvalidScore
from coursework.models.activity import ActivityDefinition, ActivityKind
from coursework.models.attempt import AnswerRecord


def score_quiz(
    activity: ActivityDefinition,
    answers: tuple[AnswerRecord, ...],
    max_points: float,
) -> float:
    if activity.kind is not ActivityKind.QUIZ:
        raise ActivityFlowMismatch(f"{activity.kind} activities are not auto-scored")
    if not activity.questions:
        return 0.0

    by_index = {r.question_index: r.answer for r in answers}

    correct = 0
    for index, question in enumerate(activity.questions):
        given = by_index.get(index)
        if given is None or question.correct_answer is None:
            continue
        if given.strip() == question.correct_answer.strip():
            correct += 1
    # Divide once so a perfect quiz scores exactly max_points.
    return correct * max_points / activity.question_count


def validate_manual_score(score: float, max_points: float | None) -> float:
    """Check a teacher-entered score against the assignment's range."""
    if not math.isfinite(score):
        raise InvalidScore(f"score must be a finite number (got {score})")
    if score < 0:
        raise InvalidScore(f"score must not be negative (got {score})")
    if max_points is not None and score > max_points:
        raise InvalidScore(f"score must be between 0 and {max_points} (got {score})")
    return score
