from __future__ import annotations

import math

import pytest

from coursework.core.errors import ActivityFlowMismatch, InvalidScore
from coursework.models.activity import ActivityKind, Question
from coursework.models.attempt import AnswerRecord
from coursework.services.scoring import score_quiz, validate_manual_score
from tests.conftest import make_activity


def _answers(*values: str | None) -> tuple[AnswerRecord, ...]:
    return tuple(AnswerRecord(question_index=i, answer=v) for i, v in enumerate(values))


def test_three_of_four_correct_out_of_100() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    assert score_quiz(quiz, _answers("4", "Paris", "water", "Mars"), 100) == 75


def test_two_of_four_correct_out_of_20() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    assert score_quiz(quiz, _answers("4", "Paris", "salt", "Mars"), 20) == 10


def test_missing_and_blank_answers_are_wrong_not_errors() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    answers = (AnswerRecord(question_index=1, answer="Paris"),)
    assert score_quiz(quiz, answers, 100) == 25
    assert score_quiz(quiz, _answers(None, None, None, None), 100) == 0
    assert score_quiz(quiz, (), 100) == 0


def test_answers_match_by_index_not_position() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    answers = (
        AnswerRecord(question_index=3, answer="Jupiter"),
        AnswerRecord(question_index=0, answer="4"),
    )
    assert score_quiz(quiz, answers, 100) == 50


def test_surrounding_whitespace_is_ignored_but_case_is_not() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    assert score_quiz(quiz, _answers(" 4 ", "paris", None, None), 100) == 25


def test_question_without_correct_answer_never_scores() -> None:
    quiz = make_activity(
        ActivityKind.QUIZ,
        questions=(Question(text="Opinion?"), Question(text="1+1", correct_answer="2")),
    )
    assert score_quiz(quiz, _answers("anything", "2"), 10) == 5


def test_scoring_is_pure() -> None:
    quiz = make_activity(ActivityKind.QUIZ)
    answers = _answers("4", "Rome", "water", "Jupiter")
    assert {score_quiz(quiz, answers, 40) for _ in range(5)} == {30}


def test_quiz_without_questions_scores_zero() -> None:
    quiz = make_activity(ActivityKind.QUIZ, questions=())
    assert score_quiz(quiz, (), 100) == 0


def test_non_quiz_is_never_auto_scored() -> None:
    questionnaire = make_activity(ActivityKind.OPEN_QUESTIONNAIRE)
    with pytest.raises(ActivityFlowMismatch):
        score_quiz(questionnaire, _answers("x", "y"), 10)


@pytest.mark.parametrize("score", [0, 5, 10])
def test_manual_score_within_range(score: float) -> None:
    assert validate_manual_score(score, 10) == score


@pytest.mark.parametrize("score", [-0.5, 10.01])
def test_manual_score_outside_range(score: float) -> None:
    with pytest.raises(InvalidScore, match="got"):
        validate_manual_score(score, 10)


def test_manual_score_without_max_points_only_needs_to_be_non_negative() -> None:
    assert validate_manual_score(250, None) == 250
    with pytest.raises(InvalidScore):
        validate_manual_score(-1, None)


def _numbered_quiz(count: int):
    return make_activity(
        ActivityKind.QUIZ,
        questions=tuple(
            Question(text=f"{i} + 1", options=(str(i + 1), "0"), correct_answer=str(i + 1))
            for i in range(count)
        ),
    )


@pytest.mark.parametrize(
    "count, max_points", [(3, 10), (6, 100), (7, 100), (9, 10), (11, 3.5)]
)
def test_perfect_quiz_scores_exactly_max_points(count: int, max_points: float) -> None:
    quiz = _numbered_quiz(count)
    answers = _answers(*(str(i + 1) for i in range(count)))
    assert score_quiz(quiz, answers, max_points) == max_points


def test_partial_score_never_exceeds_max_points() -> None:
    quiz = _numbered_quiz(6)
    for correct in range(7):
        answers = _answers(*(str(i + 1) if i < correct else "0" for i in range(6)))
        assert 0 <= score_quiz(quiz, answers, 100) <= 100


@pytest.mark.parametrize("score", [math.nan, math.inf, -math.inf])
def test_manual_score_must_be_finite(score: float) -> None:
    with pytest.raises(InvalidScore, match="finite"):
        validate_manual_score(score, 10)
    with pytest.raises(InvalidScore, match="finite"):
        validate_manual_score(score, None)
