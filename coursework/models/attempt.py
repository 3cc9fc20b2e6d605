from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import assert_never
from uuid import UUID, uuid4

from coursework.models.activity import ActivityKind


class AttemptState(StrEnum):
    IN_PROGRESS = "InProgress"
    COMPLETED_BY_USER = "CompletedByUser"
    COMPLETED_BY_TIMEOUT = "CompletedByTimeout"
    AUTO_SAVED_ON_CLOSURE = "AutoSavedOnClosure"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptState.IN_PROGRESS


TERMINAL_STATES = frozenset(s for s in AttemptState if s.is_terminal)


class SubmissionState(StrEnum):
    PENDING = "Pending"
    SUBMITTED = "Submitted"
    GRADED = "Graded"


# ---------------------------------------------------------------------------
# Answers: one variant per ActivityKind
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AnswerRecord:
    question_index: int
    answer: str | None = None


@dataclass(frozen=True, slots=True)
class QuizAnswers:
    records: tuple[AnswerRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class QuestionnaireAnswers:
    records: tuple[AnswerRecord, ...] = ()


@dataclass(frozen=True, slots=True)
class WorkSubmission:
    work_link: str | None = None


AttemptAnswers = QuizAnswers | QuestionnaireAnswers | WorkSubmission


def answers_to_json(answers: AttemptAnswers | None) -> dict | None:
    """Serialize an answers variant for a JSON column."""
    match answers:
        case None:
            return None
        case QuizAnswers(records=records):
            return {"kind": ActivityKind.QUIZ.value, "records": _records_out(records)}
        case QuestionnaireAnswers(records=records):
            return {
                "kind": ActivityKind.OPEN_QUESTIONNAIRE.value,
                "records": _records_out(records),
            }
        case WorkSubmission(work_link=link):
            return {"kind": ActivityKind.FREEFORM_SUBMISSION.value, "work_link": link}
        case _:
            assert_never(answers)


def answers_from_json(data: dict | None) -> AttemptAnswers | None:
    if not data:
        return None
    kind = ActivityKind(data["kind"])
    match kind:
        case ActivityKind.QUIZ:
            return QuizAnswers(records=_records_in(data.get("records", [])))
        case ActivityKind.OPEN_QUESTIONNAIRE:
            return QuestionnaireAnswers(records=_records_in(data.get("records", [])))
        case ActivityKind.FREEFORM_SUBMISSION:
            return WorkSubmission(work_link=data.get("work_link"))
        case _:
            assert_never(kind)


def _records_out(records: tuple[AnswerRecord, ...]) -> list[dict]:
    return [{"question_index": r.question_index, "answer": r.answer} for r in records]


def _records_in(raw: list[dict]) -> tuple[AnswerRecord, ...]:
    return tuple(
        AnswerRecord(question_index=int(r["question_index"]), answer=r.get("answer"))
        for r in raw
    )


# ---------------------------------------------------------------------------
# Attempt
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Attempt:
    id: UUID
    assignment_id: UUID
    student_id: UUID
    group_id: UUID
    owner_id: UUID
    attempt_number: int
    started_at: datetime
    attempt_state: AttemptState = AttemptState.IN_PROGRESS
    submission_state: SubmissionState = SubmissionState.PENDING
    submitted_at: datetime | None = None
    is_late: bool = False
    timed_out: bool = False
    score: float | None = None
    answers: AttemptAnswers | None = None
    feedback: str | None = None
    graded_at: datetime | None = None
    version: int = 1

    @staticmethod
    def new(
        *,
        assignment_id: UUID,
        student_id: UUID,
        group_id: UUID,
        owner_id: UUID,
        attempt_number: int,
        started_at: datetime,
    ) -> Attempt:
        return Attempt(
            id=uuid4(),
            assignment_id=assignment_id,
            student_id=student_id,
            group_id=group_id,
            owner_id=owner_id,
            attempt_number=attempt_number,
            started_at=started_at,
        )

    @property
    def is_in_progress(self) -> bool:
        return self.attempt_state is AttemptState.IN_PROGRESS

    def belongs_to(self, assignment_id: UUID, student_id: UUID) -> bool:
        return self.assignment_id == assignment_id and self.student_id == student_id


# ---------------------------------------------------------------------------
# What begin() hands back to the student
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class QuestionView:
    """A question as shown to the student: never includes the correct answer."""

    index: int
    text: str
    options: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AttemptHandle:
    attempt: Attempt
    time_limit_minutes: int | None
    resumed: bool
    attempts_used: int
    questions: tuple[QuestionView, ...] = field(default_factory=tuple)

    @property
    def deadline(self) -> datetime | None:
        if self.time_limit_minutes is None:
            return None
        return self.attempt.started_at + timedelta(minutes=self.time_limit_minutes)
