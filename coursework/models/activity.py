from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID, uuid4


class ActivityKind(StrEnum):
    QUIZ = "Quiz"
    OPEN_QUESTIONNAIRE = "OpenQuestionnaire"
    FREEFORM_SUBMISSION = "FreeformSubmission"

    @property
    def is_time_limited(self) -> bool:
        """Kinds that can run under a per-attempt time limit."""
        return self in (ActivityKind.QUIZ, ActivityKind.OPEN_QUESTIONNAIRE)


@dataclass(frozen=True, slots=True)
class Question:
    text: str
    options: tuple[str, ...] = ()
    correct_answer: str | None = None  # Quiz only


@dataclass(frozen=True, slots=True)
class ActivityDefinition:
    id: UUID
    kind: ActivityKind
    title: str
    questions: tuple[Question, ...] = field(default_factory=tuple)
    description: str = ""

    @staticmethod
    def new(
        *,
        kind: ActivityKind,
        title: str,
        questions: tuple[Question, ...] = (),
        description: str = "",
    ) -> ActivityDefinition:
        return ActivityDefinition(
            id=uuid4(),
            kind=kind,
            title=title,
            questions=questions,
            description=description,
        )

    @property
    def question_count(self) -> int:
        return len(self.questions)
