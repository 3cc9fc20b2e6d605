from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from coursework.core.errors import DuplicateAttemptError, StaleAttemptError
from coursework.models.attempt import Attempt


class AttemptStore(Protocol):
    async def find_in_progress(
        self, assignment_id: UUID, student_id: UUID
    ) -> Attempt | None: ...
    async def count_terminal(self, assignment_id: UUID, student_id: UUID) -> int: ...
    async def create(self, attempt: Attempt) -> Attempt: ...
    async def load_by_id(self, attempt_id: UUID) -> Attempt | None: ...
    async def save(self, attempt: Attempt) -> Attempt: ...


class InMemoryAttemptRepo:
    """Dict-backed AttemptStore.

    Each method runs without an await, so on a single event loop every
    call is atomic; that is what makes the uniqueness and version checks
    below safe without a lock.
    """

    def __init__(self) -> None:
        self._by_id: dict[UUID, Attempt] = {}

    async def find_in_progress(
        self, assignment_id: UUID, student_id: UUID
    ) -> Attempt | None:
        for a in self._by_id.values():
            if a.belongs_to(assignment_id, student_id) and a.is_in_progress:
                return a
        return None

    async def count_terminal(self, assignment_id: UUID, student_id: UUID) -> int:
        return sum(
            1
            for a in self._by_id.values()
            if a.belongs_to(assignment_id, student_id)
            and a.attempt_state.is_terminal
        )

    async def create(self, attempt: Attempt) -> Attempt:
        for existing in self._by_id.values():
            if not existing.belongs_to(attempt.assignment_id, attempt.student_id):
                continue
            if existing.is_in_progress and attempt.is_in_progress:
                raise DuplicateAttemptError("an in-progress attempt already exists")
            if existing.attempt_number == attempt.attempt_number:
                raise DuplicateAttemptError(
                    f"attempt number {attempt.attempt_number} already used"
                )
        stored = replace(attempt, version=1)
        self._by_id[stored.id] = stored
        return stored

    async def load_by_id(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def save(self, attempt: Attempt) -> Attempt:
        current = self._by_id.get(attempt.id)
        if current is None:
            raise KeyError("attempt not found")
        if current.version != attempt.version:
            raise StaleAttemptError(attempt.id, attempt.version)

        updated = replace(attempt, version=attempt.version + 1)
        self._by_id[attempt.id] = updated
        return updated

    def all(self) -> list[Attempt]:
        return list(self._by_id.values())
