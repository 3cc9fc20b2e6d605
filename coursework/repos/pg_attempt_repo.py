"""PostgreSQL implementation of AttemptStore.

save() is an optimistic-concurrency UPDATE:

    UPDATE attempts SET ..., version = :v + 1
     WHERE id = :id AND version = :v

Zero rows updated means another writer committed first; the caller gets
StaleAttemptError.  create() relies on the two unique indexes on
`attempts` (one InProgress per pair, one row per attempt number) and
converts the IntegrityError into DuplicateAttemptError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursework.core.errors import DuplicateAttemptError, StaleAttemptError
from coursework.db.tables import AttemptRow
from coursework.models.attempt import (
    TERMINAL_STATES,
    Attempt,
    AttemptState,
    SubmissionState,
    answers_from_json,
    answers_to_json,
)


class PgAttemptRepo:
    """Satisfies the AttemptStore Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_in_progress(
        self, assignment_id: UUID, student_id: UUID
    ) -> Attempt | None:
        stmt = select(AttemptRow).where(
            AttemptRow.assignment_id == assignment_id,
            AttemptRow.student_id == student_id,
            AttemptRow.attempt_state == AttemptState.IN_PROGRESS.value,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_attempt(row)

    async def count_terminal(self, assignment_id: UUID, student_id: UUID) -> int:
        stmt = select(func.count()).where(
            AttemptRow.assignment_id == assignment_id,
            AttemptRow.student_id == student_id,
            AttemptRow.attempt_state.in_([s.value for s in TERMINAL_STATES]),
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def create(self, attempt: Attempt) -> Attempt:
        row = AttemptRow(id=attempt.id, version=1, **_columns(attempt))
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as e:
            raise DuplicateAttemptError(str(e.orig)) from e
        return _row_to_attempt(row)

    async def load_by_id(self, attempt_id: UUID) -> Attempt | None:
        stmt = select(AttemptRow).where(AttemptRow.id == attempt_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_attempt(row)

    async def save(self, attempt: Attempt) -> Attempt:
        stmt = (
            update(AttemptRow)
            .where(AttemptRow.id == attempt.id, AttemptRow.version == attempt.version)
            .values(version=attempt.version + 1, **_columns(attempt))
            .returning(AttemptRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise StaleAttemptError(attempt.id, attempt.version)
        return _row_to_attempt(row)


def _columns(attempt: Attempt) -> dict:
    return {
        "assignment_id": attempt.assignment_id,
        "student_id": attempt.student_id,
        "group_id": attempt.group_id,
        "owner_id": attempt.owner_id,
        "attempt_number": attempt.attempt_number,
        "started_at": attempt.started_at,
        "submitted_at": attempt.submitted_at,
        "attempt_state": attempt.attempt_state.value,
        "submission_state": attempt.submission_state.value,
        "is_late": attempt.is_late,
        "timed_out": attempt.timed_out,
        "score": attempt.score,
        "answers": answers_to_json(attempt.answers),
        "feedback": attempt.feedback,
        "graded_at": attempt.graded_at,
    }


def _row_to_attempt(row: AttemptRow) -> Attempt:
    return Attempt(
        id=row.id,
        assignment_id=row.assignment_id,
        student_id=row.student_id,
        group_id=row.group_id,
        owner_id=row.owner_id,
        attempt_number=row.attempt_number,
        started_at=row.started_at,
        submitted_at=row.submitted_at,
        attempt_state=AttemptState(row.attempt_state),
        submission_state=SubmissionState(row.submission_state),
        is_late=row.is_late,
        timed_out=row.timed_out,
        score=row.score,
        answers=answers_from_json(row.answers),
        feedback=row.feedback,
        graded_at=row.graded_at,
        version=row.version,
    )
