"""PostgreSQL implementation of AssignmentCatalog."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coursework.db.tables import ActivityRow, AssignmentRow
from coursework.models.activity import ActivityDefinition, ActivityKind, Question
from coursework.models.assignment import AssignmentRecord, AssignmentStatus
from coursework.repos.assignment_repo import (
    AssignmentSource,
    ExpiredAssignment,
    project_assignment,
)


class PgAssignmentCatalog:
    """Satisfies the AssignmentCatalog Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def load_assignment(self, assignment_id: UUID) -> AssignmentRecord | None:
        stmt = (
            select(AssignmentRow, ActivityRow)
            .outerjoin(ActivityRow, ActivityRow.id == AssignmentRow.activity_id)
            .where(AssignmentRow.id == assignment_id)
        )
        result = (await self._session.execute(stmt)).one_or_none()
        if result is None:
            return None
        assignment_row, activity_row = result
        activity = _row_to_activity(activity_row) if activity_row is not None else None
        return project_assignment(_row_to_source(assignment_row), activity)

    async def load_activity(self, activity_id: UUID) -> ActivityDefinition | None:
        stmt = select(ActivityRow).where(ActivityRow.id == activity_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_activity(row)

    async def list_expired_open(self, now: datetime) -> list[ExpiredAssignment]:
        stmt = (
            select(
                AssignmentRow.id,
                AssignmentRow.owner_id,
                AssignmentRow.window_end,
                ActivityRow.title,
            )
            .outerjoin(ActivityRow, ActivityRow.id == AssignmentRow.activity_id)
            .where(
                AssignmentRow.status == AssignmentStatus.OPEN.value,
                AssignmentRow.window_end.is_not(None),
                AssignmentRow.window_end <= now,
            )
            .order_by(AssignmentRow.window_end)
        )
        rows = (await self._session.execute(stmt)).all()
        return [
            ExpiredAssignment(
                id=r.id,
                owner_id=r.owner_id,
                activity_title=r.title or "",
                window_end=r.window_end,
            )
            for r in rows
        ]

    async def set_closed(self, assignment_id: UUID) -> bool:
        # Savepoint per assignment: a failure here rolls back this
        # candidate only, not the sweeper's whole tick.
        async with self._session.begin_nested():
            stmt = (
                update(AssignmentRow)
                .where(
                    AssignmentRow.id == assignment_id,
                    AssignmentRow.status == AssignmentStatus.OPEN.value,
                )
                .values(status=AssignmentStatus.CLOSED.value)
            )
            result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_source(row: AssignmentRow) -> AssignmentSource:
    return AssignmentSource(
        id=row.id,
        activity_id=row.activity_id,
        group_id=row.group_id,
        owner_id=row.owner_id,
        status=AssignmentStatus(row.status),
        window_start=row.window_start,
        window_end=row.window_end,
        attempts_allowed=row.attempts_allowed,
        time_limit_minutes=row.time_limit_minutes,
        max_points=row.max_points,
    )


def _row_to_activity(row: ActivityRow) -> ActivityDefinition:
    return ActivityDefinition(
        id=row.id,
        kind=ActivityKind(row.kind),
        title=row.title,
        description=row.description or "",
        questions=tuple(
            Question(
                text=q["text"],
                options=tuple(q.get("options") or ()),
                correct_answer=q.get("correct_answer"),
            )
            for q in row.questions or ()
        ),
    )
