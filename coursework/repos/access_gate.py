from __future__ import annotations

from enum import StrEnum
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursework.db.tables import AssignmentRow, GroupMembershipRow
from coursework.repos.assignment_repo import InMemoryAssignmentCatalog


class MembershipStatus(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class AccessGate(Protocol):
    async def is_approved_member(self, user_id: UUID, group_id: UUID) -> bool: ...
    async def is_owner(self, user_id: UUID, assignment_id: UUID) -> bool: ...


class InMemoryAccessGate:
    def __init__(self, catalog: InMemoryAssignmentCatalog) -> None:
        self._catalog = catalog
        self._store: dict[tuple[UUID, UUID], MembershipStatus] = {}

    def set_status(
        self, group_id: UUID, user_id: UUID, status: MembershipStatus
    ) -> None:
        self._store[(group_id, user_id)] = status

    def approve(self, group_id: UUID, user_id: UUID) -> None:
        self.set_status(group_id, user_id, MembershipStatus.APPROVED)

    def clear(self) -> None:
        self._store.clear()

    async def is_approved_member(self, user_id: UUID, group_id: UUID) -> bool:
        return self._store.get((group_id, user_id)) is MembershipStatus.APPROVED

    async def is_owner(self, user_id: UUID, assignment_id: UUID) -> bool:
        assignment = await self._catalog.load_assignment(assignment_id)
        return assignment is not None and assignment.owner_id == user_id


class PgAccessGate:
    """Reads group_memberships; only an Approved row grants access."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def is_approved_member(self, user_id: UUID, group_id: UUID) -> bool:
        stmt = select(GroupMembershipRow.status).where(
            GroupMembershipRow.group_id == group_id,
            GroupMembershipRow.user_id == user_id,
        )
        status = (await self._session.execute(stmt)).scalar_one_or_none()
        return status == MembershipStatus.APPROVED.value

    async def is_owner(self, user_id: UUID, assignment_id: UUID) -> bool:
        stmt = select(AssignmentRow.owner_id).where(AssignmentRow.id == assignment_id)
        owner_id = (await self._session.execute(stmt)).scalar_one_or_none()
        return owner_id is not None and owner_id == user_id
