from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursework.db.tables import NotificationRow
from coursework.models.notification import Notification, NotificationKind


class NotificationRepo(Protocol):
    async def add(self, notification: Notification) -> None: ...
    async def list_for_recipient(self, recipient_id: UUID) -> list[Notification]: ...


class InMemoryNotificationRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, Notification] = {}

    async def add(self, notification: Notification) -> None:
        # Redelivered queue tasks carry the same id; keep the first copy.
        self._store.setdefault(notification.id, notification)

    async def list_for_recipient(self, recipient_id: UUID) -> list[Notification]:
        found = [n for n in self._store.values() if n.recipient_id == recipient_id]
        return sorted(found, key=lambda n: n.created_at, reverse=True)

    def clear(self) -> None:
        self._store.clear()


class PgNotificationRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, notification: Notification) -> None:
        if await self._session.get(NotificationRow, notification.id) is not None:
            return
        self._session.add(
            NotificationRow(
                id=notification.id,
                recipient_id=notification.recipient_id,
                sender_id=notification.sender_id,
                kind=notification.kind.value,
                message=notification.message,
                link=notification.link,
                is_read=notification.is_read,
                created_at=notification.created_at,
            )
        )
        await self._session.flush()

    async def list_for_recipient(self, recipient_id: UUID) -> list[Notification]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.recipient_id == recipient_id)
            .order_by(NotificationRow.created_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_notification(r) for r in rows]


def _row_to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        kind=NotificationKind(row.kind),
        recipient_id=row.recipient_id,
        sender_id=row.sender_id,
        message=row.message,
        link=row.link,
        created_at=row.created_at,
        is_read=row.is_read,
    )
