from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

from coursework.models.notification import Notification, NotificationKind
from coursework.repos.notification_repo import InMemoryNotificationRepo
from tests.conftest import T0


def _note(recipient, minutes: int = 0) -> Notification:
    return Notification.new(
        kind=NotificationKind.GRADED_WORK,
        recipient_id=recipient,
        message="Your work has been graded",
        link="/assignments/x",
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_inbox_lists_newest_first_for_one_recipient() -> None:
    repo = InMemoryNotificationRepo()
    me, other = uuid4(), uuid4()
    older, newer = _note(me, 0), _note(me, 5)

    async def _go():
        for n in (older, newer, _note(other)):
            await repo.add(n)
        return await repo.list_for_recipient(me)

    assert asyncio.run(_go()) == [newer, older]


def test_redelivered_notification_is_stored_once() -> None:
    repo = InMemoryNotificationRepo()
    me = uuid4()
    note = _note(me)

    async def _go():
        await repo.add(note)
        await repo.add(Notification.from_payload(note.to_payload()))
        return await repo.list_for_recipient(me)

    assert asyncio.run(_go()) == [note]
