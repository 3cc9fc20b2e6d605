"""NotificationPort: fire-and-forget event emission.

The lifecycle and the sweeper decide *whether* and *what* to notify;
delivery is somebody else's problem.  emit() is a plain synchronous
call that schedules the dispatch as a background asyncio task and
returns immediately, so a slow or broken Redis can never delay or fail
a submission.  The outcome of each dispatch is logged and counted in
notifications_total{kind, result}.

Implementations:

  QueuedNotificationPort   pushes the notification onto the "notifications"
                           task queue; the worker persists it.
  InMemoryNotificationPort keeps what was emitted in a list (tests).

drain() awaits every dispatch still in flight.  Tests call it before
asserting; the worker calls it before shutting down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable
from uuid import UUID

from coursework.core.clock import Clock, system_clock
from coursework.core.metrics import NOTIFICATIONS
from coursework.models.notification import Notification, NotificationKind
from coursework.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)

NOTIFICATIONS_QUEUE = "notifications"


@runtime_checkable
class NotificationPort(Protocol):
    def emit(
        self,
        kind: NotificationKind,
        recipient_id: UUID,
        message: str,
        link: str,
        sender_id: UUID | None = None,
    ) -> None: ...

    async def drain(self) -> None: ...


class _BackgroundNotifier:
    """Shared scheduling; subclasses implement _dispatch()."""

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    async def _dispatch(self, notification: Notification) -> None:
        raise NotImplementedError

    def emit(
        self,
        kind: NotificationKind,
        recipient_id: UUID,
        message: str,
        link: str,
        sender_id: UUID | None = None,
    ) -> None:
        notification = Notification.new(
            kind=kind,
            recipient_id=recipient_id,
            sender_id=sender_id,
            message=message,
            link=link,
            created_at=self._clock.now(),
        )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; dropping %s notification for %s",
                kind,
                recipient_id,
            )
            NOTIFICATIONS.labels(kind=kind.value, result="failed").inc()
            return

        task = loop.create_task(self._dispatch(notification))
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                logger.warning("%s notification %s cancelled", kind, notification.id)
                NOTIFICATIONS.labels(kind=kind.value, result="failed").inc()
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    "Failed to dispatch %s notification to %s",
                    kind,
                    recipient_id,
                    exc_info=exc,
                )
                NOTIFICATIONS.labels(kind=kind.value, result="failed").inc()
                return
            NOTIFICATIONS.labels(kind=kind.value, result="dispatched").inc()

        task.add_done_callback(_done)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._pending)


class QueuedNotificationPort(_BackgroundNotifier):
    def __init__(self, queue: TaskQueue, clock: Clock = system_clock) -> None:
        super().__init__(clock)
        self._queue = queue

    async def _dispatch(self, notification: Notification) -> None:
        task = await self._queue.enqueue(NOTIFICATIONS_QUEUE, notification.to_payload())
        logger.debug(
            "Enqueued %s notification %s as task %s",
            notification.kind,
            notification.id,
            task.id,
        )


class InMemoryNotificationPort(_BackgroundNotifier):
    """Records emitted notifications.  Set `fail_with` to simulate outages."""

    def __init__(self, clock: Clock = system_clock) -> None:
        super().__init__(clock)
        self.sent: list[Notification] = []
        self.fail_with: Exception | None = None

    async def _dispatch(self, notification: Notification) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(notification)

    def sent_to(self, recipient_id: UUID) -> list[Notification]:
        return [n for n in self.sent if n.recipient_id == recipient_id]

    def clear(self) -> None:
        self.sent.clear()
        self.fail_with = None
