"""Background worker process.

RUN:  python -m coursework.worker

Same image as the API, different command.  Two loops run side by side:

  queue consumer   pops tasks from every registered queue and dispatches
                   them to their handler (today: notifications, which
                   are persisted for the recipient's inbox)
  deadline sweeper closes expired assignments every
                   SWEEP_INTERVAL_SECONDS and announces the closure

Run exactly one sweeper per deployment if you want one notification per
closure; set_closed() only reports a change once, so a second worker is
safe but wasted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursework.core.config import SETTINGS
from coursework.core.logging import setup_logging
from coursework.core.metrics import NOTIFICATIONS
from coursework.db.engine import async_session_factory, session_scope
from coursework.models.notification import Notification
from coursework.repos.notification_repo import (
    InMemoryNotificationRepo,
    PgNotificationRepo,
)
from coursework.repos.pg_assignment_repo import PgAssignmentCatalog
from coursework.services.deadline_sweeper import (
    DeadlineSweeper,
    SweepReport,
    run_periodically,
)
from coursework.services.notifications import (
    NOTIFICATIONS_QUEUE,
    QueuedNotificationPort,
)
from coursework.services.task_queue import task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")

# Without DATABASE_URL, delivered notifications land here.
notification_repo = InMemoryNotificationRepo()
notifier = QueuedNotificationPort(task_queue)


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    """Persist a notification so it shows up in the recipient's inbox."""
    notification = Notification.from_payload(payload)
    if async_session_factory is None:
        await notification_repo.add(notification)
    else:
        async with session_scope() as session:
            await PgNotificationRepo(session).add(notification)

    NOTIFICATIONS.labels(kind=notification.kind.value, result="delivered").inc()
    logger.info(
        "Delivered %s notification %s to %s",
        notification.kind,
        notification.id,
        notification.recipient_id,
    )


# ---------------------------------------------------------------------------
# Loops
# ---------------------------------------------------------------------------


async def process_next(queue_name: str, timeout: int = 1) -> bool:
    """Handle at most one task from the queue.  Returns False when it was empty."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # At-most-once: a failed task is logged and dropped.
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_queue_consumer() -> None:
    queues = list(HANDLERS.keys())
    logger.info("Queue consumer listening on: %s", queues)
    while True:
        handled = [await process_next(q) for q in queues]
        if not any(handled):
            # The in-memory queue returns immediately when empty.
            await asyncio.sleep(0.2)


async def sweep_once() -> SweepReport:
    """One sweeper tick in its own transaction."""
    async with session_scope() as session:
        sweeper = DeadlineSweeper(catalog=PgAssignmentCatalog(session), notifier=notifier)
        return await sweeper.tick()


async def run_worker() -> None:
    loops = [run_queue_consumer()]
    if async_session_factory is not None:
        loops.append(run_periodically(sweep_once, SETTINGS.sweep_interval_seconds))
    else:
        logger.warning("No DATABASE_URL configured; deadline sweeper disabled")

    try:
        await asyncio.gather(*loops)
    finally:
        await notifier.drain()


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
