"""Deadline sweeper: closes Open assignments whose window_end has passed.

One tick:

  1. Ask the catalog for every Open assignment with window_end <= now.
  2. For each, independently: flip it to Closed, then tell the owner.

A candidate that fails (store error, notification error) is logged and
counted; the tick carries on with the rest.  The sweeper never touches
attempts.  Students still working when the assignment closes find out
on their next submit, which records the attempt as AutoSavedOnClosure.

The sweeper holds no state of its own, so tests call tick() directly
with a FrozenClock instead of waiting for a timer.  The worker process
owns the timer (run_forever).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

from coursework.core.clock import Clock, system_clock
from coursework.core.metrics import (
    SWEEPER_CLOSED,
    SWEEPER_FAILURES,
    SWEEPER_TICK_DURATION,
)
from coursework.models.notification import NotificationKind
from coursework.repos.assignment_repo import AssignmentCatalog, ExpiredAssignment
from coursework.services.notifications import NotificationPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SweepReport:
    closed: tuple[UUID, ...] = field(default_factory=tuple)
    failed: tuple[UUID, ...] = field(default_factory=tuple)


class DeadlineSweeper:
    def __init__(
        self,
        *,
        catalog: AssignmentCatalog,
        notifier: NotificationPort,
        clock: Clock = system_clock,
    ) -> None:
        self._catalog = catalog
        self._notifier = notifier
        self._clock = clock

    async def tick(self) -> SweepReport:
        with SWEEPER_TICK_DURATION.time():
            now = self._clock.now()
            candidates = await self._catalog.list_expired_open(now)
            if candidates:
                logger.info("Sweeper found %d expired assignment(s)", len(candidates))

            closed: list[UUID] = []
            failed: list[UUID] = []
            for candidate in candidates:
                try:
                    if await self._close(candidate):
                        closed.append(candidate.id)
                except Exception:
                    SWEEPER_FAILURES.inc()
                    failed.append(candidate.id)
                    logger.exception(
                        "Failed to close assignment %s",
                        candidate.id,
                        extra={"assignment_id": str(candidate.id)},
                    )
        return SweepReport(closed=tuple(closed), failed=tuple(failed))

    async def _close(self, candidate: ExpiredAssignment) -> bool:
        if not await self._catalog.set_closed(candidate.id):
            logger.info("Assignment %s was already closed", candidate.id)
            return False

        SWEEPER_CLOSED.inc()
        logger.info(
            "Closed assignment %s (deadline %s)",
            candidate.id,
            candidate.window_end.isoformat(),
            extra={"assignment_id": str(candidate.id)},
        )

        if candidate.owner_id is None:
            logger.warning(
                "Assignment %s has no owner; closure not announced",
                candidate.id,
                extra={"assignment_id": str(candidate.id)},
            )
            return True

        self._notifier.emit(
            NotificationKind.ASSIGNMENT_CLOSED,
            recipient_id=candidate.owner_id,
            message=f"The assignment '{candidate.activity_title}' has been closed (deadline passed)",
            link=f"/assignments/{candidate.id}",
        )
        return True

    async def run_forever(self, interval_seconds: float) -> None:
        await run_periodically(self.tick, interval_seconds)


async def run_periodically(
    tick: Callable[[], Awaitable[SweepReport]], interval_seconds: float
) -> None:
    """Call tick() every interval until cancelled.

    A tick that raises (typically the candidate query itself) is logged
    and the loop waits for the next interval.
    """
    logger.info("Deadline sweeper running every %ss", interval_seconds)
    while True:
        try:
            report = await tick()
            if report.failed:
                logger.warning(
                    "Sweep closed %d, failed %d", len(report.closed), len(report.failed)
                )
        except Exception:
            logger.exception("Sweeper tick failed")
        await asyncio.sleep(interval_seconds)
