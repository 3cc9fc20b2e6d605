"""Clock abstraction.

Every deadline decision in the lifecycle and the sweeper asks a Clock
for "now" instead of calling datetime.now() directly, so tests can pin
time and step it forward (e.g. "submit eleven minutes after begin").

All datetimes are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start if start is not None else datetime.now(UTC)
        if self._now.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self._now = moment

    def advance(self, **delta: float) -> datetime:
        """Move forward by a timedelta, e.g. advance(minutes=11)."""
        self._now = self._now + timedelta(**delta)
        return self._now


system_clock: Clock = SystemClock()
