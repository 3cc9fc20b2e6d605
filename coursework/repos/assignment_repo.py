"""AssignmentCatalog: the read-mostly projection of upstream assignments.

Upstream data lives in a deeper hierarchy (group -> learning path ->
module -> theme -> assignment) and may be only partially populated.
The catalog flattens it into an AssignmentRecord and validates it on
the way out, so the lifecycle either gets a complete record or an
explicit ActivityNotResolvable / OwnerResolutionFailure, never a
half-filled object.

The only write the core performs here is set_closed(), and only the
deadline sweeper calls it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol
from uuid import UUID, uuid4

from coursework.core.errors import ActivityNotResolvable, OwnerResolutionFailure
from coursework.models.activity import ActivityDefinition
from coursework.models.assignment import AssignmentRecord, AssignmentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssignmentSource:
    """An assignment as stored upstream; references may be missing."""

    id: UUID
    activity_id: UUID | None
    group_id: UUID | None
    owner_id: UUID | None
    status: AssignmentStatus = AssignmentStatus.DRAFT
    window_start: datetime | None = None
    window_end: datetime | None = None
    attempts_allowed: int | None = None
    time_limit_minutes: int | None = None
    max_points: float | None = None

    @staticmethod
    def from_record(record: AssignmentRecord) -> AssignmentSource:
        return AssignmentSource(
            id=record.id,
            activity_id=record.activity_id,
            group_id=record.group_id,
            owner_id=record.owner_id,
            status=record.status,
            window_start=record.window_start,
            window_end=record.window_end,
            attempts_allowed=record.attempts_allowed,
            time_limit_minutes=record.time_limit_minutes,
            max_points=record.max_points,
        )


@dataclass(frozen=True, slots=True)
class ExpiredAssignment:
    """A sweeper candidate: Open with window_end in the past.

    owner_id stays optional here: a candidate with no resolvable owner
    is still closed, it just cannot be announced to anyone.
    """

    id: UUID
    owner_id: UUID | None
    activity_title: str
    window_end: datetime


def project_assignment(
    source: AssignmentSource, activity: ActivityDefinition | None
) -> AssignmentRecord:
    """Build the flat record, failing eagerly on incomplete references."""
    if activity is None:
        logger.error(
            "Assignment %s references unresolvable activity %s",
            source.id,
            source.activity_id,
            extra={"assignment_id": str(source.id)},
        )
        raise ActivityNotResolvable(source.id, source.activity_id)
    if source.group_id is None or source.owner_id is None:
        logger.error(
            "Assignment %s has no resolvable group/owner (group=%s owner=%s)",
            source.id,
            source.group_id,
            source.owner_id,
            extra={"assignment_id": str(source.id)},
        )
        raise OwnerResolutionFailure(source.id)

    return AssignmentRecord(
        id=source.id,
        activity_id=activity.id,
        group_id=source.group_id,
        owner_id=source.owner_id,
        activity_kind=activity.kind,
        activity_title=activity.title,
        status=source.status,
        window_start=source.window_start,
        window_end=source.window_end,
        attempts_allowed=source.attempts_allowed,
        time_limit_minutes=source.time_limit_minutes,
        max_points=source.max_points,
    )


class AssignmentCatalog(Protocol):
    async def load_assignment(self, assignment_id: UUID) -> AssignmentRecord | None: ...
    async def load_activity(self, activity_id: UUID) -> ActivityDefinition | None: ...
    async def list_expired_open(self, now: datetime) -> list[ExpiredAssignment]: ...
    async def set_closed(self, assignment_id: UUID) -> bool: ...


class InMemoryAssignmentCatalog:
    def __init__(self) -> None:
        self._sources: dict[UUID, AssignmentSource] = {}
        self._activities: dict[UUID, ActivityDefinition] = {}

    # --- seeding (upstream's job in production) ---

    def add_activity(self, activity: ActivityDefinition) -> None:
        self._activities[activity.id] = activity

    def add(self, record: AssignmentRecord) -> None:
        self._sources[record.id] = AssignmentSource.from_record(record)

    def add_source(self, source: AssignmentSource) -> None:
        self._sources[source.id] = source

    def new_partial(self, **fields) -> AssignmentSource:
        """Seed an assignment with missing references (upstream data gap)."""
        source = AssignmentSource(
            id=uuid4(),
            activity_id=fields.pop("activity_id", None),
            group_id=fields.pop("group_id", None),
            owner_id=fields.pop("owner_id", None),
            **fields,
        )
        self._sources[source.id] = source
        return source

    def set_status(self, assignment_id: UUID, status: AssignmentStatus) -> None:
        """Manual open/close toggle; outside the core, used to set up scenarios."""
        source = self._sources.get(assignment_id)
        if source is None:
            raise KeyError("assignment not found")
        self._sources[assignment_id] = replace(source, status=status)

    def clear(self) -> None:
        self._sources.clear()
        self._activities.clear()

    # --- AssignmentCatalog ---

    async def load_assignment(self, assignment_id: UUID) -> AssignmentRecord | None:
        source = self._sources.get(assignment_id)
        if source is None:
            return None
        activity = (
            self._activities.get(source.activity_id)
            if source.activity_id is not None
            else None
        )
        return project_assignment(source, activity)

    async def load_activity(self, activity_id: UUID) -> ActivityDefinition | None:
        return self._activities.get(activity_id)

    async def list_expired_open(self, now: datetime) -> list[ExpiredAssignment]:
        expired = []
        for s in self._sources.values():
            if s.status is not AssignmentStatus.OPEN or s.window_end is None:
                continue
            if s.window_end > now:
                continue
            activity = self._activities.get(s.activity_id) if s.activity_id else None
            expired.append(
                ExpiredAssignment(
                    id=s.id,
                    owner_id=s.owner_id,
                    activity_title=activity.title if activity else "",
                    window_end=s.window_end,
                )
            )
        return sorted(expired, key=lambda e: e.window_end)

    async def set_closed(self, assignment_id: UUID) -> bool:
        source = self._sources.get(assignment_id)
        if source is None or source.status is not AssignmentStatus.OPEN:
            return False
        self._sources[assignment_id] = replace(source, status=AssignmentStatus.CLOSED)
        return True
