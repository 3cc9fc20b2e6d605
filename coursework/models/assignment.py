from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from coursework.models.activity import ActivityKind


class AssignmentStatus(StrEnum):
    DRAFT = "Draft"
    OPEN = "Open"
    CLOSED = "Closed"


@dataclass(frozen=True, slots=True)
class AssignmentRecord:
    """Flat projection of an assignment, built by the AssignmentCatalog.

    The upstream content hierarchy (group -> path -> module -> theme ->
    assignment) is already resolved: group_id and owner_id are plain
    values, never something the lifecycle has to walk to.
    """

    id: UUID
    activity_id: UUID
    group_id: UUID
    owner_id: UUID
    activity_kind: ActivityKind
    status: AssignmentStatus = AssignmentStatus.DRAFT
    activity_title: str = ""
    window_start: datetime | None = None
    window_end: datetime | None = None
    attempts_allowed: int | None = None  # None = unlimited
    time_limit_minutes: int | None = None  # None = untimed
    max_points: float | None = None

    @staticmethod
    def new(
        *,
        activity_id: UUID,
        group_id: UUID,
        owner_id: UUID,
        activity_kind: ActivityKind,
        status: AssignmentStatus = AssignmentStatus.DRAFT,
        activity_title: str = "",
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        attempts_allowed: int | None = None,
        time_limit_minutes: int | None = None,
        max_points: float | None = None,
    ) -> AssignmentRecord:
        return AssignmentRecord(
            id=uuid4(),
            activity_id=activity_id,
            group_id=group_id,
            owner_id=owner_id,
            activity_kind=activity_kind,
            status=status,
            activity_title=activity_title,
            window_start=window_start,
            window_end=window_end,
            attempts_allowed=attempts_allowed,
            time_limit_minutes=time_limit_minutes,
            max_points=max_points,
        )

    @property
    def uses_timed_flow(self) -> bool:
        """Timed flow = begin then submit; everything else submits in one call."""
        return self.time_limit_minutes is not None and self.activity_kind.is_time_limited

    def attempts_exhausted(self, completed_count: int) -> bool:
        return (
            self.attempts_allowed is not None
            and completed_count >= self.attempts_allowed
        )

    def is_past_deadline(self, moment: datetime) -> bool:
        return self.window_end is not None and moment > self.window_end
