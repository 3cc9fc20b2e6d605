from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class NotificationKind(StrEnum):
    NEW_SUBMISSION = "NEW_SUBMISSION"
    GRADED_WORK = "GRADED_WORK"
    ASSIGNMENT_CLOSED = "ASSIGNMENT_CLOSED"


@dataclass(frozen=True, slots=True)
class Notification:
    id: UUID
    kind: NotificationKind
    recipient_id: UUID
    message: str
    link: str
    created_at: datetime
    sender_id: UUID | None = None
    is_read: bool = False

    @staticmethod
    def new(
        *,
        kind: NotificationKind,
        recipient_id: UUID,
        message: str,
        link: str,
        created_at: datetime,
        sender_id: UUID | None = None,
    ) -> Notification:
        return Notification(
            id=uuid4(),
            kind=kind,
            recipient_id=recipient_id,
            sender_id=sender_id,
            message=message,
            link=link,
            created_at=created_at,
        )

    def to_payload(self) -> dict:
        """JSON-safe dict for the task queue."""
        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "recipient_id": str(self.recipient_id),
            "sender_id": str(self.sender_id) if self.sender_id else None,
            "message": self.message,
            "link": self.link,
            "created_at": self.created_at.isoformat(),
        }

    @staticmethod
    def from_payload(payload: dict) -> Notification:
        sender = payload.get("sender_id")
        return Notification(
            id=UUID(payload["id"]),
            kind=NotificationKind(payload["kind"]),
            recipient_id=UUID(payload["recipient_id"]),
            sender_id=UUID(sender) if sender else None,
            message=payload["message"],
            link=payload["link"],
            created_at=datetime.fromisoformat(payload["created_at"]),
        )
