from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller, extracted from a validated bearer token.

    user_id is the JWT subject.  Students and teachers are both plain
    users here; whether someone may attempt or grade an assignment is
    decided by the AccessGate, not by a role claim.  The only role the
    service checks itself is "admin" (manual sweep trigger).
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def user_uuid(self) -> UUID:
        """The subject as a UUID; raises ValueError for non-UUID subjects."""
        return UUID(self.user_id)
