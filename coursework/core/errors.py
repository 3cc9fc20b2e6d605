"""Error taxonomy for the attempt lifecycle.

Three families, handled differently:

  PolicyViolation
    The request is well-formed but the rules say no: assignment closed,
    attempts used up, attempt already submitted.  Always carries a
    human-readable reason.  Never retried.  The transport maps these
    to 4xx.

  ReferentialIntegrityFailure
    The catalog handed us an incomplete projection (no activity, no
    grading owner).  Should never happen with valid upstream data, so
    it is logged loudly and surfaced as an internal error (5xx).

  Store conflicts (StaleAttemptError, DuplicateAttemptError)
    Raised by AttemptStore implementations when a concurrent writer got
    there first.  The lifecycle translates them; they never reach the
    transport directly.

Notification failures are not represented here: NotificationPort
implementations log and swallow them.
"""

from __future__ import annotations

from uuid import UUID


class CourseworkError(Exception):
    """Base class for every error raised by the coursework core."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


# ---------------------------------------------------------------------------
# Policy violations
# ---------------------------------------------------------------------------


class PolicyViolation(CourseworkError):
    pass


class AssignmentNotFound(PolicyViolation):
    def __init__(self, assignment_id: UUID) -> None:
        super().__init__(f"assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class AttemptNotFound(PolicyViolation):
    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(f"attempt {attempt_id} not found")
        self.attempt_id = attempt_id


class AssignmentNotOpen(PolicyViolation):
    def __init__(self, assignment_id: UUID, status: str) -> None:
        super().__init__(
            f"assignment {assignment_id} is not open for attempts (status: {status})"
        )
        self.assignment_id = assignment_id
        self.status = status


class ActivityFlowMismatch(PolicyViolation):
    pass


class AttemptsExhausted(PolicyViolation):
    def __init__(self, attempts_allowed: int) -> None:
        super().__init__(
            f"maximum number of attempts ({attempts_allowed}) already used"
        )
        self.attempts_allowed = attempts_allowed


class MissingRequiredPayload(PolicyViolation):
    pass


class AlreadyFinalized(PolicyViolation):
    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(f"attempt {attempt_id} has already been submitted")
        self.attempt_id = attempt_id


class NotApprovedMember(PolicyViolation):
    def __init__(self, user_id: UUID, group_id: UUID) -> None:
        super().__init__(f"user {user_id} is not an approved member of the group")
        self.user_id = user_id
        self.group_id = group_id


class AttemptNotOwnedByCaller(PolicyViolation):
    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(f"attempt {attempt_id} does not belong to the caller")
        self.attempt_id = attempt_id


class NotAssignmentOwner(PolicyViolation):
    def __init__(self, user_id: UUID, assignment_id: UUID) -> None:
        super().__init__(f"user {user_id} does not own assignment {assignment_id}")
        self.user_id = user_id
        self.assignment_id = assignment_id


class AttemptStillInProgress(PolicyViolation):
    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(f"attempt {attempt_id} has not been submitted yet")
        self.attempt_id = attempt_id


class InvalidScore(PolicyViolation):
    pass


# ---------------------------------------------------------------------------
# Referential integrity failures
# ---------------------------------------------------------------------------


class ReferentialIntegrityFailure(CourseworkError):
    pass


class ActivityNotResolvable(ReferentialIntegrityFailure):
    def __init__(self, assignment_id: UUID, activity_id: UUID | None) -> None:
        super().__init__(
            f"activity {activity_id} for assignment {assignment_id} could not be resolved"
        )
        self.assignment_id = assignment_id
        self.activity_id = activity_id


class OwnerResolutionFailure(ReferentialIntegrityFailure):
    def __init__(self, assignment_id: UUID) -> None:
        super().__init__(
            f"grading owner or group for assignment {assignment_id} could not be determined"
        )
        self.assignment_id = assignment_id


# ---------------------------------------------------------------------------
# Store conflicts
# ---------------------------------------------------------------------------


class StaleAttemptError(Exception):
    """save() lost an optimistic-concurrency race on this attempt row."""

    def __init__(self, attempt_id: UUID, expected_version: int) -> None:
        super().__init__(
            f"attempt {attempt_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.attempt_id = attempt_id
        self.expected_version = expected_version


class DuplicateAttemptError(Exception):
    """create() would break in-progress or attempt-number uniqueness."""
