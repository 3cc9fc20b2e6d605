from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import coursework` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursework import worker  # noqa: E402
from coursework.api import dependencies  # noqa: E402
from coursework.core.clock import FrozenClock  # noqa: E402
from coursework.main import app  # noqa: E402
from coursework.models.activity import ActivityDefinition, ActivityKind, Question  # noqa: E402
from coursework.models.assignment import AssignmentRecord, AssignmentStatus  # noqa: E402
from coursework.repos.access_gate import InMemoryAccessGate  # noqa: E402
from coursework.repos.assignment_repo import InMemoryAssignmentCatalog  # noqa: E402
from coursework.repos.attempt_repo import InMemoryAttemptRepo  # noqa: E402
from coursework.services import token_service  # noqa: E402
from coursework.services.attempt_lifecycle import AttemptLifecycle  # noqa: E402
from coursework.services.deadline_sweeper import DeadlineSweeper  # noqa: E402
from coursework.services.notifications import InMemoryNotificationPort  # noqa: E402
from coursework.services.task_queue import task_queue  # noqa: E402

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

QUIZ_QUESTIONS = (
    Question(text="2 + 2", options=("3", "4", "5"), correct_answer="4"),
    Question(text="Capital of France", options=("Paris", "Rome"), correct_answer="Paris"),
    Question(text="H2O is", options=("water", "salt"), correct_answer="water"),
    Question(text="Largest planet", options=("Mars", "Jupiter"), correct_answer="Jupiter"),
)


# ---------------------------------------------------------------------------
# Global state resets (module-level in-memory stores used by the API)
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_attempt_state() -> None:
    dependencies.attempt_repo._by_id.clear()
    dependencies.catalog.clear()
    dependencies.access_gate.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_worker_state() -> None:
    worker.notification_repo.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: UUID | str | None = None,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id or uuid4()), roles=roles)


def auth(user_id: UUID | str, roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user_id, roles)}"}


@pytest.fixture
def admin_token() -> str:
    return mint_token(roles=["admin"])


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------


def make_activity(
    kind: ActivityKind = ActivityKind.QUIZ,
    questions: tuple[Question, ...] | None = None,
    title: str = "Week 3 check-in",
) -> ActivityDefinition:
    if questions is None:
        questions = {
            ActivityKind.QUIZ: QUIZ_QUESTIONS,
            ActivityKind.OPEN_QUESTIONNAIRE: (
                Question(text="Explain recursion"),
                Question(text="Give an example"),
            ),
            ActivityKind.FREEFORM_SUBMISSION: (),
        }[kind]
    return ActivityDefinition.new(kind=kind, title=title, questions=questions)


def seed_assignment(
    catalog: InMemoryAssignmentCatalog,
    activity: ActivityDefinition,
    *,
    owner_id: UUID | None = None,
    group_id: UUID | None = None,
    status: AssignmentStatus = AssignmentStatus.OPEN,
    **policy,
) -> AssignmentRecord:
    catalog.add_activity(activity)
    record = AssignmentRecord.new(
        activity_id=activity.id,
        group_id=group_id or uuid4(),
        owner_id=owner_id or uuid4(),
        activity_kind=activity.kind,
        activity_title=activity.title,
        status=status,
        **policy,
    )
    catalog.add(record)
    return record


# ---------------------------------------------------------------------------
# Service-level world: fresh in-memory collaborators and a frozen clock
# ---------------------------------------------------------------------------


@dataclass
class World:
    clock: FrozenClock
    attempts: InMemoryAttemptRepo
    catalog: InMemoryAssignmentCatalog
    access: InMemoryAccessGate
    notifier: InMemoryNotificationPort
    lifecycle: AttemptLifecycle = field(init=False)
    sweeper: DeadlineSweeper = field(init=False)

    def __post_init__(self) -> None:
        self.lifecycle = AttemptLifecycle(
            attempts=self.attempts,
            catalog=self.catalog,
            access=self.access,
            notifier=self.notifier,
            clock=self.clock,
        )
        self.sweeper = DeadlineSweeper(
            catalog=self.catalog, notifier=self.notifier, clock=self.clock
        )

    def assignment(
        self,
        kind: ActivityKind = ActivityKind.QUIZ,
        *,
        members: tuple[UUID, ...] = (),
        questions: tuple[Question, ...] | None = None,
        **policy,
    ) -> AssignmentRecord:
        """Seed an assignment (Open by default) and approve the given members."""
        policy.setdefault("window_start", self.clock.now() - timedelta(days=1))
        policy.setdefault("window_end", self.clock.now() + timedelta(days=7))
        record = seed_assignment(self.catalog, make_activity(kind, questions), **policy)
        for member in members:
            self.access.approve(record.group_id, member)
        return record


@pytest.fixture
def world() -> World:
    clock = FrozenClock(T0)
    catalog = InMemoryAssignmentCatalog()
    return World(
        clock=clock,
        attempts=InMemoryAttemptRepo(),
        catalog=catalog,
        access=InMemoryAccessGate(catalog),
        notifier=InMemoryNotificationPort(clock),
    )


@pytest.fixture
def student() -> UUID:
    return uuid4()
