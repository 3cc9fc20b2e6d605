from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from coursework.core.errors import ActivityNotResolvable, OwnerResolutionFailure
from coursework.models.activity import ActivityKind
from coursework.models.assignment import AssignmentStatus
from coursework.repos.access_gate import InMemoryAccessGate, MembershipStatus
from coursework.repos.assignment_repo import (
    AssignmentSource,
    InMemoryAssignmentCatalog,
    project_assignment,
)
from tests.conftest import T0, make_activity, seed_assignment


def test_projection_carries_activity_kind_and_title() -> None:
    activity = make_activity(ActivityKind.OPEN_QUESTIONNAIRE, title="Reflection")
    source = AssignmentSource(
        id=uuid4(), activity_id=activity.id, group_id=uuid4(), owner_id=uuid4()
    )
    record = project_assignment(source, activity)
    assert record.activity_kind is ActivityKind.OPEN_QUESTIONNAIRE
    assert record.activity_title == "Reflection"


def test_projection_without_activity_fails_eagerly() -> None:
    source = AssignmentSource(id=uuid4(), activity_id=uuid4(), group_id=uuid4(), owner_id=uuid4())
    with pytest.raises(ActivityNotResolvable):
        project_assignment(source, None)


@pytest.mark.parametrize("missing", ["group_id", "owner_id"])
def test_projection_without_group_or_owner_fails_eagerly(missing: str) -> None:
    activity = make_activity()
    fields = {"group_id": uuid4(), "owner_id": uuid4(), missing: None}
    source = AssignmentSource(id=uuid4(), activity_id=activity.id, **fields)
    with pytest.raises(OwnerResolutionFailure):
        project_assignment(source, activity)


def test_set_closed_only_moves_open_to_closed() -> None:
    catalog = InMemoryAssignmentCatalog()
    open_ = seed_assignment(catalog, make_activity())
    draft = seed_assignment(catalog, make_activity(), status=AssignmentStatus.DRAFT)

    assert asyncio.run(catalog.set_closed(open_.id)) is True
    assert asyncio.run(catalog.set_closed(open_.id)) is False
    assert asyncio.run(catalog.set_closed(draft.id)) is False
    assert asyncio.run(catalog.set_closed(uuid4())) is False


def test_list_expired_open_orders_by_deadline() -> None:
    catalog = InMemoryAssignmentCatalog()
    later = seed_assignment(catalog, make_activity(), window_end=T0 - timedelta(minutes=1))
    earlier = seed_assignment(catalog, make_activity(), window_end=T0 - timedelta(hours=1))
    seed_assignment(catalog, make_activity(), window_end=T0 + timedelta(hours=1))

    expired = asyncio.run(catalog.list_expired_open(T0))
    assert [e.id for e in expired] == [earlier.id, later.id]
    assert expired[0].owner_id == earlier.owner_id


def test_access_gate_only_approved_members_pass() -> None:
    catalog = InMemoryAssignmentCatalog()
    gate = InMemoryAccessGate(catalog)
    group, pending, approved = uuid4(), uuid4(), uuid4()
    gate.set_status(group, pending, MembershipStatus.PENDING)
    gate.approve(group, approved)

    assert asyncio.run(gate.is_approved_member(approved, group)) is True
    assert asyncio.run(gate.is_approved_member(pending, group)) is False
    assert asyncio.run(gate.is_approved_member(uuid4(), group)) is False


def test_access_gate_ownership_follows_catalog() -> None:
    catalog = InMemoryAssignmentCatalog()
    gate = InMemoryAccessGate(catalog)
    record = seed_assignment(catalog, make_activity())

    assert asyncio.run(gate.is_owner(record.owner_id, record.id)) is True
    assert asyncio.run(gate.is_owner(uuid4(), record.id)) is False
    assert asyncio.run(gate.is_owner(record.owner_id, uuid4())) is False
