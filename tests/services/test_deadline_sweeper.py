from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import UUID, uuid4

from prometheus_client import REGISTRY

from coursework.models.activity import ActivityKind
from coursework.models.assignment import AssignmentStatus
from coursework.models.notification import NotificationKind
from coursework.services.deadline_sweeper import DeadlineSweeper, SweepReport, run_periodically
from tests.conftest import T0, World


def _tick(world: World, sweeper: DeadlineSweeper | None = None) -> SweepReport:
    async def _go():
        report = await (sweeper or world.sweeper).tick()
        await world.notifier.drain()
        return report

    return asyncio.run(_go())


async def _status(world: World, assignment_id: UUID) -> AssignmentStatus:
    record = await world.catalog.load_assignment(assignment_id)
    assert record is not None
    return record.status


def test_expired_open_assignment_is_closed_and_owner_notified(world: World) -> None:
    a = world.assignment(window_end=T0 - timedelta(minutes=2))

    report = _tick(world)

    assert report.closed == (a.id,)
    assert report.failed == ()
    assert asyncio.run(_status(world, a.id)) is AssignmentStatus.CLOSED
    [note] = world.notifier.sent
    assert note.kind is NotificationKind.ASSIGNMENT_CLOSED
    assert note.recipient_id == a.owner_id
    assert "Week 3 check-in" in note.message
    assert note.link == f"/assignments/{a.id}"


def test_future_draft_and_closed_assignments_are_left_alone(world: World) -> None:
    future = world.assignment(window_end=T0 + timedelta(minutes=1))
    draft = world.assignment(
        window_end=T0 - timedelta(days=1), status=AssignmentStatus.DRAFT
    )
    closed = world.assignment(
        window_end=T0 - timedelta(days=1), status=AssignmentStatus.CLOSED
    )
    no_deadline = world.assignment(window_end=None)

    report = _tick(world)

    assert report == SweepReport()
    assert asyncio.run(_status(world, future.id)) is AssignmentStatus.OPEN
    assert asyncio.run(_status(world, draft.id)) is AssignmentStatus.DRAFT
    assert asyncio.run(_status(world, closed.id)) is AssignmentStatus.CLOSED
    assert asyncio.run(_status(world, no_deadline.id)) is AssignmentStatus.OPEN
    assert world.notifier.sent == []


def test_window_end_equal_to_now_is_expired(world: World) -> None:
    a = world.assignment(window_end=T0)
    assert _tick(world).closed == (a.id,)


def test_second_tick_does_not_notify_again(world: World) -> None:
    world.assignment(window_end=T0 - timedelta(minutes=2))
    _tick(world)
    report = _tick(world)

    assert report.closed == ()
    assert len(world.notifier.sent) == 1


def test_sweeper_never_touches_attempts(world: World) -> None:
    student = uuid4()
    a = world.assignment(
        members=(student,), time_limit_minutes=60, window_end=T0 + timedelta(minutes=5)
    )
    handle = asyncio.run(world.lifecycle.begin(a.id, student))
    world.clock.advance(minutes=10)

    _tick(world)

    assert world.attempts.all() == [handle.attempt]


def test_one_failing_candidate_does_not_stop_the_others(world: World) -> None:
    bad = world.assignment(window_end=T0 - timedelta(hours=2))
    good = world.assignment(window_end=T0 - timedelta(hours=1))

    class FlakyCatalog:
        def __init__(self, inner) -> None:
            self._inner = inner

        async def list_expired_open(self, now):
            return await self._inner.list_expired_open(now)

        async def set_closed(self, assignment_id):
            if assignment_id == bad.id:
                raise ConnectionError("db hiccup")
            return await self._inner.set_closed(assignment_id)

    sweeper = DeadlineSweeper(
        catalog=FlakyCatalog(world.catalog), notifier=world.notifier, clock=world.clock
    )
    before = REGISTRY.get_sample_value("sweeper_failures_total") or 0.0

    report = _tick(world, sweeper)

    assert report.closed == (good.id,)
    assert report.failed == (bad.id,)
    assert asyncio.run(_status(world, bad.id)) is AssignmentStatus.OPEN
    assert asyncio.run(_status(world, good.id)) is AssignmentStatus.CLOSED
    assert [n.recipient_id for n in world.notifier.sent] == [good.owner_id]
    assert (REGISTRY.get_sample_value("sweeper_failures_total") or 0.0) - before == 1


def test_notification_failure_does_not_undo_the_close(world: World) -> None:
    a = world.assignment(ActivityKind.FREEFORM_SUBMISSION, window_end=T0 - timedelta(minutes=1))
    world.notifier.fail_with = ConnectionError("redis down")

    report = _tick(world)

    assert report.closed == (a.id,)
    assert asyncio.run(_status(world, a.id)) is AssignmentStatus.CLOSED


def test_assignment_without_owner_is_closed_but_not_announced(world: World) -> None:
    seeded = world.assignment()
    orphan = world.catalog.new_partial(
        activity_id=seeded.activity_id,
        group_id=seeded.group_id,
        status=AssignmentStatus.OPEN,
        window_end=T0 - timedelta(minutes=1),
    )

    report = _tick(world)

    assert report.closed == (orphan.id,)
    assert world.notifier.sent == []


def test_closed_counter_increments(world: World) -> None:
    world.assignment(window_end=T0 - timedelta(minutes=1))
    world.assignment(window_end=T0 - timedelta(minutes=1))
    before = REGISTRY.get_sample_value("sweeper_assignments_closed_total") or 0.0

    _tick(world)

    after = REGISTRY.get_sample_value("sweeper_assignments_closed_total") or 0.0
    assert after - before == 2


def test_run_periodically_survives_a_failing_tick() -> None:
    calls: list[int] = []

    async def tick() -> SweepReport:
        calls.append(1)
        if len(calls) == 1:
            raise ConnectionError("catalog unavailable")
        if len(calls) == 3:
            raise asyncio.CancelledError
        return SweepReport()

    async def _go() -> None:
        try:
            await run_periodically(tick, 0)
        except asyncio.CancelledError:
            pass

    asyncio.run(_go())
    assert len(calls) == 3
