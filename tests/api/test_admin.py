from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from fastapi.testclient import TestClient

from coursework.api import dependencies
from coursework.models.assignment import AssignmentStatus
from tests.conftest import auth, make_activity, seed_assignment


def test_sweep_requires_token(client: TestClient) -> None:
    assert client.post("/admin/sweeps").status_code == 401


def test_sweep_requires_admin_role(client: TestClient) -> None:
    resp = client.post("/admin/sweeps", headers=auth(uuid4()))
    assert resp.status_code == 403


def test_admin_sweep_closes_expired_assignments(
    client: TestClient, admin_token: str
) -> None:
    now = datetime.now(UTC)
    expired = seed_assignment(
        dependencies.catalog, make_activity(), window_end=now - timedelta(hours=1)
    )
    running = seed_assignment(
        dependencies.catalog, make_activity(), window_end=now + timedelta(days=1)
    )

    resp = client.post(
        "/admin/sweeps", headers={"Authorization": f"Bearer {admin_token}"}
    )
    assert resp.status_code == 200
    assert resp.json() == {"closed": [str(expired.id)], "failed": []}

    statuses = {
        s.id: s.status for s in dependencies.catalog._sources.values()
    }
    assert statuses[expired.id] is AssignmentStatus.CLOSED
    assert statuses[running.id] is AssignmentStatus.OPEN


def test_second_sweep_closes_nothing(client: TestClient, admin_token: str) -> None:
    seed_assignment(
        dependencies.catalog,
        make_activity(),
        window_end=datetime.now(UTC) - timedelta(minutes=5),
    )
    headers = {"Authorization": f"Bearer {admin_token}"}
    assert len(client.post("/admin/sweeps", headers=headers).json()["closed"]) == 1
    assert client.post("/admin/sweeps", headers=headers).json()["closed"] == []
