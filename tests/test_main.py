from __future__ import annotations

from fastapi.testclient import TestClient

from coursework.main import app


def test_app_serves_the_coursework_routes() -> None:
    paths = {route.path for route in app.routes}
    assert {
        "/health",
        "/ready",
        "/metrics",
        "/v1/assignments/{assignment_id}/attempts",
        "/v1/assignments/{assignment_id}/submissions",
        "/v1/attempts/{attempt_id}/grade",
        "/v1/attempts/{attempt_id}",
        "/admin/sweeps",
    } <= paths


def test_lifespan_starts_without_database_or_redis() -> None:
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200


def test_openapi_schema_lists_attempt_endpoints() -> None:
    schema = TestClient(app).get("/openapi.json").json()
    assert schema["info"]["title"] == "coursework-service"
    assert "/v1/attempts/{attempt_id}/grade" in schema["paths"]
