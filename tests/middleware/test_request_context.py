from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "gateway-7f3a"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get(f"/v1/attempts/{uuid.uuid4()}")  # no token -> 401
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_one_summary_line_per_request(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="coursework.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "req-summary"})

    lines = [r for r in caplog.records if getattr(r, "request_id", None) == "req-summary"]
    assert len(lines) == 1
    assert lines[0].status_code == 200  # type: ignore[attr-defined]
    assert "GET /health -> 200" in lines[0].getMessage()
