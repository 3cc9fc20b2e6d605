"""Prometheus metrics middleware.

prometheus-client keeps one global registry and counters only go up, so
every assertion reads the value before and after and checks the delta.
"""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import auth


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    assert _get_sample("http_requests_total", labels) - before == 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before == 1


def test_endpoint_label_is_the_route_template(client: TestClient) -> None:
    labels = {
        "method": "GET",
        "endpoint": "/v1/attempts/{attempt_id}",
        "status_code": "404",
    }
    before = _get_sample("http_requests_total", labels)
    client.get(f"/v1/attempts/{uuid4()}", headers=auth(uuid4()))
    client.get(f"/v1/attempts/{uuid4()}", headers=auth(uuid4()))
    assert _get_sample("http_requests_total", labels) - before == 2


def test_unmatched_path_falls_back_to_raw_path(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/no-such-page", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)
    client.get("/no-such-page")
    assert _get_sample("http_requests_total", labels) - before == 1


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "attempts_started_total" in resp.text
    assert "sweeper_tick_duration_seconds" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _get_sample("http_requests_total", labels) == before
