"""Prometheus metric inventory.

Every metric the service records is declared here; the modules that own
the behavior import the metric and increment it at the point of action.
Scraped from GET /metrics.

HTTP metrics are filled by MetricsMiddleware.  Domain metrics answer the
questions an operator asks during an exam window:

  - Are students able to start and finish attempts?
      attempts_started_total, attempts_finalized_total{attempt_state}
  - Is the deadline sweeper keeping up, or failing on some assignment?
      sweeper_assignments_closed_total, sweeper_failures_total
  - Are teachers getting their notifications?
      notifications_total{kind, result}

A spike in attempts_finalized_total{attempt_state="AutoSavedOnClosure"}
right after a sweep is expected: students who were still working when
the deadline passed.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Attempt lifecycle
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "attempts_started_total",
    "New timed attempts created by begin (resumes are not counted)",
)

ATTEMPTS_FINALIZED = Counter(
    "attempts_finalized_total",
    "Attempts moved into a terminal state by submit",
    ["attempt_state"],
)

POLICY_REJECTIONS = Counter(
    "attempt_policy_rejections_total",
    "begin/submit/grade calls rejected by a policy rule",
    ["reason"],  # exception class name, e.g. AttemptsExhausted
)

# ---------------------------------------------------------------------------
# Deadline sweeper
# ---------------------------------------------------------------------------

SWEEPER_CLOSED = Counter(
    "sweeper_assignments_closed_total",
    "Assignments moved Open -> Closed by the deadline sweeper",
)

SWEEPER_FAILURES = Counter(
    "sweeper_failures_total",
    "Sweeper candidates that raised while being closed",
)

SWEEPER_TICK_DURATION = Histogram(
    "sweeper_tick_duration_seconds",
    "Wall time of one sweeper tick",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0],
)

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

NOTIFICATIONS = Counter(
    "notifications_total",
    "Notification dispatch outcomes",
    ["kind", "result"],  # result: "dispatched" | "failed" | "delivered"
)
