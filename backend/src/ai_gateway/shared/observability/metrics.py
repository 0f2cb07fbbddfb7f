"""Prometheus metrics for the AI gateway."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


# ── HTTP metrics ─────────────────────────────────────────────
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Provider metrics ─────────────────────────────────────────
PROVIDER_REQUESTS = Counter(
    "ai_provider_requests_total",
    "Provider call attempts",
    ["provider", "status"],
)

PROVIDER_LATENCY = Histogram(
    "ai_provider_latency_seconds",
    "Provider call latency",
    ["provider"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

FAILOVERS_TOTAL = Counter(
    "ai_failovers_total",
    "Requests served by a provider other than the first candidate",
    ["provider"],
)

CIRCUIT_OPEN = Gauge(
    "ai_circuit_open",
    "1 while a provider's circuit breaker is open",
    ["provider"],
)

# ── Budget metrics ───────────────────────────────────────────
BUDGET_SPEND = Gauge(
    "ai_budget_spend",
    "Accumulated cost in the current billing period",
    ["service"],
)

NOTIFICATIONS_TOTAL = Counter(
    "ai_notifications_total",
    "Notifications published on the bus",
    ["kind"],
)
