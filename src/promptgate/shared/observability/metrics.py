"""Prometheus metrics for the image routing service."""

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
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Routing metrics ──────────────────────────────────────────
BACKEND_ATTEMPTS = Counter(
    "backend_attempts_total",
    "Backend call attempts made by the balancer",
    ["operation", "outcome"],  # success / error / timeout
)

BACKEND_LATENCY = Histogram(
    "backend_latency_seconds",
    "Latency of successful backend calls",
    ["operation"],
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

FALLBACK_RESPONSES = Counter(
    "fallback_responses_total",
    "Requests answered by the local fallback path",
    ["operation"],
)

EXHAUSTED_REQUESTS = Counter(
    "exhausted_requests_total",
    "Requests that failed on every backend attempt without fallback",
    ["operation"],
)

UNHEALTHY_BACKENDS = Gauge(
    "unhealthy_backends",
    "Backends currently excluded from rotation",
)

# ── Worker metrics ───────────────────────────────────────────
PROVIDER_CALLS = Counter(
    "provider_calls_total",
    "Calls made by a worker to an external AI provider",
    ["provider", "status"],
)
