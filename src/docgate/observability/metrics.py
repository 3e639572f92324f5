"""Prometheus metrics.

HTTP metrics are recorded by ``MetricsMiddleware``; the QR counters are
incremented by the sharing components at the point each decision is made.
All metrics live in the default registry, so the process collectors are
exported alongside them at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "docgate_http_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "docgate_http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "docgate_http_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# QR access
# ---------------------------------------------------------------------------

QR_SCAN_EVENTS_TOTAL = Counter(
    "docgate_qr_scan_events_total",
    "Recorded access attempts by action and outcome.",
    labelnames=["action", "outcome"],
    registry=REGISTRY,
)

QR_ACCESS_DENIED_TOTAL = Counter(
    "docgate_qr_access_denied_total",
    "Gate denials by reason (signature, accessibility state, passcode).",
    labelnames=["reason"],
    registry=REGISTRY,
)

QR_VIEW_ADMISSIONS_TOTAL = Counter(
    "docgate_qr_view_admissions_total",
    "View counter decisions.",
    labelnames=["result"],
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Bundle lifecycle
# ---------------------------------------------------------------------------

QR_BUNDLES_CREATED_TOTAL = Counter(
    "docgate_qr_bundles_created_total",
    "Bundle create requests, split by whether an existing bundle was reused.",
    labelnames=["reused"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Prometheus exposition text and its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
