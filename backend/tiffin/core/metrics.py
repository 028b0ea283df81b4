"""Prometheus metrics for the tiffin API.

Tracks HTTP traffic plus the business events operations care about:
subscription transitions, refunds and the size of the daily manifest.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "tiffin_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Business Metrics
# ============================================
SUBSCRIPTION_TRANSITIONS_TOTAL = Counter(
    "subscription_transitions_total",
    "Subscription lifecycle transitions",
    ["transition"],  # purchase, upgrade, renew, free_switch, cancel, expire, meal_change
    registry=REGISTRY,
)

REFUNDS_TOTAL = Counter(
    "refunds_total",
    "Refund attempts by outcome",
    ["outcome"],  # succeeded, failed, already_refunded, not_applicable
    registry=REGISTRY,
)

GATEWAY_REQUESTS_TOTAL = Counter(
    "payment_gateway_requests_total",
    "Payment gateway API calls",
    ["operation", "status"],
    registry=REGISTRY,
)

MANIFEST_ENTRIES = Gauge(
    "delivery_manifest_entries",
    "Entries in the most recently built delivery manifest",
    ["bucket"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Render all metrics in Prometheus text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for the metrics endpoint."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Publish application version info."""
    APP_INFO.info({"version": version, "environment": environment})
