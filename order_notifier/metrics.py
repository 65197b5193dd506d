"""
Prometheus metrics for the order service.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Order creation outcomes (result)
- Notification outcomes per leg (leg, result)
- Messaging session lifecycle events (event)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: created, session_unavailable, validation_error, storage_error
orders_total = Counter(
    "orders_total",
    "Order creation outcomes",
    labelnames=["result"]
)

# leg: receipt, confirmation, delivery; result: sent, failed
notifications_total = Counter(
    "notifications_total",
    "Customer notification outcomes",
    labelnames=["leg", "result"]
)

session_events_total = Counter(
    "session_events_total",
    "Messaging session lifecycle events",
    labelnames=["event"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when known, raw path otherwise
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_order_outcome(result: str) -> None:
    orders_total.labels(result=result).inc()


def record_notification(leg: str, sent: bool) -> None:
    notifications_total.labels(leg=leg, result="sent" if sent else "failed").inc()


def record_session_event(event: str) -> None:
    session_events_total.labels(event=event).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type string for Prometheus exposition format."""
    return CONTENT_TYPE_LATEST
