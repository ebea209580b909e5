"""
Prometheus metrics for the chat engine.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Send outcome counter (result)
- Responder outcome counter (result)
- Log append counter (author)
- Subscription delivery error counter

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

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: sent, dropped, failed
send_outcomes_total = Counter(
    "send_outcomes_total",
    "Total send outcomes",
    labelnames=["result"]
)

# result: ok, malformed, transport_error
responder_outcomes_total = Counter(
    "responder_outcomes_total",
    "Total responder call outcomes",
    labelnames=["result"]
)

# author: human, responder
log_appends_total = Counter(
    "log_appends_total",
    "Total messages appended to the log",
    labelnames=["author"]
)

subscription_errors_total = Counter(
    "subscription_errors_total",
    "Total log notification delivery errors"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]
    if normalized_path.startswith("/conversations/"):
        normalized_path = "/conversations/{peer_id}/messages"

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_send_outcome(result: str) -> None:
    send_outcomes_total.labels(result=result).inc()


def record_responder_outcome(result: str) -> None:
    responder_outcomes_total.labels(result=result).inc()


def record_log_append(author: str) -> None:
    log_appends_total.labels(author=author).inc()


def record_subscription_error() -> None:
    subscription_errors_total.inc()


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
