"""
Prometheus metrics for WebSocket connection monitoring.

This module defines metrics for tracking gateway connections, message
rates, transport failures and broadcast durations.

Metrics are looked up in the default registry before being created, so
building several applications in one process (tests, --reload) does not
fail with duplicate registration errors.
"""

from typing import Any, TypeVar

from prometheus_client import REGISTRY, Counter, Gauge, Histogram

MetricT = TypeVar("MetricT", Counter, Gauge, Histogram)

# Histogram buckets (seconds) for per-message and broadcast timings
DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


def _register(
    metric_cls: type[MetricT],
    name: str,
    doc: str,
    labels: list[str] | None = None,
    **kwargs: Any,
) -> MetricT:
    """Return the metric registered under `name`, creating it on first use."""
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, doc, labels or [], **kwargs)


# WebSocket Connection Metrics
ws_connections_active = _register(
    Gauge, "ws_connections_active", "Number of active WebSocket connections"
)

ws_connections_total = _register(
    Counter,
    "ws_connections_total",
    "Total WebSocket upgrade attempts",
    ["status"],  # accepted, rejected, handshake_failed
)

ws_connections_closed_total = _register(
    Counter,
    "ws_connections_closed_total",
    "Total WebSocket connections closed",
    ["reason"],  # normal, transport_error, forced
)

# WebSocket Message Metrics
ws_messages_received_total = _register(
    Counter, "ws_messages_received_total", "Total WebSocket messages received"
)

ws_messages_sent_total = _register(
    Counter, "ws_messages_sent_total", "Total WebSocket messages sent"
)

ws_messages_dropped_total = _register(
    Counter,
    "ws_messages_dropped_total",
    "Total inbound WebSocket messages dropped for stale connections",
)

ws_transport_errors_total = _register(
    Counter,
    "ws_transport_errors_total",
    "Total mid-session WebSocket transport errors",
)

ws_message_processing_duration_seconds = _register(
    Histogram,
    "ws_message_processing_duration_seconds",
    "WebSocket message processing duration in seconds",
    buckets=DURATION_BUCKETS,
)

ws_broadcast_duration_seconds = _register(
    Histogram,
    "ws_broadcast_duration_seconds",
    "WebSocket broadcast duration in seconds",
    buckets=DURATION_BUCKETS,
)
