"""
Prometheus metrics definitions.

All gateway metrics are re-exported here:

    from wsgateway.metrics import ws_connections_active
"""

from wsgateway.metrics.websocket import (
    ws_broadcast_duration_seconds,
    ws_connections_active,
    ws_connections_closed_total,
    ws_connections_total,
    ws_message_processing_duration_seconds,
    ws_messages_dropped_total,
    ws_messages_received_total,
    ws_messages_sent_total,
    ws_transport_errors_total,
)

__all__ = [
    "ws_broadcast_duration_seconds",
    "ws_connections_active",
    "ws_connections_closed_total",
    "ws_connections_total",
    "ws_message_processing_duration_seconds",
    "ws_messages_dropped_total",
    "ws_messages_received_total",
    "ws_messages_sent_total",
    "ws_transport_errors_total",
]
