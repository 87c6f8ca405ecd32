"""
Gateway-level constants.

These values define protocol behavior and safety limits and are not meant
to be changed through the environment. For configurable values (timeouts,
limits, paths) see wsgateway/settings.py.
"""

from enum import StrEnum


class ConnectionState(StrEnum):
    """
    Lifecycle state of a single gateway connection.

    CONNECTING is entered when the upgrade request arrives, OPEN after a
    successful handshake, CLOSING on peer or server initiated close and
    CLOSED once outstanding writes drained or the grace period elapsed.
    CLOSED is terminal.
    """

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


# Allowed lifecycle transitions; OPEN -> CLOSED is the transport error path
CONNECTION_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.OPEN, ConnectionState.CLOSED}
    ),
    ConnectionState.OPEN: frozenset(
        {ConnectionState.CLOSING, ConnectionState.CLOSED}
    ),
    ConnectionState.CLOSING: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class GatewayEventKind(StrEnum):
    """Kinds of notifications delivered to gateway observers."""

    CONNECTED = "connected"
    CLOSED = "closed"
    UPGRADE_REJECTED = "upgrade_rejected"
    TRANSPORT_ERROR = "transport_error"
    HANDLER_ERROR = "handler_error"
    MESSAGE_DROPPED = "message_dropped"


# ============================================================================
# WebSocket Protocol Constants
# ============================================================================

# Message types answered by the gateway itself, never dispatched to handlers
PING_MESSAGE_TYPE = "ping"
PONG_MESSAGE_TYPE = "pong"

# Supported values of the `format` query parameter
DEFAULT_MESSAGE_FORMAT = "json"
SUPPORTED_MESSAGE_FORMATS = ("json", "raw")

# Close reasons sent along with server-initiated close frames
CLOSE_REASON_SHUTDOWN = "Server shutting down"
CLOSE_REASON_IDLE = "Idle timeout"
CLOSE_REASON_HANDLER_ERROR = "Internal error"
CLOSE_REASON_UNSUPPORTED_DATA = "Unsupported data"

# Close code recorded for connections lost to a transport error (never sent)
ABNORMAL_CLOSURE_CODE = 1006

# Upper bound (seconds) for the force-close attempt after the grace period
FORCE_CLOSE_TIMEOUT_SECONDS = 1.0

# Backoff delay (seconds) when a background task encounters an error
TASK_ERROR_BACKOFF_SECONDS = 1


# ============================================================================
# Logging
# ============================================================================

# Maximum size of a single structured log line
MAX_LOG_SIZE_BYTES = 65536
