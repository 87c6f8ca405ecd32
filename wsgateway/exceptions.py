"""
Custom exception classes for the gateway.

Startup errors (`AttachError`, `ConfigError`) abort the process before it
starts listening. Per-connection errors (`UpgradeError`, `TransportError`)
are isolated to the connection they belong to and reported to observers.
"""

from starlette import status


class GatewayError(Exception):
    """Base class for all gateway errors."""

    pass


class ConfigError(GatewayError):
    """
    Configuration is missing or invalid.

    Raised while loading settings, e.g. when the listening port is absent
    or not numeric. Fatal to startup.
    """

    pass


class AttachError(GatewayError):
    """
    Gateway attachment failed.

    Raised when a gateway is already bound to a listener, or the listener
    already carries another gateway. Fatal to startup.
    """

    pass


class UpgradeError(GatewayError):
    """
    WebSocket upgrade request rejected.

    Carries the HTTP status code used for the denial response. The
    connection never enters the registry.
    """

    def __init__(
        self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST
    ):
        super().__init__(message)
        self.status_code = status_code


class TransportError(GatewayError):
    """
    Mid-session I/O failure on a single connection.

    The affected connection is force-closed; other connections are not
    affected.
    """

    def __init__(self, message: str, connection_id: str | None = None):
        super().__init__(message)
        self.connection_id = connection_id


class ConnectionStateError(GatewayError):
    """Illegal connection lifecycle transition."""

    pass
