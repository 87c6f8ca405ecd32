"""WebSocket connection registry for tracking live gateway connections."""

import threading
from typing import TYPE_CHECKING

from wsgateway.logging import logger

if TYPE_CHECKING:
    from wsgateway.connection import Connection


class ConnectionRegistry:
    """
    Mapping of connection ids to live connections.

    Holds exactly the connections that are OPEN or CLOSING. Insertions and
    removals are guarded by a lock; readers that need to iterate (e.g.
    broadcast) take a point-in-time `snapshot()` instead of holding the
    lock while sending.
    """

    def __init__(self) -> None:
        self._connections: dict[str, "Connection"] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections

    def add(self, connection: "Connection") -> None:
        """
        Insert a connection.

        Raises:
            ValueError: If a connection with the same id is already present.
        """
        with self._lock:
            if connection.id in self._connections:
                raise ValueError(
                    f"Connection {connection.id} is already registered"
                )
            self._connections[connection.id] = connection

        logger.debug(f"Connection {connection.id} added to registry")

    def remove(self, connection_id: str) -> "Connection | None":
        """
        Remove a connection by id.

        Returns:
            The removed connection, or None if it was not registered.
        """
        with self._lock:
            connection = self._connections.pop(connection_id, None)

        if connection is not None:
            logger.debug(f"Connection {connection_id} removed from registry")

        return connection

    def get(self, connection_id: str) -> "Connection | None":
        with self._lock:
            return self._connections.get(connection_id)

    def snapshot(self) -> list["Connection"]:
        """Point-in-time copy of the registered connections."""
        with self._lock:
            return list(self._connections.values())

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._connections)
