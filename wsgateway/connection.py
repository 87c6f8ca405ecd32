import asyncio
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable

from starlette.websockets import WebSocket, WebSocketDisconnect

from wsgateway.constants import CONNECTION_TRANSITIONS, ConnectionState
from wsgateway.exceptions import ConnectionStateError, TransportError
from wsgateway.formats import InboundPayload, JSONFormatStrategy
from wsgateway.formats.protocol import MessageFormatStrategy
from wsgateway.logging import logger

MessageHandler = Callable[["Connection", InboundPayload], Awaitable[None]]


class Connection:
    """
    A single upgraded WebSocket channel owned by the gateway.

    Tracks the lifecycle state, last activity and outstanding writes of one
    channel. Writes are serialized per connection; the number of writes in
    flight is tracked so that a graceful close can wait for them to drain.
    """

    def __init__(
        self,
        transport: WebSocket,
        *,
        message_format: MessageFormatStrategy | None = None,
        send_timeout: float = 5.0,
        path: str = "",
        client: str | None = None,
        connection_id: str | None = None,
    ) -> None:
        self.id: str = connection_id or str(uuid.uuid4())
        self.transport = transport
        self.format: MessageFormatStrategy = (
            message_format or JSONFormatStrategy()
        )
        self.path = path
        self.client = client
        self.subprotocol: str | None = None
        self.state = ConnectionState.CONNECTING
        self.close_code: int | None = None
        self.connected_at = datetime.now(UTC)
        self.last_activity = time.monotonic()
        self.handlers: list[MessageHandler] = []

        self._send_timeout = send_timeout
        self._send_lock = asyncio.Lock()
        self._inbound_lock = asyncio.Lock()
        self._pending_writes = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"<Connection {self.id} state={self.state}>"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    @property
    def pending_writes(self) -> int:
        return self._pending_writes

    @property
    def inbound_lock(self) -> asyncio.Lock:
        """Lock held while one inbound message is being delivered."""
        return self._inbound_lock

    def transition(self, new_state: ConnectionState) -> None:
        """
        Move the connection to `new_state`.

        Raises:
            ConnectionStateError: If the transition is not allowed from the
                current state.
        """
        if new_state not in CONNECTION_TRANSITIONS[self.state]:
            raise ConnectionStateError(
                f"Connection {self.id} cannot go from {self.state} to {new_state}"
            )

        logger.debug(f"Connection {self.id}: {self.state} -> {new_state}")
        self.state = new_state

        if new_state is ConnectionState.CLOSED:
            self._closed.set()

    def touch(self) -> None:
        """Record activity on the connection."""
        self.last_activity = time.monotonic()

    def idle_seconds(self, now: float | None = None) -> float:
        """Seconds since the last recorded activity."""
        return (now if now is not None else time.monotonic()) - self.last_activity

    def add_handler(self, handler: MessageHandler) -> None:
        """Register a handler receiving only this connection's messages."""
        self.handlers.append(handler)

    def remove_handler(self, handler: MessageHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    async def send(self, payload: Any) -> None:
        """
        Send one frame to the peer.

        Bytes go out as a binary frame; everything else is encoded by the
        connection's message format into a text frame.

        Raises:
            TransportError: If the connection is not open, the write fails
                or does not complete within the send timeout.
            TypeError, ValueError: If the payload cannot be encoded; the
                connection is left untouched.
        """
        if self.state is not ConnectionState.OPEN:
            raise TransportError(
                f"Connection {self.id} is {self.state}, cannot send",
                connection_id=self.id,
            )

        await self.send_frame(self.format.serialize(payload))

    async def send_frame(self, frame: str | bytes) -> None:
        """
        Write an already encoded frame: `bytes` as binary, `str` as text.

        Raises:
            TransportError: If the connection is not open, the write fails
                or does not complete within the send timeout.
        """
        if self.state is not ConnectionState.OPEN:
            raise TransportError(
                f"Connection {self.id} is {self.state}, cannot send",
                connection_id=self.id,
            )

        self._pending_writes += 1
        self._drained.clear()
        try:
            async with self._send_lock:
                # Writes queued before CLOSING may still drain
                if self.state is ConnectionState.CLOSED:
                    raise TransportError(
                        f"Connection {self.id} closed before write",
                        connection_id=self.id,
                    )

                if isinstance(frame, bytes):
                    write = self.transport.send_bytes(frame)
                else:
                    write = self.transport.send_text(frame)

                await asyncio.wait_for(write, timeout=self._send_timeout)
        except asyncio.TimeoutError as ex:
            raise TransportError(
                f"Send to connection {self.id} timed out after "
                f"{self._send_timeout}s",
                connection_id=self.id,
            ) from ex
        except (WebSocketDisconnect, RuntimeError, OSError) as ex:
            # WebSocketDisconnect: Client disconnected
            # RuntimeError: WebSocket in invalid state
            # OSError: Network errors
            raise TransportError(
                f"Send to connection {self.id} failed: {ex}",
                connection_id=self.id,
            ) from ex
        finally:
            self._pending_writes -= 1
            if self._pending_writes == 0:
                self._drained.set()

    async def wait_drained(self, timeout: float) -> bool:
        """
        Wait for outstanding writes to complete.

        Returns:
            True if all writes drained within `timeout`, False otherwise.
        """
        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_closed(self, timeout: float | None = None) -> bool:
        """
        Wait for the connection to reach CLOSED.

        Returns:
            True if the connection is closed, False if `timeout` elapsed.
        """
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
