import asyncio
import inspect
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from starlette import status
from starlette.websockets import WebSocket, WebSocketDisconnect

from wsgateway.connection import Connection, MessageHandler
from wsgateway.constants import (
    ABNORMAL_CLOSURE_CODE,
    CLOSE_REASON_HANDLER_ERROR,
    CLOSE_REASON_SHUTDOWN,
    DEFAULT_MESSAGE_FORMAT,
    FORCE_CLOSE_TIMEOUT_SECONDS,
    PING_MESSAGE_TYPE,
    PONG_MESSAGE_TYPE,
    SUPPORTED_MESSAGE_FORMATS,
    ConnectionState,
    GatewayEventKind,
)
from wsgateway.endpoint import create_gateway_endpoint
from wsgateway.exceptions import AttachError, TransportError, UpgradeError
from wsgateway.formats import InboundPayload, select_message_format_strategy
from wsgateway.logging import logger
from wsgateway.metrics import (
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
from wsgateway.registry import ConnectionRegistry
from wsgateway.schemas import BroadcastResult, GatewayEvent, MessageModel
from wsgateway.settings import GatewaySettings
from wsgateway.tasks.idle_sweeper import idle_connection_sweeper_task

if TYPE_CHECKING:
    from fastapi import FastAPI

ObserverCallable = Callable[[GatewayEvent], Awaitable[None] | None]
ConnectionPredicate = Callable[[Connection], bool]


class ConnectionGateway:
    """
    Manager for upgraded WebSocket connections.

    Owns the connection registry, performs upgrade validation and the
    handshake, relays inbound messages to application handlers, sends and
    broadcasts outbound messages and guarantees that closed or failed
    connections leave the registry promptly.

    Per-connection failures are isolated: they are logged and reported to
    observers, never raised across connection boundaries.
    """

    def __init__(self, settings: GatewaySettings) -> None:
        self.settings = settings
        self.registry = ConnectionRegistry()
        self.handlers: list[MessageHandler] = []
        self.path: str | None = None

        self._app: "FastAPI | None" = None
        self._observers: list[ObserverCallable] = []
        self._tasks: list[asyncio.Task[Any]] = []
        self._shutting_down = False
        # Upgrades validated but not yet registered; they count against
        # MAX_CONNECTIONS while the handshake is in flight
        self._pending_handshakes = 0

    @property
    def attached(self) -> bool:
        return self._app is not None

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def attach(self, app: "FastAPI", path: str | None = None) -> None:
        """
        Register the gateway's upgrade endpoint on the given application.

        Args:
            app: The HTTP application acting as transport listener.
            path: Upgrade path, defaults to `settings.WS_PATH`.

        Raises:
            AttachError: If this gateway is already attached, or the
                application already carries a gateway.
        """
        if self._app is not None:
            raise AttachError("Gateway is already attached to a listener")

        if getattr(app.state, "gateway", None) is not None:
            raise AttachError("Listener already has a gateway attached")

        self.path = path or self.settings.WS_PATH
        app.router.add_websocket_route(self.path, create_gateway_endpoint(self))
        app.state.gateway = self
        self._app = app

        logger.info(f'Register websocket gateway on "{self.path}"')

    def message_handler(self, func: MessageHandler) -> MessageHandler:
        """
        Decorator registering a handler for messages from every connection.

        Handlers are awaited in registration order with the connection and
        the decoded payload.
        """
        self.handlers.append(func)
        logger.info(f"Register {func.__module__}.{func.__name__} message handler")
        return func

    def add_observer(self, observer: ObserverCallable) -> None:
        """Subscribe a sync or async callable to gateway events."""
        self._observers.append(observer)

    def remove_observer(self, observer: ObserverCallable) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def start(self) -> None:
        """Start background tasks (idle connection sweeper if enabled)."""
        if self.settings.IDLE_TIMEOUT_SECONDS > 0:
            self._tasks.append(
                asyncio.create_task(idle_connection_sweeper_task(self))
            )
            logger.info("Created task for idle connection sweeper")

    async def on_connect(self, websocket: WebSocket) -> Connection:
        """
        Validate an upgrade request and complete the handshake.

        On success the connection is OPEN and registered. On failure the
        connection never enters the registry.

        Raises:
            UpgradeError: If the request is rejected or the handshake fails.
        """
        try:
            self._validate_upgrade(websocket)
            subprotocol = self._negotiate_subprotocol(websocket)
        except UpgradeError as ex:
            logger.warning(f"Upgrade request rejected: {ex}")
            ws_connections_total.labels(status="rejected").inc()
            await self._notify(
                GatewayEvent(kind=GatewayEventKind.UPGRADE_REJECTED, error=ex)
            )
            raise

        format_name = websocket.query_params.get(
            "format", DEFAULT_MESSAGE_FORMAT
        ).lower()
        if format_name not in SUPPORTED_MESSAGE_FORMATS:
            logger.warning(
                f"Invalid format '{format_name}' specified, defaulting to "
                f"{DEFAULT_MESSAGE_FORMAT}"
            )
            format_name = DEFAULT_MESSAGE_FORMAT

        client = (
            f"{websocket.client.host}:{websocket.client.port}"
            if websocket.client
            else None
        )
        connection = Connection(
            websocket,
            message_format=select_message_format_strategy(format_name),
            send_timeout=self.settings.WS_SEND_TIMEOUT_SECONDS,
            path=websocket.url.path,
            client=client,
        )
        connection.subprotocol = subprotocol

        self._pending_handshakes += 1
        try:
            await asyncio.wait_for(
                websocket.accept(subprotocol=subprotocol),
                timeout=self.settings.WS_ACCEPT_TIMEOUT_SECONDS,
            )
        except (
            asyncio.TimeoutError,
            WebSocketDisconnect,
            RuntimeError,
            OSError,
        ) as ex:
            connection.transition(ConnectionState.CLOSED)
            ws_connections_total.labels(status="handshake_failed").inc()
            error = UpgradeError(
                f"Handshake failed: {ex!r}",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
            logger.warning(f"Connection {connection.id}: {error}")
            await self._notify(
                GatewayEvent(
                    kind=GatewayEventKind.UPGRADE_REJECTED,
                    connection_id=connection.id,
                    error=error,
                )
            )
            raise error from ex
        finally:
            self._pending_handshakes -= 1

        connection.transition(ConnectionState.OPEN)
        self.registry.add(connection)
        ws_connections_total.labels(status="accepted").inc()
        ws_connections_active.inc()
        logger.debug(
            f"Client {client} connected (connection_id: {connection.id}, "
            f"format: {connection.format.format_name})"
        )
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.CONNECTED, connection_id=connection.id
            )
        )

        # Shutdown started while the handshake was in flight
        if self._shutting_down:
            await self.on_close(
                connection.id,
                code=status.WS_1001_GOING_AWAY,
                reason=CLOSE_REASON_SHUTDOWN,
                grace=0,
            )

        return connection

    async def on_message(
        self, connection_id: str, payload: InboundPayload
    ) -> None:
        """
        Deliver an inbound payload to the message handlers.

        Gateway-level handlers run first, then the connection's own
        handlers. Messages for unknown or no longer open connections are
        dropped. Delivery for a single connection is strictly ordered.
        """
        connection = self.registry.get(connection_id)
        if connection is None or not connection.is_open:
            await self._drop_message(connection_id)
            return

        failure: Exception | None = None

        async with connection.inbound_lock:
            if not connection.is_open:
                await self._drop_message(connection_id)
                return

            connection.touch()
            ws_messages_received_total.inc()

            if (
                isinstance(payload, MessageModel)
                and payload.type == PING_MESSAGE_TYPE
            ):
                await self.send(
                    connection_id,
                    MessageModel(type=PONG_MESSAGE_TYPE, id=payload.id),
                )
                return

            start_time = time.time()
            try:
                for handler in (*self.handlers, *connection.handlers):
                    await handler(connection, payload)
            except Exception as ex:
                failure = ex
            finally:
                ws_message_processing_duration_seconds.observe(
                    time.time() - start_time
                )

        if failure is None:
            return

        if isinstance(failure, TransportError):
            # A handler relaying to another peer fails on that peer's transport
            await self.on_transport_error(
                failure.connection_id or connection_id, failure
            )
            return

        logger.error(
            f"Message handler failed for connection {connection_id}: {failure!r}",
            exc_info=failure,
        )
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.HANDLER_ERROR,
                connection_id=connection_id,
                error=failure,
            )
        )
        await self.on_close(
            connection_id,
            code=status.WS_1011_INTERNAL_ERROR,
            reason=CLOSE_REASON_HANDLER_ERROR,
        )

    async def on_close(
        self,
        connection_id: str,
        code: int = status.WS_1000_NORMAL_CLOSURE,
        reason: str = "",
        *,
        peer_initiated: bool = False,
        grace: float | None = None,
    ) -> None:
        """
        Close a connection gracefully.

        OPEN -> CLOSING, wait up to `grace` seconds for outstanding writes,
        send the close frame (unless the peer already closed), then CLOSED
        and registry removal. Idempotent: unknown, closing or closed
        connections are left untouched.
        """
        connection = self.registry.get(connection_id)
        if connection is None or not connection.is_open:
            logger.debug(f"Connection {connection_id} already closing or closed")
            return

        connection.transition(ConnectionState.CLOSING)
        connection.close_code = code
        grace = self.settings.SHUTDOWN_GRACE_SECONDS if grace is None else grace

        if not await connection.wait_drained(grace):
            logger.warning(
                f"Connection {connection_id}: {connection.pending_writes} "
                f"writes still pending after {grace}s grace period"
            )

        if not peer_initiated and not connection.is_closed:
            await self._close_transport(
                connection, code, reason, self.settings.WS_CLOSE_TIMEOUT_SECONDS
            )

        if self._mark_closed(connection, code):
            ws_connections_closed_total.labels(reason="normal").inc()
            logger.debug(
                f"Connection {connection_id} closed with code {code}"
                + (" by peer" if peer_initiated else "")
            )
            await self._notify(
                GatewayEvent(
                    kind=GatewayEventKind.CLOSED,
                    connection_id=connection_id,
                    close_code=code,
                )
            )

    async def on_transport_error(
        self, connection_id: str, error: Exception
    ) -> None:
        """
        Force-close a connection after a mid-session I/O failure.

        The connection goes straight to CLOSED, skipping CLOSING, and
        observers receive a TransportError. Never raises.
        """
        connection = self.registry.get(connection_id)
        if connection is None:
            logger.debug(
                f"Transport error for unknown connection {connection_id}: {error}"
            )
            return

        transport_error = (
            error
            if isinstance(error, TransportError)
            else TransportError(str(error), connection_id=connection_id)
        )
        logger.warning(
            f"Transport error on connection {connection_id}: {error!r}"
        )
        ws_transport_errors_total.inc()

        if not self._mark_closed(connection, ABNORMAL_CLOSURE_CODE):
            return

        ws_connections_closed_total.labels(reason="transport_error").inc()
        await self._close_transport(
            connection,
            status.WS_1011_INTERNAL_ERROR,
            "",
            FORCE_CLOSE_TIMEOUT_SECONDS,
        )
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.TRANSPORT_ERROR,
                connection_id=connection_id,
                close_code=ABNORMAL_CLOSURE_CODE,
                error=transport_error,
            )
        )
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.CLOSED,
                connection_id=connection_id,
                close_code=ABNORMAL_CLOSURE_CODE,
            )
        )

    async def send(self, connection_id: str, payload: Any) -> bool:
        """
        Send a payload to one connection.

        The payload is encoded before the connection is touched; an encoding
        error propagates to the caller and leaves the connection open.

        Returns:
            True if the frame was written, False if the connection is not
            open or the write failed (the connection is then force-closed).
        """
        connection = self.registry.get(connection_id)
        if connection is None or not connection.is_open:
            logger.debug(f"Cannot send to connection {connection_id}: not open")
            return False

        frame = connection.format.serialize(payload)
        return await self._send_frame(connection, frame)

    async def broadcast(
        self, payload: Any, predicate: ConnectionPredicate | None = None
    ) -> BroadcastResult:
        """
        Send a payload to every open connection matching `predicate`.

        Iterates a point-in-time snapshot of the registry and sends
        concurrently. The payload is encoded once per message format before
        any frame is written, so an encoding error reaches the caller without
        affecting any connection. A failing recipient is force-closed and
        reported but does not abort delivery to the others.
        """
        recipients = [
            connection
            for connection in self.registry.snapshot()
            if connection.is_open and (predicate is None or predicate(connection))
        ]
        result = BroadcastResult()

        if not recipients:
            return result

        frames: dict[str, str | bytes] = {}
        for connection in recipients:
            format_name = connection.format.format_name
            if format_name not in frames:
                frames[format_name] = connection.format.serialize(payload)

        start_time = time.time()

        async def safe_send(connection: Connection) -> None:
            frame = frames[connection.format.format_name]
            if await self._send_frame(connection, frame):
                result.delivered.append(connection.id)
            else:
                result.failed.append(connection.id)

        await asyncio.gather(*[safe_send(connection) for connection in recipients])
        ws_broadcast_duration_seconds.observe(time.time() - start_time)

        if result.failed:
            logger.warning(
                f"Broadcast delivered to {len(result.delivered)}/{result.total} "
                f"connections"
            )

        return result

    async def shutdown(self, grace: float | None = None) -> None:
        """
        Close every connection and stop background tasks.

        Open connections go through CLOSING with a bounded grace period;
        connections still registered afterwards are force-closed. New
        upgrade requests are rejected from the moment this is called.
        """
        grace = self.settings.SHUTDOWN_GRACE_SECONDS if grace is None else grace
        self._shutting_down = True

        logger.info(
            f"Gateway shutdown initiated ({len(self.registry)} connections, "
            f"grace period {grace}s)"
        )

        if self._tasks:
            logger.info(f"Cancelling {len(self._tasks)} background tasks")
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()

        async def close_one(connection: Connection) -> None:
            if connection.is_open:
                await self.on_close(
                    connection.id,
                    code=status.WS_1001_GOING_AWAY,
                    reason=CLOSE_REASON_SHUTDOWN,
                    grace=grace,
                )
            else:
                await connection.wait_closed(timeout=grace)

        connections = self.registry.snapshot()
        if connections:
            try:
                await asyncio.wait_for(
                    asyncio.gather(
                        *[close_one(connection) for connection in connections],
                        return_exceptions=True,
                    ),
                    timeout=grace + self.settings.WS_CLOSE_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                logger.warning("Graceful close did not finish within grace period")

        for connection in self.registry.snapshot():
            await self._force_close(connection)

        logger.info("Gateway shutdown complete")

    def stats(self) -> dict[str, Any]:
        return {
            "active_connections": len(self.registry),
            "shutting_down": self._shutting_down,
        }

    def _validate_upgrade(self, websocket: WebSocket) -> None:
        if self._shutting_down:
            raise UpgradeError(
                "Gateway is shutting down",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        max_connections = self.settings.MAX_CONNECTIONS
        if (
            max_connections
            and len(self.registry) + self._pending_handshakes >= max_connections
        ):
            raise UpgradeError(
                f"Connection limit of {max_connections} reached",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        allowed_origins = self.settings.WS_ALLOWED_ORIGINS
        if allowed_origins:
            origin = websocket.headers.get("origin")
            if origin not in allowed_origins:
                raise UpgradeError(
                    f"Origin {origin!r} is not allowed",
                    status_code=status.HTTP_403_FORBIDDEN,
                )

    def _negotiate_subprotocol(self, websocket: WebSocket) -> str | None:
        supported = self.settings.WS_SUBPROTOCOLS
        if not supported:
            return None

        offered = websocket.scope.get("subprotocols") or []
        for subprotocol in offered:
            if subprotocol in supported:
                return subprotocol

        raise UpgradeError(
            f"No supported subprotocol offered (offered: {offered}, "
            f"supported: {supported})",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    def _mark_closed(self, connection: Connection, code: int) -> bool:
        """
        Move a connection to CLOSED and drop it from the registry.

        Both happen in one synchronous step. Returns False if the connection
        was already closed.
        """
        if connection.is_closed:
            return False

        connection.close_code = code
        connection.transition(ConnectionState.CLOSED)
        if self.registry.remove(connection.id) is not None:
            ws_connections_active.dec()
        return True

    async def _send_frame(
        self, connection: Connection, frame: str | bytes
    ) -> bool:
        # State may have moved on since the caller's snapshot
        if not connection.is_open:
            return False

        try:
            await connection.send_frame(frame)
        except TransportError as ex:
            await self.on_transport_error(connection.id, ex)
            return False

        ws_messages_sent_total.inc()
        return True

    async def _close_transport(
        self, connection: Connection, code: int, reason: str, timeout: float
    ) -> None:
        try:
            await asyncio.wait_for(
                connection.transport.close(code=code, reason=reason or None),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Closing transport of connection {connection.id} timed out"
            )
        except (WebSocketDisconnect, RuntimeError, OSError) as ex:
            # Peer already gone or close frame already sent
            logger.debug(
                f"Transport of connection {connection.id} already closed: {ex}"
            )

    async def _force_close(self, connection: Connection) -> None:
        logger.warning(f"Force-closing connection {connection.id}")
        if not self._mark_closed(connection, status.WS_1001_GOING_AWAY):
            return

        ws_connections_closed_total.labels(reason="forced").inc()
        await self._close_transport(
            connection,
            status.WS_1001_GOING_AWAY,
            CLOSE_REASON_SHUTDOWN,
            FORCE_CLOSE_TIMEOUT_SECONDS,
        )
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.CLOSED,
                connection_id=connection.id,
                close_code=status.WS_1001_GOING_AWAY,
            )
        )

    async def _drop_message(self, connection_id: str) -> None:
        logger.debug(f"Dropping message for stale connection {connection_id}")
        ws_messages_dropped_total.inc()
        await self._notify(
            GatewayEvent(
                kind=GatewayEventKind.MESSAGE_DROPPED,
                connection_id=connection_id,
            )
        )

    async def _notify(self, event: GatewayEvent) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as ex:
                logger.error(
                    f"Gateway observer {observer!r} failed on {event.kind}: {ex!r}"
                )

