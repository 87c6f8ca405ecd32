import asyncio
from typing import TYPE_CHECKING, Any

from starlette import status
from starlette.endpoints import WebSocketEndpoint
from starlette.responses import PlainTextResponse
from starlette.websockets import WebSocket, WebSocketDisconnect

from wsgateway.constants import CLOSE_REASON_UNSUPPORTED_DATA
from wsgateway.exceptions import TransportError, UpgradeError
from wsgateway.logging import clear_log_context, logger, set_log_context

if TYPE_CHECKING:
    from wsgateway.connection import Connection
    from wsgateway.gateway import ConnectionGateway


class GatewayWebSocketEndpoint(WebSocketEndpoint):  # type: ignore[misc]
    """
    WebSocket endpoint bound to a ConnectionGateway.

    Runs the receive loop of one connection and maps transport events onto
    gateway operations: upgrade -> `on_connect`, frame -> `on_message`,
    peer close -> `on_close`, I/O failure -> `on_transport_error`.
    """

    encoding = None  # Text and binary frames are both accepted
    gateway: "ConnectionGateway"

    async def dispatch(self) -> None:
        """
        Manage the connection lifecycle.

        1. Hands the upgrade request to the gateway; a rejected upgrade gets
           an HTTP denial response (or a policy-violation close).
        2. Receives frames in arrival order and delivers each one to the
           gateway before reading the next.
        3. Stops once the connection is CLOSED, whoever closed it.
        """
        websocket = WebSocket(self.scope, receive=self.receive, send=self.send)

        try:
            connection = await self.gateway.on_connect(websocket)
        except UpgradeError as ex:
            await self.reject(websocket, ex)
            return

        set_log_context(connection_id=connection.id, path=connection.path)

        try:
            while not connection.is_closed:
                message = await websocket.receive()

                if message["type"] == "websocket.receive":
                    await self.handle_frame(connection, message)
                elif message["type"] == "websocket.disconnect":
                    close_code = int(
                        message.get("code") or status.WS_1000_NORMAL_CLOSURE
                    )
                    await self.gateway.on_close(
                        connection.id, code=close_code, peer_initiated=True
                    )
                    break
        except WebSocketDisconnect as exc:
            await self.gateway.on_close(
                connection.id, code=exc.code, peer_initiated=True
            )
        except asyncio.CancelledError:
            await self.gateway.on_transport_error(
                connection.id,
                TransportError("Receive loop cancelled", connection.id),
            )
            raise
        except Exception as exc:
            # Catch-all for unexpected transport failures
            await self.gateway.on_transport_error(connection.id, exc)
        finally:
            clear_log_context()

    async def handle_frame(
        self, connection: "Connection", message: dict[str, Any]
    ) -> None:
        """
        Decode one inbound frame and deliver it to the gateway.

        A frame that does not match the connection's message format closes
        the connection with 1003 (unsupported data).
        """
        frame = message.get("text")
        if frame is None:
            frame = message.get("bytes", b"")

        try:
            payload = connection.format.deserialize(frame)
        except ValueError as ex:
            # ValueError: Invalid JSON or envelope (pydantic ValidationError)
            logger.debug(f"Received invalid data from connection {connection.id}: {ex}")
            await self.gateway.on_close(
                connection.id,
                code=status.WS_1003_UNSUPPORTED_DATA,
                reason=CLOSE_REASON_UNSUPPORTED_DATA,
            )
            return

        await self.gateway.on_message(connection.id, payload)

    async def reject(self, websocket: WebSocket, error: UpgradeError) -> None:
        """
        Reject an upgrade request.

        Sends an HTTP error response when the server supports the
        `websocket.http.response` extension, otherwise closes the socket
        before accepting it (the server then answers 403).
        """
        try:
            if "websocket.http.response" in (self.scope.get("extensions") or {}):
                await websocket.send_denial_response(
                    PlainTextResponse(str(error), status_code=error.status_code)
                )
            else:
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        except (RuntimeError, OSError) as ex:
            logger.debug(f"Could not send upgrade rejection: {ex}")


def create_gateway_endpoint(
    gateway: "ConnectionGateway",
) -> type[GatewayWebSocketEndpoint]:
    """Build an endpoint class bound to `gateway`."""
    return type(
        "GatewayEndpoint", (GatewayWebSocketEndpoint,), {"gateway": gateway}
    )
