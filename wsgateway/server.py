"""
Process bootstrap: build the application, attach the gateway and listen.

Teardown order on exit: the gateway closes every connection within its
grace period first, then the listener stops.
"""

import copy
import socket
from typing import Any

import uvicorn
from uvicorn.config import LOGGING_CONFIG

from wsgateway import create_app
from wsgateway.gateway import ConnectionGateway
from wsgateway.logging import logger, setup_logging
from wsgateway.settings import GatewaySettings


class GatewayServer(uvicorn.Server):
    """Uvicorn server that drains the gateway before the listener stops."""

    def __init__(self, config: uvicorn.Config, gateway: ConnectionGateway):
        super().__init__(config)
        self.gateway = gateway

    async def shutdown(self, sockets: list[socket.socket] | None = None) -> None:
        await self.gateway.shutdown()
        await super().shutdown(sockets=sockets)


def build_log_config(settings: GatewaySettings) -> dict[str, Any]:
    """Uvicorn logging config with monitoring paths kept out of access logs."""
    log_config = copy.deepcopy(LOGGING_CONFIG)
    log_config["filters"] = {
        "exclude_metrics": {
            "()": "wsgateway.logging.ExcludeMetricsFilter",
            "excluded_paths": settings.LOG_EXCLUDED_PATHS,
        }
    }
    log_config["handlers"]["access"]["filters"] = ["exclude_metrics"]
    return log_config


def build_server(settings: GatewaySettings) -> GatewayServer:
    """
    Construct the listener with its application and attached gateway.

    Raises:
        AttachError: If the gateway cannot be attached.
    """
    gateway = ConnectionGateway(settings)
    app = create_app(settings, gateway)

    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_config=build_log_config(settings),
        log_level=settings.LOG_LEVEL.lower(),
        timeout_graceful_shutdown=int(
            settings.SHUTDOWN_GRACE_SECONDS + settings.WS_CLOSE_TIMEOUT_SECONDS
        )
        + 1,
    )
    return GatewayServer(config, gateway)


def serve(settings: GatewaySettings) -> None:
    """Run the gateway until the process receives a shutdown signal."""
    setup_logging(settings)
    server = build_server(settings)
    logger.info(
        f"Starting gateway on {settings.HOST}:{settings.PORT}{settings.WS_PATH}"
    )
    server.run()
