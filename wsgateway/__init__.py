# Uvicorn application factory <https://www.uvicorn.org/#application-factories>
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from wsgateway.gateway import ConnectionGateway
from wsgateway.logging import logger, setup_logging
from wsgateway.routing import collect_subrouters
from wsgateway.settings import GatewaySettings, load_settings

__version__ = "1.0.0"


def setup_websocket(
    app: FastAPI, settings: GatewaySettings, path: str | None = None
) -> ConnectionGateway:
    """
    Create a gateway for `settings` and attach it to `app`.

    Raises:
        AttachError: If `app` already carries a gateway.
    """
    gateway = ConnectionGateway(settings)
    gateway.attach(app, path)
    return gateway


def create_app(
    settings: GatewaySettings, gateway: ConnectionGateway | None = None
) -> FastAPI:
    """
    Initializes and configures the FastAPI application.

    The application carries the HTTP routers collected from `api/http`
    (health, metrics) and the WebSocket gateway attached on
    `settings.WS_PATH`. The lifespan starts the gateway's background tasks
    and shuts the gateway down (closing every connection within the grace
    period) before the application stops.

    Args:
        settings: Explicit gateway configuration.
        gateway: Optional pre-built, not yet attached gateway.

    Raises:
        AttachError: If `gateway` is already attached to another listener.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Application startup initiated")
        app.state.gateway.start()

        yield

        logger.info("Application shutdown initiated")
        await app.state.gateway.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="WebSocket connection gateway",
        description="WebSocket connection gateway",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(collect_subrouters())

    if gateway is None:
        setup_websocket(app, settings)
    else:
        gateway.attach(app)

    return app


def application() -> FastAPI:
    """
    Factory for `uvicorn --factory wsgateway:application`.

    Reads the configuration from the environment.

    Raises:
        ConfigError: If the configuration is missing or invalid.
    """
    settings = load_settings()
    setup_logging(settings)
    return create_app(settings)
