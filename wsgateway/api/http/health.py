"""Health check endpoint for monitoring gateway status."""

from fastapi import APIRouter, Request, Response, status
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    active_connections: int
    shutting_down: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check endpoint",
    tags=["health"],
)
async def health_check(request: Request, response: Response) -> HealthResponse:
    """
    Check health status of the gateway.

    Returns:
        HealthResponse: Gateway status and the number of live connections.
        Responds with 503 Service Unavailable when no gateway is attached or
        the gateway is shutting down.
    """
    gateway = getattr(request.app.state, "gateway", None)

    if gateway is None:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="unhealthy", active_connections=0, shutting_down=False
        )

    stats = gateway.stats()
    if stats["shutting_down"]:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="unhealthy" if stats["shutting_down"] else "healthy",
        active_connections=stats["active_connections"],
        shutting_down=stats["shutting_down"],
    )
