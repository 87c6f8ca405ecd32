"""Tests for the health check and metrics endpoints."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.mocks.settings_mocks import make_settings
from wsgateway import create_app


@pytest.fixture
def app():
    """
    Create the application with the gateway attached.

    Returns:
        FastAPI: FastAPI application instance.
    """
    return create_app(make_settings())


@pytest.fixture
def client(app):
    """
    Create a test client for the FastAPI application.

    Args:
        app: FastAPI application fixture.

    Returns:
        TestClient: FastAPI test client instance.
    """
    return TestClient(app)


def test_health_endpoint_healthy(client):
    """Test health endpoint while the gateway is running."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "active_connections": 0,
        "shutting_down": False,
    }


def test_health_endpoint_shutting_down(app, client):
    """Test health endpoint reports 503 during shutdown."""
    with patch.object(
        app.state.gateway,
        "stats",
        return_value={"active_connections": 2, "shutting_down": True},
    ):
        response = client.get("/health")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["active_connections"] == 2


def test_health_endpoint_without_gateway():
    """Test health endpoint reports 503 when no gateway is attached."""
    from wsgateway.api.http.health import router

    test_app = FastAPI()
    test_app.include_router(router)

    response = TestClient(test_app).get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_metrics_endpoint(client):
    """Test metrics endpoint exposes gateway metrics."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "ws_connections_active" in response.text
    assert "ws_messages_received_total" in response.text
