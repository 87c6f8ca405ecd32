"""
Pytest configuration and fixtures for testing.

This module provides shared fixtures for gateway settings, gateway
instances and mocked WebSocket transports.
"""

import pytest

from tests.mocks.settings_mocks import make_settings
from tests.mocks.websocket_mocks import create_mock_websocket
from wsgateway.gateway import ConnectionGateway


@pytest.fixture
def settings():
    """
    Provides gateway settings for testing.

    Returns:
        GatewaySettings: Settings with short timeouts.
    """
    return make_settings()


@pytest.fixture
def gateway(settings):
    """
    Provides a fresh, unattached ConnectionGateway.

    Args:
        settings: Fixture providing gateway settings

    Returns:
        ConnectionGateway: Gateway instance
    """
    return ConnectionGateway(settings)


@pytest.fixture
def mock_websocket():
    """
    Provides a mock WebSocket transport for testing.

    Returns:
        MagicMock: Mocked WebSocket instance
    """
    return create_mock_websocket()


@pytest.fixture
def events(gateway):
    """
    Collects every event the gateway reports to observers.

    Args:
        gateway: Fixture providing the gateway

    Returns:
        list[GatewayEvent]: Events in notification order
    """
    received = []
    gateway.add_observer(received.append)
    return received
