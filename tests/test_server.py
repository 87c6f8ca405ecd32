"""Tests for the process bootstrap."""

from unittest.mock import AsyncMock, patch

import pytest
import uvicorn

from tests.mocks.settings_mocks import make_settings
from wsgateway.logging import ExcludeMetricsFilter
from wsgateway.server import GatewayServer, build_log_config, build_server


def test_build_server_attaches_gateway():
    settings = make_settings(HOST="127.0.0.1", PORT=9123)

    server = build_server(settings)

    assert isinstance(server, GatewayServer)
    assert server.config.host == "127.0.0.1"
    assert server.config.port == 9123
    assert server.config.app.state.gateway is server.gateway


def test_build_log_config_filters_monitoring_paths():
    log_config = build_log_config(make_settings())

    exclude = log_config["filters"]["exclude_metrics"]
    assert exclude["()"] == "wsgateway.logging.ExcludeMetricsFilter"
    assert exclude["excluded_paths"] == ["/metrics", "/health"]
    assert log_config["handlers"]["access"]["filters"] == ["exclude_metrics"]
    assert ExcludeMetricsFilter.__module__ == "wsgateway.logging"


@pytest.mark.asyncio
async def test_gateway_shuts_down_before_listener():
    """Test connections are drained before the listener stops."""
    server = build_server(make_settings())
    order = []

    async def gateway_shutdown(*args, **kwargs):
        order.append("gateway")

    async def listener_shutdown(self, sockets=None):
        order.append("listener")

    server.gateway.shutdown = AsyncMock(side_effect=gateway_shutdown)

    with patch.object(uvicorn.Server, "shutdown", listener_shutdown):
        await server.shutdown()

    assert order == ["gateway", "listener"]
