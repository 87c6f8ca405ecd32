"""Tests for application assembly."""

import pytest
from fastapi import FastAPI

from tests.mocks.settings_mocks import make_settings
from wsgateway import application, create_app, setup_websocket
from wsgateway.exceptions import AttachError, ConfigError
from wsgateway.gateway import ConnectionGateway
from wsgateway.settings import GatewaySettings


def test_setup_websocket_attaches_gateway():
    app = FastAPI()

    gateway = setup_websocket(app, make_settings(WS_PATH="/socket"))

    assert app.state.gateway is gateway
    assert gateway.path == "/socket"


def test_setup_websocket_twice_raises():
    app = FastAPI()
    setup_websocket(app, make_settings())

    with pytest.raises(AttachError):
        setup_websocket(app, make_settings())


def test_create_app_includes_http_routes():
    app = create_app(make_settings())

    paths = {getattr(route, "path", None) for route in app.routes}
    assert {"/health", "/metrics", "/ws"} <= paths


def test_create_app_with_attached_gateway_raises():
    gateway = ConnectionGateway(make_settings())
    create_app(make_settings(), gateway)

    with pytest.raises(AttachError):
        create_app(make_settings(), gateway)


def test_application_factory_requires_port(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in GatewaySettings.model_fields:
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(ConfigError):
        application()


def test_application_factory(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PORT", "8088")

    app = application()

    assert isinstance(app.state.gateway, ConnectionGateway)
    assert app.state.gateway.settings.PORT == 8088
