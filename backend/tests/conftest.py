"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from roomcast.config import AppSettings, reset_config
from roomcast.main import create_app


@pytest.fixture(autouse=True)
def _fresh_config():
    """Never leak a cached config between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def settings() -> AppSettings:
    """Default settings; override in a test module to change room limits."""
    return AppSettings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Provide a TestClient with the app lifespan running.

    Entering the client as a context manager makes every WebSocket session
    share one event loop, which the per-room locks and queues rely on.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def broadcast_server(app):
    return app.state.broadcast_server
