"""
Pytest configuration and fixtures for relay tests.
"""
import pytest
from fastapi.testclient import TestClient

from vaultrelay.config import Settings
from vaultrelay.main import create_app
from vaultrelay.services.relay_service import RelayService


@pytest.fixture
def settings():
    """In-memory database, no rate limiting, short long-poll cap."""
    return Settings(
        database_url="sqlite://",
        log_level="WARNING",
        rate_limit_enabled=False,
        max_content_bytes=64 * 1024,
        max_wait_seconds=2.0,
    )


@pytest.fixture
def app(settings):
    """Fresh FastAPI application (own relay, own database) per test."""
    app = create_app(settings)
    yield app
    app.state.database.dispose()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def relay():
    return RelayService()


@pytest.fixture
def relay_of(app):
    """Accessor for the relay owned by the app fixture."""
    return lambda: app.state.relay
