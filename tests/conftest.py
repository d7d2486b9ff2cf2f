"""Test fixtures — a fresh app (and fresh hubs) per test.

Learn: create_app() takes a Settings object, so every test gets its own
HubRegistry and nothing leaks between tests. HTTP tests use httpx over
ASGITransport (no lifespan, so no Redis). WebSocket tests use Starlette's
TestClient inside a `with` block so all sockets share one event loop.
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from reviewrelay.config import Settings
from reviewrelay.main import create_app


def make_settings(**overrides) -> Settings:
    """Settings for tests — Redis points at a closed port so startup skips it."""
    values = {
        "environment": "development",
        "redis_url": "redis://127.0.0.1:1/0",
        "log_level": "warning",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def relay_settings() -> Settings:
    return make_settings()


@pytest.fixture()
def app(relay_settings):
    return create_app(relay_settings)


@pytest_asyncio.fixture()
async def client(app):
    """Async HTTP client against the ASGI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def ws_client(app):
    """Sync TestClient with lifespan running, for WebSocket sessions."""
    with TestClient(app) as tc:
        yield tc
