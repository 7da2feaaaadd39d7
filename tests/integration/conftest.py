"""Integration test fixtures: the API over an in-memory sandbox gateway."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from charge_engine.api.app import create_app
from charge_engine.config import Settings

from ..conftest import SECRET

APP_HEADERS = {"X-App-ID": "1"}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="info",
        sandbox_secret=SECRET,
        notify_base_url="",
        scheduler_poll_seconds=0,
    )


@pytest.fixture
def app(gateway, settings):
    return create_app(gateway=gateway, settings=settings)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
