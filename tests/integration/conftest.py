"""Shared fixtures for integration tests.

The application is built with ``create_app`` and the in-memory spy
repositories, so the full middleware chain, exception handlers and routers
run without PostgreSQL or Redis.
"""

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tracetour.api.main import create_app
from tracetour.core import logging as tracetour_logging
from tracetour.core.config import Settings
from tracetour.domain.repositories import RepositoryLocator


@pytest.fixture
def app_settings() -> Settings:
    """Settings for the app under test.

    The global tracer provider installed by the root conftest stays in place
    and the demo delay is zero.
    """
    return Settings(
        _env_file=None,
        observability_config={"enable_tracing": False, "instrument_framework": False},
        demo_slow_delay_seconds=0,
    )


@pytest.fixture
def app(
    app_settings: Settings,
    repository_locator: RepositoryLocator,
    monkeypatch: pytest.MonkeyPatch,
) -> FastAPI:
    """Create the application over the spy repositories.

    Logging counts as configured so the capture sinks of the tests survive.
    """
    monkeypatch.setattr(tracetour_logging._state, "configured", True)
    return create_app(app_settings, locator=repository_locator)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Provide an async HTTP client for the application."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
