"""Root conftest.py for TraceTour test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator
from typing import Any

import pytest
from loguru import logger
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

from tracetour.core.config import get_settings
from tracetour.core.context import CorrelationContext

# Import repository fixtures to make them available to all tests
from tests.fixtures.repositories import (
    cache_repository,
    request_context,
    repository_locator,
    user_repository,
)

__all__ = [
    "cache_repository",
    "repository_locator",
    "request_context",
    "user_repository",
]

_SPAN_EXPORTER = InMemorySpanExporter()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers and the in-memory span exporter."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )

    # The global provider can only be installed once per process
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(_SPAN_EXPORTER))
    trace.set_tracer_provider(provider)


@pytest.fixture
def span_exporter() -> Generator[InMemorySpanExporter]:
    """Exporter receiving every span finished during the test."""
    _SPAN_EXPORTER.clear()
    yield _SPAN_EXPORTER
    _SPAN_EXPORTER.clear()


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]]]:
    """Capture Loguru records written during the test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(
        lambda message: records.append(message.record), level="DEBUG"
    )
    yield records
    logger.remove(handler_id)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_correlation_context() -> Generator[None]:
    """Clear the correlation ID before and after each test."""
    CorrelationContext.clear()
    yield
    CorrelationContext.clear()
