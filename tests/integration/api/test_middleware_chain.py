"""Integration tests for the middleware chain and framework-level responses."""

from typing import Any

import pytest
import pytest_check
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

from tracetour.api.main import create_app
from tracetour.core import logging as tracetour_logging
from tracetour.core.config import Settings
from tracetour.domain.repositories import RepositoryLocator

PROBLEM_BASE = "https://tracetour.example.com/errors"


@pytest.mark.integration
class TestResponseHeaders:
    """Correlation, request and trace headers."""

    async def test_correlation_id_round_trip(self, client: AsyncClient) -> None:
        """Test that the client's correlation ID comes back unchanged."""
        response = await client.get(
            "/api/users", headers={"X-Correlation-ID": "corr-123"}
        )

        assert response.headers["X-Correlation-ID"] == "corr-123"

    async def test_request_id_is_generated_or_echoed(
        self, client: AsyncClient
    ) -> None:
        """Test that X-Request-ID is kept when sent and generated otherwise."""
        echoed = await client.get("/api/users", headers={"X-Request-ID": "req-9"})
        generated = await client.get("/api/users")

        assert echoed.headers["X-Request-ID"] == "req-9"
        assert generated.headers["X-Request-ID"]

    async def test_trace_headers(self, client: AsyncClient) -> None:
        """Test that trace and span IDs are returned as hex strings."""
        response = await client.get("/api/users")

        with pytest_check.check:
            assert len(response.headers["X-Trace-ID"]) == 32
        with pytest_check.check:
            assert len(response.headers["X-Span-ID"]) == 16

    async def test_middleware_spans_share_the_trace(
        self, client: AsyncClient, span_exporter: InMemorySpanExporter
    ) -> None:
        """Test that every span of a request belongs to one trace."""
        response = await client.get("/api/users")

        spans = span_exporter.get_finished_spans()
        names = {s.name for s in spans}
        assert {
            "http.request",
            "middleware.recovery",
            "middleware.logger",
            "middleware.repo_locator",
            "middleware.cors",
            "handler.get_all_users",
            "usecase.get_all_users",
        } <= names
        trace_ids = {format(s.context.trace_id, "032x") for s in spans}
        assert trace_ids == {response.headers["X-Trace-ID"]}


@pytest.mark.integration
class TestFrameworkResponses:
    """Health, unknown routes and CORS."""

    async def test_health(self, client: AsyncClient) -> None:
        """Test the liveness probe body."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Service is healthy"}

    async def test_unknown_route_is_problem(self, client: AsyncClient) -> None:
        """Test that routing failures use the problem format."""
        response = await client.get("/does-not-exist")

        body = response.json()
        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        assert body["type"] == f"{PROBLEM_BASE}/not-found"
        assert body["notify"] is False

    async def test_method_not_allowed(self, client: AsyncClient) -> None:
        """Test that a wrong method is a non-alerting 405 problem."""
        response = await client.delete("/api/users")

        body = response.json()
        assert response.status_code == 405
        assert body["type"] == f"{PROBLEM_BASE}/bad-request"
        assert body["notify"] is False
        assert "GET" in response.headers["allow"]

    async def test_cors_preflight(self, client: AsyncClient) -> None:
        """Test that preflight requests are answered by the CORS middleware."""
        response = await client.options(
            "/api/users",
            headers={
                "Origin": "https://app.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert "POST" in response.headers["access-control-allow-methods"]

    async def test_cors_exposes_trace_headers(self, client: AsyncClient) -> None:
        """Test that browsers may read the trace headers."""
        response = await client.get(
            "/api/users", headers={"Origin": "https://app.example.com"}
        )

        exposed = response.headers["access-control-expose-headers"].lower()
        assert "x-trace-id" in exposed
        assert "x-correlation-id" in exposed


@pytest.mark.integration
class TestClientAddress:
    """Client address recorded by request logging."""

    @pytest.mark.parametrize(
        ("environment", "expected_host"),
        [("production", "203.0.113.7"), ("development", "127.0.0.1")],
    )
    async def test_forwarded_for_trusted_only_in_production(
        self,
        environment: str,
        expected_host: str,
        repository_locator: RepositoryLocator,
        log_records: list[dict[str, Any]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that X-Forwarded-For is only believed in production."""
        # Arrange
        monkeypatch.setattr(tracetour_logging._state, "configured", True)
        settings = Settings(
            _env_file=None,
            environment=environment,
            observability_config={
                "enable_tracing": False,
                "instrument_framework": False,
            },
        )
        app = create_app(settings, locator=repository_locator)

        # Act
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            await ac.get(
                "/api/users", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
            )

        # Assert
        started = [r for r in log_records if r["message"] == "Request started"]
        assert started[0]["extra"]["client_host"] == expected_host
