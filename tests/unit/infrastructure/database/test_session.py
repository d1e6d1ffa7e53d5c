"""Unit tests for tracetour/infrastructure/database/session.py.

Covers slow query logging, engine creation, the process-wide manager and the
session lifecycle.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.exc import OperationalError

from tracetour.core.config import Settings
from tracetour.core.constants import REDACTED
from tracetour.infrastructure.database import session as session_module
from tracetour.infrastructure.database.session import (
    COMMAND_TIMEOUT_SECONDS,
    POOL_RECYCLE_SECONDS,
    _after_cursor_execute,
    _before_cursor_execute,
    _DatabaseManager,
    _query_start_times,
    check_database_connection,
    create_database_engine,
    get_async_session,
)


def use_settings(mocker: MockerFixture, **log_config: Any) -> Settings:
    settings = Settings(_env_file=None, log_config=log_config)
    mocker.patch.object(session_module, "get_settings", return_value=settings)
    return settings


def run_query(statement: str, parameters: Any, executemany: bool = False) -> None:
    context = MagicMock()
    cursor = MagicMock(rowcount=1)
    _before_cursor_execute(MagicMock(), cursor, statement, parameters, context, False)
    _after_cursor_execute(
        MagicMock(), cursor, statement, parameters, context, executemany
    )


@pytest.mark.unit
class TestSlowQueryLogging:
    """Cursor event handlers."""

    def test_slow_query_is_logged_with_sanitized_parameters(
        self, mocker: MockerFixture, log_records: list[dict[str, Any]]
    ) -> None:
        """Test that queries at the threshold are logged without secrets."""
        use_settings(mocker, slow_query_threshold_ms=0)

        run_query(
            "SELECT *\n   FROM users WHERE email = :email",
            {"email": "ada@example.com", "password": "hunter2"},
        )

        slow = [r for r in log_records if r["message"].startswith("Slow query")]
        assert len(slow) == 1
        extra = slow[0]["extra"]
        assert extra["query"] == "SELECT * FROM users WHERE email = :email"
        assert extra["parameters"]["password"] == REDACTED
        assert extra["threshold_ms"] == 0
        assert extra["layer"] == "repository"
        assert slow[0]["level"].name == "WARNING"

    def test_fast_query_is_not_logged(
        self, mocker: MockerFixture, log_records: list[dict[str, Any]]
    ) -> None:
        """Test that queries under the threshold produce no entry."""
        use_settings(mocker, slow_query_threshold_ms=60_000)

        run_query("SELECT 1", None)

        assert not [r for r in log_records if r["message"].startswith("Slow query")]

    def test_unknown_context_is_ignored(
        self, log_records: list[dict[str, Any]]
    ) -> None:
        """Test that an after-event without a matching before-event is a no-op."""
        _after_cursor_execute(
            MagicMock(), MagicMock(), "SELECT 1", None, MagicMock(), False
        )

        assert log_records == []

    def test_start_time_is_consumed(self, mocker: MockerFixture) -> None:
        """Test that timing entries do not accumulate."""
        use_settings(mocker, slow_query_threshold_ms=60_000)
        context = MagicMock()

        _before_cursor_execute(MagicMock(), MagicMock(), "", None, context, False)
        assert context in _query_start_times
        _after_cursor_execute(MagicMock(), MagicMock(), "", None, context, False)

        assert context not in _query_start_times


@pytest.mark.unit
class TestCreateDatabaseEngine:
    """Engine construction."""

    def test_pool_configuration(self, mocker: MockerFixture) -> None:
        """Test that pool settings and timeouts are passed to the engine."""
        use_settings(mocker)
        create = mocker.patch.object(session_module, "create_async_engine")
        listen = mocker.patch.object(session_module.event, "listen")

        create_database_engine()

        kwargs = create.call_args.kwargs
        assert kwargs["pool_recycle"] == POOL_RECYCLE_SECONDS
        assert kwargs["connect_args"] == {"command_timeout": COMMAND_TIMEOUT_SECONDS}
        assert kwargs["pool_size"] == 10
        listen.assert_not_called()

    def test_sql_logging_registers_listeners(self, mocker: MockerFixture) -> None:
        """Test that cursor listeners are attached only when SQL logging is on."""
        use_settings(mocker, enable_sql_logging=True)
        mocker.patch.object(session_module, "create_async_engine")
        listen = mocker.patch.object(session_module.event, "listen")

        create_database_engine()

        events = [call.args[1] for call in listen.call_args_list]
        assert events == ["before_cursor_execute", "after_cursor_execute"]


@pytest.mark.unit
class TestDatabaseManager:
    """The process-wide engine holder."""

    def test_engine_is_created_once(self, mocker: MockerFixture) -> None:
        """Test that repeated calls share one engine and session factory."""
        create = mocker.patch.object(session_module, "create_database_engine")
        mocker.patch.object(session_module, "async_sessionmaker")
        manager = _DatabaseManager()

        assert manager.get_engine() is manager.get_engine()
        assert manager.get_session_factory() is manager.get_session_factory()
        create.assert_called_once()

    async def test_close_disposes_and_resets(self, mocker: MockerFixture) -> None:
        """Test that close disposes the engine and forgets it."""
        engine = mocker.AsyncMock()
        mocker.patch.object(
            session_module, "create_database_engine", return_value=engine
        )
        manager = _DatabaseManager()
        manager.get_engine()

        await manager.close()

        engine.dispose.assert_awaited_once()
        assert manager._engine is None


@pytest.mark.unit
class TestSessionLifecycle:
    """get_async_session and the connectivity check."""

    @pytest.fixture
    def session(self, mocker: MockerFixture) -> MagicMock:
        """Patch the session factory to hand out one mock session."""
        mock_session = mocker.AsyncMock()

        @asynccontextmanager
        async def open_session() -> AsyncGenerator[MagicMock]:
            yield mock_session

        mocker.patch.object(
            session_module, "get_session_factory", return_value=open_session
        )
        return mock_session

    async def test_commits_on_success(self, session: MagicMock) -> None:
        """Test that a clean exit commits."""
        async with get_async_session():
            pass

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    async def test_rolls_back_on_error(self, session: MagicMock) -> None:
        """Test that an error rolls back and propagates."""
        with pytest.raises(ValueError, match="boom"):
            async with get_async_session():
                raise ValueError("boom")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    async def test_check_reports_failure(self, mocker: MockerFixture) -> None:
        """Test that an unreachable database is reported, not raised."""
        engine = MagicMock()
        engine.connect.side_effect = OperationalError(
            "SELECT 1", {}, ConnectionRefusedError("refused")
        )
        mocker.patch.object(session_module, "get_engine", return_value=engine)

        healthy, message = await check_database_connection()

        assert healthy is False
        assert message is not None
        assert "refused" in message
