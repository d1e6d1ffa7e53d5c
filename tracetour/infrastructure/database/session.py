"""Async database engine and session lifecycle management.

A single engine (and therefore a single connection pool) is shared by the
whole process through ``_DatabaseManager``. Sessions come from
``get_async_session``, which commits on success and rolls back on error.

When SQL logging is enabled, cursor events time every statement and queries
at or above ``slow_query_threshold_ms`` are logged with sanitized parameters.
"""

import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from weakref import WeakKeyDictionary

from loguru import logger
from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.engine.interfaces import DBAPICursor, ExecutionContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tracetour.core.config import DatabaseConfig, get_settings
from tracetour.core.constants import LAYER_REPOSITORY, MILLISECONDS_PER_SECOND
from tracetour.core.context import CorrelationContext
from tracetour.core.error_context import sanitize_sql_params
from tracetour.core.observability import current_trace_ids

POOL_RECYCLE_SECONDS = 3600
COMMAND_TIMEOUT_SECONDS = 30
MAX_LOGGED_STATEMENT_LENGTH = 500

_query_start_times: WeakKeyDictionary[ExecutionContext, float] = WeakKeyDictionary()


def _before_cursor_execute(
    _conn: Connection,
    _cursor: DBAPICursor,
    _statement: str,
    _parameters: Any,
    context: ExecutionContext,
    _executemany: bool,
) -> None:
    _query_start_times[context] = time.perf_counter()


def _after_cursor_execute(
    _conn: Connection,
    cursor: DBAPICursor,
    statement: str,
    parameters: Any,
    context: ExecutionContext,
    executemany: bool,
) -> None:
    """Log statements that ran at or above the slow query threshold."""
    start_time = _query_start_times.pop(context, None)
    if start_time is None:
        return

    duration_ms = round((time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND, 2)
    threshold_ms = get_settings().log_config.slow_query_threshold_ms
    if duration_ms < threshold_ms:
        return

    trace_id, span_id = current_trace_ids()
    clean_statement = " ".join(statement.split())[:MAX_LOGGED_STATEMENT_LENGTH]
    logger.bind(
        layer=LAYER_REPOSITORY,
        query=clean_statement,
        duration_ms=duration_ms,
        rows_affected=getattr(cursor, "rowcount", -1),
        parameters=sanitize_sql_params(parameters),
        executemany=executemany,
        threshold_ms=threshold_ms,
        correlation_id=CorrelationContext.get_correlation_id(),
        trace_id=trace_id,
        span_id=span_id,
    ).warning("Slow query: {:.2f}ms", duration_ms)


def create_database_engine(config: DatabaseConfig | None = None) -> AsyncEngine:
    """Create an async engine with connection pooling.

    Args:
        config: Database configuration. Defaults to the application settings.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    settings = get_settings()
    db_config = config or settings.database_config

    engine = create_async_engine(
        db_config.database_url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=db_config.pool_pre_ping,
        echo=db_config.echo,
        pool_recycle=POOL_RECYCLE_SECONDS,
        connect_args={"command_timeout": COMMAND_TIMEOUT_SECONDS},
    )

    if settings.log_config.enable_sql_logging:
        sync_engine = engine.sync_engine
        event.listen(sync_engine, "before_cursor_execute", _before_cursor_execute)
        event.listen(sync_engine, "after_cursor_execute", _after_cursor_execute)

    logger.info(
        "Created database engine",
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        sql_logging=settings.log_config.enable_sql_logging,
    )
    return engine


class _DatabaseManager:
    """Lazily creates and owns the process-wide engine and session factory."""

    def __init__(self) -> None:
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._lock = threading.Lock()

    def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            with self._lock:
                if self._engine is None:
                    self._engine = create_database_engine()
        return self._engine

    def get_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            engine = self.get_engine()
            with self._lock:
                if self._session_factory is None:
                    self._session_factory = async_sessionmaker(
                        engine, class_=AsyncSession, expire_on_commit=False
                    )
        return self._session_factory

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self.reset()

    def reset(self) -> None:
        """Forget the engine without disposing it. Used by tests."""
        self._engine = None
        self._session_factory = None


_db_manager = _DatabaseManager()


def get_engine() -> AsyncEngine:
    """Get or create the process-wide async engine."""
    return _db_manager.get_engine()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the process-wide session factory."""
    return _db_manager.get_session_factory()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Open a session that commits on success and rolls back on error.

    Yields:
        AsyncGenerator[AsyncSession]: Database session.

    Example:
        async with get_async_session() as session:
            result = await session.execute(select(UserRecord))
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_database() -> None:
    """Dispose the engine. Called on application shutdown."""
    await _db_manager.close()


async def check_database_connection() -> tuple[bool, str | None]:
    """Check if the database answers a trivial query.

    Returns:
        tuple[bool, str | None]: Success flag and the error message on failure.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return False, str(e)
    else:
        return True, None
