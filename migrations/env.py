"""Alembic environment for the TraceTour schema.

The database URL always comes from the TraceTour settings (``DATABASE_CONFIG__
DATABASE_URL``), never from ``alembic.ini``, so migrations and the service
target the same database.
"""

import asyncio

from alembic import context
from loguru import logger
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from tracetour.core.config import DatabaseConfig, get_settings
from tracetour.infrastructure.database import models  # noqa: F401 - registers tables
from tracetour.infrastructure.database.base import Base

target_metadata = Base.metadata


def _configure(**options: object) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **options,
    )


def run_migrations_offline(db_config: DatabaseConfig) -> None:
    """Emit the migration SQL to the script output instead of executing it."""
    logger.info("Running migrations in offline mode")
    _configure(
        url=db_config.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync_migrations(connection: Connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online(db_config: DatabaseConfig) -> None:
    """Apply migrations through a throwaway, unpooled async engine."""
    logger.info("Running migrations in online mode with async engine")
    connectable = async_engine_from_config(
        {
            "sqlalchemy.url": db_config.database_url,
            "sqlalchemy.echo": db_config.echo,
        },
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_run_sync_migrations)
    finally:
        await connectable.dispose()


database_config = get_settings().database_config
if context.is_offline_mode():
    run_migrations_offline(database_config)
else:
    asyncio.run(run_migrations_online(database_config))
