"""PostgreSQL implementation of the user repository."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tracetour.core.constants import FIND_ALL_LIMIT
from tracetour.core.context import RequestContext
from tracetour.core.exceptions import ConflictError, InternalError, NotFoundError
from tracetour.domain.models import User
from tracetour.infrastructure.database.models import UserRecord
from tracetour.infrastructure.database.session import get_async_session

type SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SqlUserRepository:
    """Stores users in the ``users`` table.

    Every call runs in its own session (and transaction). The cancellation
    token is checked before a session is opened.

    Args:
        session_factory: Callable returning a session context manager that
            commits on success. Defaults to ``get_async_session``.
    """

    def __init__(self, session_factory: SessionFactory = get_async_session) -> None:
        self._session_factory = session_factory

    async def create(self, ctx: RequestContext, user: User) -> User:
        ctx.cancellation.raise_if_cancelled()
        record = UserRecord.from_entity(user)
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError(
                "user already exists",
                context={"user.email": user.email},
                cause=e,
            ) from e
        except SQLAlchemyError as e:
            raise InternalError(
                "failed to create user",
                context={"db.operation": "insert", "user.email": user.email},
                cause=e,
            ) from e

        ctx.logger.debug("Inserted user {}", record.id)
        return user.model_copy(update={"id": record.id})

    async def find_by_id(self, ctx: RequestContext, user_id: int) -> User:
        ctx.cancellation.raise_if_cancelled()
        try:
            async with self._session_factory() as session:
                record = await session.get(UserRecord, user_id)
                user = record.to_entity() if record is not None else None
        except SQLAlchemyError as e:
            raise InternalError(
                "failed to load user",
                context={"db.operation": "select", "user.id": user_id},
                cause=e,
            ) from e

        if user is None:
            raise NotFoundError("user not found", context={"user.id": user_id})
        return user

    async def find_all(self, ctx: RequestContext) -> list[User]:
        ctx.cancellation.raise_if_cancelled()
        stmt = (
            select(UserRecord)
            .order_by(UserRecord.created_at.desc(), UserRecord.id.desc())
            .limit(FIND_ALL_LIMIT)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                users = [record.to_entity() for record in result.scalars().all()]
        except SQLAlchemyError as e:
            raise InternalError(
                "failed to list users",
                context={"db.operation": "select"},
                cause=e,
            ) from e

        ctx.logger.debug("Loaded {} users", len(users))
        return users
