"""Span-per-call decorator for ``UserRepository``."""

from typing import Final

from tracetour.core.context import RequestContext
from tracetour.core.error_context import mask_email
from tracetour.core.observability import add_span_attributes, trace_operation
from tracetour.domain.models import User
from tracetour.domain.repositories import UserRepository

DB_TYPE: Final[str] = "postgresql"


class TracedUserRepository:
    """Wraps a ``UserRepository`` with ``postgresql.<operation>`` spans.

    Failures are tagged on the span and re-raised unchanged.
    """

    def __init__(self, inner: UserRepository) -> None:
        self._inner = inner

    async def create(self, ctx: RequestContext, user: User) -> User:
        with trace_operation(
            f"{DB_TYPE}.create_user",
            **{
                "db.type": DB_TYPE,
                "db.operation": "INSERT",
                "user.name": user.name,
                "user.email": mask_email(user.email),
            },
        ) as span:
            try:
                created = await self._inner.create(ctx, user)
            except Exception:
                add_span_attributes(span, **{"query.success": False})
                raise
            add_span_attributes(span, **{"query.success": True, "user.id": created.id})
            return created

    async def find_by_id(self, ctx: RequestContext, user_id: int) -> User:
        with trace_operation(
            f"{DB_TYPE}.find_user_by_id",
            **{"db.type": DB_TYPE, "db.operation": "SELECT", "user.id": user_id},
        ) as span:
            try:
                user = await self._inner.find_by_id(ctx, user_id)
            except Exception:
                add_span_attributes(span, **{"query.success": False})
                raise
            add_span_attributes(span, **{"query.success": True})
            return user

    async def find_all(self, ctx: RequestContext) -> list[User]:
        with trace_operation(
            f"{DB_TYPE}.find_all_users",
            **{"db.type": DB_TYPE, "db.operation": "SELECT"},
        ) as span:
            try:
                users = await self._inner.find_all(ctx)
            except Exception:
                add_span_attributes(span, **{"query.success": False})
                raise
            add_span_attributes(
                span, **{"query.success": True, "users.count": len(users)}
            )
            return users
