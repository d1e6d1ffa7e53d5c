"""User use cases with cache-aside reads.

The store is the source of truth. The cache is best effort: a cache failure
is logged (alerting) and tagged on the span, but never fails a request that
the store could serve.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pydantic

from tracetour.core.constants import LAYER_USECASE, USER_CACHE_KEY_PREFIX
from tracetour.core.error_context import mask_email
from tracetour.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    TraceTourError,
)
from tracetour.core.logging import (
    log_error_with_trace,
    log_warning_with_trace,
    log_with_trace,
)
from tracetour.core.observability import add_span_attributes, trace_operation
from tracetour.domain.models import User
from tracetour.domain.repositories import (
    CacheFailure,
    CacheHit,
    CacheRepository,
    UserRepository,
)

if TYPE_CHECKING:
    from loguru import Logger
    from opentelemetry.trace import Span

    from tracetour.core.context import RequestContext


def user_cache_key(user_id: int) -> str:
    """Cache key for a user, e.g. ``user:42``."""
    return f"{USER_CACHE_KEY_PREFIX}{user_id}"


class UserUseCase:
    """Create and read users.

    Args:
        users: Durable user store.
        cache: Cache in front of the store.
        logger: Logger for trace-correlated entries, usually request-scoped.
    """

    def __init__(
        self, users: UserRepository, cache: CacheRepository, logger: "Logger"
    ) -> None:
        self._users = users
        self._cache = cache
        self._logger = logger

    async def create_user(self, ctx: "RequestContext", name: str, email: str) -> User:
        """Persist a new user, then cache it.

        Raises:
            ConflictError: If the e-mail address is already registered.
            InternalError: If the store fails.
        """
        with trace_operation(
            "usecase.create_user",
            **{"user.name": name, "user.email": mask_email(email)},
        ) as span:
            log_with_trace(
                self._logger, LAYER_USECASE, "Creating user", **{"user.name": name}
            )

            user = User(name=name, email=email, created_at=datetime.now(UTC))
            try:
                user = await self._users.create(ctx, user)
            except ConflictError as e:
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "User already exists",
                    e,
                    notify=False,
                    span=span,
                )
                raise
            except InternalError as e:
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "Failed to create user in repository",
                    e,
                    span=span,
                )
                raise InternalError(
                    "failed to create user",
                    context={"operation": "create_user"},
                    cause=e,
                ) from e

            add_span_attributes(span, **{"user.id": user.id})
            log_with_trace(
                self._logger,
                LAYER_USECASE,
                "User created, setting cache",
                **{"user.id": user.id},
            )
            await self._cache_user(ctx, span, user)
            return user

    async def get_user(self, ctx: "RequestContext", user_id: int) -> User:
        """Return a user from the cache, falling back to the store.

        A missing user is never cached.

        Raises:
            NotFoundError: If the user does not exist.
            InternalError: If the store fails.
        """
        with trace_operation("usecase.get_user", **{"user.id": user_id}) as span:
            log_with_trace(
                self._logger,
                LAYER_USECASE,
                "Getting user by ID",
                **{"user.id": user_id},
            )
            key = user_cache_key(user_id)

            cached = await self._read_cache(ctx, span, key)
            if cached is not None:
                add_span_attributes(
                    span, **{"cache.hit": True, "data.source": "cache"}
                )
                log_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "User found in cache",
                    **{"user.id": user_id, "cache.key": key},
                )
                return cached

            add_span_attributes(span, **{"cache.hit": False, "data.source": "database"})
            log_with_trace(
                self._logger,
                LAYER_USECASE,
                "Cache miss, fetching from database",
                **{"user.id": user_id},
            )

            try:
                user = await self._users.find_by_id(ctx, user_id)
            except NotFoundError as e:
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "User not found",
                    e,
                    notify=False,
                    span=span,
                    **{"user.id": user_id},
                )
                raise
            except InternalError as e:
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "Failed to get user from repository",
                    e,
                    span=span,
                    **{"user.id": user_id},
                )
                raise InternalError(
                    "failed to get user",
                    context={"operation": "get_user", "user.id": user_id},
                    cause=e,
                ) from e

            add_span_attributes(span, **{"user.name": user.name})
            await self._cache_user(ctx, span, user)
            return user

    async def get_all_users(self, ctx: "RequestContext") -> list[User]:
        """Return up to 100 users, newest first, straight from the store.

        Raises:
            InternalError: If the store fails.
        """
        with trace_operation(
            "usecase.get_all_users", **{"data.source": "database"}
        ) as span:
            log_with_trace(self._logger, LAYER_USECASE, "Fetching all users")
            try:
                users = await self._users.find_all(ctx)
            except InternalError as e:
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "Failed to fetch users from repository",
                    e,
                    span=span,
                )
                raise InternalError(
                    "failed to get users",
                    context={"operation": "get_all_users"},
                    cause=e,
                ) from e

            add_span_attributes(
                span, **{"users.count": len(users), "query.success": True}
            )
            log_with_trace(
                self._logger,
                LAYER_USECASE,
                "Users fetched successfully",
                **{"users.count": len(users)},
            )
            return users

    async def simulate_panic(self, ctx: "RequestContext") -> None:
        """Fail with an unexpected error a few frames below the caller."""
        with trace_operation("usecase.simulate_panic"):
            log_warning_with_trace(
                self._logger, LAYER_USECASE, "About to fail on purpose"
            )
            _dereference(_load_missing_dependency())

    async def _read_cache(
        self, ctx: "RequestContext", span: "Span", key: str
    ) -> User | None:
        result = await self._cache.get(ctx, key)
        match result:
            case CacheHit(value=value):
                try:
                    return User.model_validate_json(value)
                except pydantic.ValidationError as e:
                    log_warning_with_trace(
                        self._logger,
                        LAYER_USECASE,
                        "Discarding undecodable cache entry",
                        **{"cache.key": key, "error.msg": str(e)},
                    )
                    return None
            case CacheFailure(error=error):
                add_span_attributes(span, **{"cache.error": error.message})
                log_error_with_trace(
                    self._logger,
                    LAYER_USECASE,
                    "Failed to read user cache",
                    error,
                    span=span,
                    mark_span=False,
                    **{"cache.key": key},
                )
                return None
            case _:
                return None

    async def _cache_user(
        self, ctx: "RequestContext", span: "Span", user: User
    ) -> None:
        key = user_cache_key(user.id)
        try:
            await self._cache.set(ctx, key, user.model_dump_json())
        except TraceTourError as e:
            if not e.should_notify:
                raise
            add_span_attributes(span, **{"cache.set": False, "cache.error": e.message})
            log_error_with_trace(
                self._logger,
                LAYER_USECASE,
                "Failed to set user cache",
                e,
                span=span,
                mark_span=False,
                **{"cache.key": key},
            )
            return
        add_span_attributes(span, **{"cache.set": True})
        log_with_trace(
            self._logger,
            LAYER_USECASE,
            "User cached successfully",
            **{"cache.key": key},
        )


def _load_missing_dependency() -> object | None:
    return None


def _dereference(dependency: object) -> None:
    if dependency is None:
        msg = "attempted to use a dependency that was never initialised"
        raise RuntimeError(msg)
