"""Repository ports.

The use cases only know these protocols. Concrete stores (PostgreSQL, Redis)
and their traced decorators all satisfy them, so tracing can be switched on
or off without the callers noticing.

Every operation takes the request context first so implementations can check
for cancellation and reach the request-scoped logger.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tracetour.core.exceptions import TraceTourError

if TYPE_CHECKING:
    from tracetour.core.context import RequestContext
    from tracetour.domain.models import User


@runtime_checkable
class UserRepository(Protocol):
    """Durable user storage."""

    async def create(self, ctx: "RequestContext", user: "User") -> "User":
        """Persist ``user`` and return it with the store-assigned ID.

        Raises:
            ConflictError: If the e-mail address is already registered.
            InternalError: On any other backend failure.
        """
        ...

    async def find_by_id(self, ctx: "RequestContext", user_id: int) -> "User":
        """Return the user with ``user_id``.

        Raises:
            NotFoundError: If no such user exists.
            InternalError: On backend failure.
        """
        ...

    async def find_all(self, ctx: "RequestContext") -> list["User"]:
        """Return users newest first, capped at ``FIND_ALL_LIMIT``."""
        ...


@dataclass(frozen=True, slots=True)
class CacheHit:
    """The key was present."""

    value: str


@dataclass(frozen=True, slots=True)
class CacheMiss:
    """The key was absent or expired."""


@dataclass(frozen=True, slots=True)
class CacheFailure:
    """The backend could not be asked. Never to be confused with a miss."""

    error: TraceTourError


type CacheResult = CacheHit | CacheMiss | CacheFailure


@runtime_checkable
class CacheRepository(Protocol):
    """Key/value cache with a fixed time-to-live."""

    @property
    def ttl_seconds(self) -> int:
        """Time-to-live applied to every ``set``."""
        ...

    async def set(self, ctx: "RequestContext", key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        Raises:
            CacheError: On backend failure.
        """
        ...

    async def get(self, ctx: "RequestContext", key: str) -> CacheResult:
        """Look up ``key``. Never raises for a miss or a backend failure."""
        ...

    async def delete(self, ctx: "RequestContext", key: str) -> None:
        """Remove ``key``. Deleting a missing key is not an error.

        Raises:
            CacheError: On backend failure.
        """
        ...


@dataclass(frozen=True, slots=True)
class RepositoryLocator:
    """The repositories a request may use. Shared read-only by all requests."""

    users: UserRepository
    cache: CacheRepository
