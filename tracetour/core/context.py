"""Request context management for per-request state propagation.

A ``RequestContext`` is an immutable chain of key/value nodes. Binding a value
never mutates the receiver; it returns a new context whose parent is the old
one, so a middleware can enrich the context for the layers below it without
affecting anything that already holds a reference.

Keys are members of ``ContextKey`` rather than strings, so two unrelated
components can never collide on a key by accident.

The correlation ID is additionally kept in a ``ContextVar`` so log sinks and
span exporters can read it without access to the carrier.
"""

import uuid
from contextvars import ContextVar
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from loguru import logger as _root_logger

from tracetour.core.exceptions import RequestCancelledError

if TYPE_CHECKING:
    from loguru import Logger

    from tracetour.domain.repositories import RepositoryLocator

# Context variable for storing correlation ID across async boundaries
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class ContextKey(Enum):
    """Keys under which request-scoped values are bound."""

    LOGGER = "logger"
    REPOSITORY_LOCATOR = "repository_locator"
    INTERACTOR = "interactor"


class _Absent:
    """Marker for a key with no bound value."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT: Final = _Absent()


class CancellationToken:
    """Flag tripped when the client abandons the request.

    Work that talks to a backend calls ``raise_if_cancelled`` before each
    round trip so an abandoned request stops as soon as possible.
    """

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    def cancel(self, reason: str = "client disconnected") -> None:
        """Mark the request as cancelled. Idempotent."""
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise RequestCancelledError if the request was cancelled.

        Raises:
            RequestCancelledError: If ``cancel`` has been called.
        """
        if self._cancelled:
            raise RequestCancelledError(context={"reason": self._reason})


class RequestContext:
    """Immutable, append-only carrier of request-scoped values.

    Args:
        correlation_id: Correlation ID of the request. Generated if omitted.
        cancellation: Token shared by every context derived from this one.
    """

    __slots__ = ("_cancellation", "_correlation_id", "_key", "_parent", "_value")

    def __init__(
        self,
        correlation_id: str | None = None,
        cancellation: CancellationToken | None = None,
    ) -> None:
        self._parent: RequestContext | None = None
        self._key: ContextKey | None = None
        self._value: Any = ABSENT
        self._correlation_id = correlation_id or generate_correlation_id()
        self._cancellation = cancellation or CancellationToken()

    @classmethod
    def background(cls) -> "RequestContext":
        """Root context for work that is not tied to an HTTP request."""
        return cls()

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    def with_value(self, key: ContextKey, value: Any) -> "RequestContext":
        """Return a new context with ``key`` bound to ``value``.

        Args:
            key: The key to bind.
            value: The value to bind. Binding ``ABSENT`` is not allowed.

        Returns:
            RequestContext: A new context whose parent is this one.

        Raises:
            TypeError: If ``key`` is not a ContextKey.
            ValueError: If ``value`` is the ABSENT sentinel.
        """
        if not isinstance(key, ContextKey):
            msg = f"Context keys must be ContextKey members, got {key!r}"
            raise TypeError(msg)
        if value is ABSENT:
            msg = "Cannot bind the ABSENT sentinel"
            raise ValueError(msg)

        child = object.__new__(RequestContext)
        child._parent = self
        child._key = key
        child._value = value
        child._correlation_id = self._correlation_id
        child._cancellation = self._cancellation
        return child

    def lookup(self, key: ContextKey) -> Any:
        """Return the nearest value bound to ``key``, or ABSENT.

        Never raises; a later binding shadows an earlier one.
        """
        node: RequestContext | None = self
        while node is not None:
            if node._key is key:
                return node._value
            node = node._parent
        return ABSENT

    # Typed helpers

    def with_logger(self, bound_logger: "Logger") -> "RequestContext":
        return self.with_value(ContextKey.LOGGER, bound_logger)

    def with_repository_locator(
        self, locator: "RepositoryLocator"
    ) -> "RequestContext":
        return self.with_value(ContextKey.REPOSITORY_LOCATOR, locator)

    def with_interactor(self, interactor: object) -> "RequestContext":
        return self.with_value(ContextKey.INTERACTOR, interactor)

    @property
    def logger(self) -> "Logger":
        """Request-scoped logger, falling back to the process-wide logger."""
        bound = self.lookup(ContextKey.LOGGER)
        return _root_logger if bound is ABSENT else bound

    @property
    def repository_locator(self) -> "RepositoryLocator | None":
        """Bound repository locator, or None when nothing was bound."""
        bound = self.lookup(ContextKey.REPOSITORY_LOCATOR)
        return None if bound is ABSENT else bound

    @property
    def interactor(self) -> Any:
        """Bound interactor (use case), or None when nothing was bound."""
        bound = self.lookup(ContextKey.INTERACTOR)
        return None if bound is ABSENT else bound

    def __repr__(self) -> str:
        keys = []
        node: RequestContext | None = self
        while node is not None:
            if node._key is not None:
                keys.append(node._key.value)
            node = node._parent
        return (
            f"RequestContext(correlation_id='{self._correlation_id}', "
            f"keys={list(reversed(keys))})"
        )


class CorrelationContext:
    """Access to the correlation ID stored in a ContextVar.

    This is async-safe: each asyncio task sees the value set in its own
    context.
    """

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID (UUID4 string, 36 characters)."""
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID in the format 'req-<uuid4>'."""
    return f"req-{uuid.uuid4()}"
