"""Span-per-call decorator for ``CacheRepository``."""

from typing import Final

from tracetour.core.context import RequestContext
from tracetour.core.observability import (
    add_span_attributes,
    mark_span_error,
    trace_operation,
)
from tracetour.domain.repositories import (
    CacheFailure,
    CacheHit,
    CacheRepository,
    CacheResult,
)

DB_TYPE: Final[str] = "redis"


class TracedCacheRepository:
    """Wraps a ``CacheRepository`` with ``redis.<operation>`` spans.

    A miss is a successful lookup (``cache.hit=false``, ``cache.success=true``).
    A backend failure on ``get`` is returned, not raised, but the span is
    still marked as failed.
    """

    def __init__(self, inner: CacheRepository) -> None:
        self._inner = inner

    @property
    def ttl_seconds(self) -> int:
        return self._inner.ttl_seconds

    async def set(self, ctx: RequestContext, key: str, value: str) -> None:
        with trace_operation(
            f"{DB_TYPE}.set",
            **{
                "db.type": DB_TYPE,
                "db.operation": "SET",
                "cache.key": key,
                "cache.ttl": self.ttl_seconds,
            },
        ) as span:
            try:
                await self._inner.set(ctx, key, value)
            except Exception:
                add_span_attributes(span, **{"cache.success": False})
                raise
            add_span_attributes(span, **{"cache.success": True})

    async def get(self, ctx: RequestContext, key: str) -> CacheResult:
        with trace_operation(
            f"{DB_TYPE}.get",
            **{"db.type": DB_TYPE, "db.operation": "GET", "cache.key": key},
        ) as span:
            result = await self._inner.get(ctx, key)
            match result:
                case CacheHit():
                    add_span_attributes(
                        span, **{"cache.hit": True, "cache.success": True}
                    )
                case CacheFailure(error=error):
                    add_span_attributes(
                        span, **{"cache.hit": False, "cache.success": False}
                    )
                    mark_span_error(span, error)
                case _:
                    add_span_attributes(
                        span, **{"cache.hit": False, "cache.success": True}
                    )
            return result

    async def delete(self, ctx: RequestContext, key: str) -> None:
        with trace_operation(
            f"{DB_TYPE}.delete",
            **{"db.type": DB_TYPE, "db.operation": "DELETE", "cache.key": key},
        ) as span:
            try:
                await self._inner.delete(ctx, key)
            except Exception:
                add_span_attributes(span, **{"cache.success": False})
                raise
            add_span_attributes(span, **{"cache.success": True})
