"""Redis implementation of the cache repository."""

from redis.asyncio import Redis
from redis.exceptions import RedisError

from tracetour.core.config import CacheConfig
from tracetour.core.constants import CACHE_TTL_SECONDS
from tracetour.core.context import RequestContext
from tracetour.core.exceptions import CacheError
from tracetour.domain.repositories import (
    CacheFailure,
    CacheHit,
    CacheMiss,
    CacheResult,
)


def create_redis_client(config: CacheConfig) -> Redis:
    """Create an asyncio Redis client returning ``str`` values."""
    return Redis.from_url(
        config.redis_url,
        decode_responses=True,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
    )


async def check_redis_connection(client: Redis) -> tuple[bool, str | None]:
    """Check if Redis answers PING.

    Returns:
        tuple[bool, str | None]: Success flag and the error message on failure.
    """
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        return False, str(e)
    else:
        return True, None


class RedisCacheRepository:
    """Stores string values in Redis with a fixed time-to-live.

    Args:
        client: Redis client created with ``decode_responses=True``.
        ttl_seconds: Expiry applied to every ``set``.
    """

    def __init__(self, client: Redis, ttl_seconds: int = CACHE_TTL_SECONDS) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def set(self, ctx: RequestContext, key: str, value: str) -> None:
        ctx.cancellation.raise_if_cancelled()
        try:
            await self._client.set(key, value, ex=self._ttl_seconds)
        except (RedisError, OSError) as e:
            raise CacheError(
                "cache set failed", context={"cache.key": key}, cause=e
            ) from e

    async def get(self, ctx: RequestContext, key: str) -> CacheResult:
        ctx.cancellation.raise_if_cancelled()
        try:
            value = await self._client.get(key)
        except (RedisError, OSError) as e:
            return CacheFailure(
                CacheError("cache get failed", context={"cache.key": key}, cause=e)
            )
        if value is None:
            return CacheMiss()
        return CacheHit(value)

    async def delete(self, ctx: RequestContext, key: str) -> None:
        ctx.cancellation.raise_if_cancelled()
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as e:
            raise CacheError(
                "cache delete failed", context={"cache.key": key}, cause=e
            ) from e
