"""Builds the process-wide repository locator."""

from loguru import logger
from redis.asyncio import Redis

from tracetour.core.config import Settings
from tracetour.core.constants import CACHE_TTL_SECONDS
from tracetour.domain.repositories import (
    CacheRepository,
    RepositoryLocator,
    UserRepository,
)
from tracetour.infrastructure.cache.redis_repository import RedisCacheRepository
from tracetour.infrastructure.database.user_repository import (
    SessionFactory,
    SqlUserRepository,
)
from tracetour.infrastructure.database.session import get_async_session
from tracetour.infrastructure.tracing import (
    TracedCacheRepository,
    TracedUserRepository,
)


def build_repository_locator(
    settings: Settings,
    redis_client: Redis,
    session_factory: SessionFactory = get_async_session,
) -> RepositoryLocator:
    """Create the repositories, wrapped in tracing decorators when enabled.

    The choice is made once here; callers never see which variant they got.

    Args:
        settings: Application settings.
        redis_client: Client backing the cache.
        session_factory: Source of database sessions.

    Returns:
        RepositoryLocator: Repositories shared by all requests.
    """
    users: UserRepository = SqlUserRepository(session_factory)
    cache: CacheRepository = RedisCacheRepository(redis_client, CACHE_TTL_SECONDS)

    traced = settings.observability_config.enable_tracing
    if traced:
        users = TracedUserRepository(users)
        cache = TracedCacheRepository(cache)

    logger.info("Repository locator built", traced=traced)
    return RepositoryLocator(users=users, cache=cache)
