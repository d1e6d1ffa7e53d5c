"""Tracing decorators for the repository ports.

Each decorator satisfies the same protocol as the repository it wraps and
opens one child span per call, so the traced and bare variants are
interchangeable.
"""

from tracetour.infrastructure.tracing.cache_repository import TracedCacheRepository
from tracetour.infrastructure.tracing.user_repository import TracedUserRepository

__all__ = ["TracedCacheRepository", "TracedUserRepository"]
