"""Cache-aside storage for aggregated transaction lists."""

from txagg.cache.base import (
    CacheClearNotSupportedError,
    CacheError,
    CacheValidationError,
    CacheWriteError,
    TransactionCache,
    build_cache_key,
)
from txagg.cache.memory import InMemoryTransactionCache
from txagg.core.config import Settings


def create_cache(settings: Settings) -> TransactionCache:
    """Build the cache backend selected by settings."""
    if settings.CACHE_BACKEND == "redis":
        if not settings.REDIS_URL:
            raise ValueError("REDIS_URL must be set when CACHE_BACKEND is 'redis'")
        # Imported lazily so the memory backend works without a Redis client
        from txagg.cache.redis_cache import RedisTransactionCache

        return RedisTransactionCache.from_url(settings.REDIS_URL)
    return InMemoryTransactionCache()


__all__ = [
    "TransactionCache",
    "InMemoryTransactionCache",
    "CacheError",
    "CacheValidationError",
    "CacheWriteError",
    "CacheClearNotSupportedError",
    "build_cache_key",
    "create_cache",
]
