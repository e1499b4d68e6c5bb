"""Redis-backed cache for deployments with more than one API instance."""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Sequence

import structlog
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from txagg.cache.base import (
    CacheClearNotSupportedError,
    CacheWriteError,
    TransactionCache,
    validate_entry,
    validate_key,
)
from txagg.transactions.models import TransactionRecord

logger = structlog.get_logger()

_records_adapter = TypeAdapter(List[TransactionRecord])


class RedisTransactionCache(TransactionCache):
    """
    Stores each entry as a JSON array under its key with a Redis TTL.

    Reads are forgiving: a payload that no longer parses is deleted and
    reported as a miss, and a Redis read error is also reported as a miss.
    Writes are not: a failed SET raises CacheWriteError.

    Redis keys here share a database with other applications, so there is
    no safe way to drop only our entries and clear() is not supported.
    """

    backend_name = "redis"
    supports_clear = False

    def __init__(self, client: Redis):
        """
        Args:
            client: redis.asyncio client (any object with get/set/delete)
        """
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisTransactionCache":
        return cls(Redis.from_url(url))

    async def get(self, key: str) -> Optional[list[TransactionRecord]]:
        validate_key(key)
        try:
            payload = await self._client.get(key)
        except RedisError as e:
            logger.error(
                "cache.read_failed", backend=self.backend_name, key=key, error=str(e)
            )
            return None

        if not payload:
            logger.info("cache.miss", backend=self.backend_name, key=key)
            return None

        try:
            records = _records_adapter.validate_json(payload)
        except ValidationError:
            logger.warning("cache.corrupted_evicted", backend=self.backend_name, key=key)
            try:
                await self._client.delete(key)
            except RedisError as e:
                logger.error(
                    "cache.evict_failed", backend=self.backend_name, key=key, error=str(e)
                )
            return None

        logger.info("cache.hit", backend=self.backend_name, key=key, count=len(records))
        return records

    async def set(
        self, key: str, value: Sequence[TransactionRecord], ttl: timedelta
    ) -> None:
        validate_entry(key, value, ttl)
        payload = _records_adapter.dump_json(list(value))
        try:
            await self._client.set(key, payload, px=int(ttl.total_seconds() * 1000))
        except RedisError as e:
            logger.error(
                "cache.write_failed", backend=self.backend_name, key=key, error=str(e)
            )
            raise CacheWriteError(f"Failed to cache entry {key}: {e}") from e

        logger.info(
            "cache.set",
            backend=self.backend_name,
            key=key,
            count=len(value),
            ttl_minutes=ttl.total_seconds() / 60,
        )

    async def remove(self, key: str) -> None:
        validate_key(key)
        await self._client.delete(key)
        logger.info("cache.removed", backend=self.backend_name, key=key)

    async def clear(self) -> None:
        raise CacheClearNotSupportedError(
            "Redis cache does not support clear(); remove keys individually "
            "or flush the database out of band"
        )

    async def close(self) -> None:
        await self._client.aclose()
