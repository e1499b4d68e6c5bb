"""In-process cache backed by a dict, for single-instance deployments and tests."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, Sequence

import structlog

from txagg.cache.base import TransactionCache, validate_entry, validate_key
from txagg.transactions.models import TransactionRecord

logger = structlog.get_logger()


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: tuple[TransactionRecord, ...]
    expires_at: float  # clock() seconds


class InMemoryTransactionCache(TransactionCache):
    """
    Dict-backed cache with lazy expiry.

    Values are stored as tuples of frozen records, so a caller mutating the
    list it got back cannot change what the next caller sees.
    """

    backend_name = "memory"
    supports_clear = True

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic time source in seconds, injectable for tests
        """
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key: str) -> Optional[list[TransactionRecord]]:
        validate_key(key)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[key]
                logger.debug("cache.expired", backend=self.backend_name, key=key)
                entry = None

        if entry is None:
            logger.info("cache.miss", backend=self.backend_name, key=key)
            return None

        logger.info(
            "cache.hit", backend=self.backend_name, key=key, count=len(entry.value)
        )
        return list(entry.value)

    async def set(
        self, key: str, value: Sequence[TransactionRecord], ttl: timedelta
    ) -> None:
        validate_entry(key, value, ttl)
        entry = CacheEntry(
            key=key,
            value=tuple(value),
            expires_at=self._clock() + ttl.total_seconds(),
        )
        async with self._lock:
            self._entries[key] = entry
        logger.info(
            "cache.set",
            backend=self.backend_name,
            key=key,
            count=len(entry.value),
            ttl_minutes=ttl.total_seconds() / 60,
        )

    async def remove(self, key: str) -> None:
        validate_key(key)
        async with self._lock:
            self._entries.pop(key, None)
        logger.info("cache.removed", backend=self.backend_name, key=key)

    async def clear(self) -> None:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.warning("cache.cleared", backend=self.backend_name, removed=count)
