"""
Cache abstraction for aggregated transaction lists.

Entries hold the merged, unfiltered records exactly as fetched. They are
never updated in place, only replaced or removed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional, Sequence

from txagg.transactions.models import TransactionRecord

KEY_PREFIX = "transactions"


class CacheError(Exception):
    """Base exception for cache errors."""

    pass


class CacheValidationError(CacheError, ValueError):
    """Raised for an empty key, a missing value or a non-positive TTL."""

    pass


class CacheWriteError(CacheError):
    """Raised when the backing store fails to persist an entry."""

    pass


class CacheClearNotSupportedError(CacheError):
    """Raised when clear() is called on a store that cannot enumerate keys."""

    pass


def build_cache_key(
    tenant: Optional[str],
    from_date: datetime,
    to_date: datetime,
    category: Optional[str],
    page: int,
    page_size: int,
) -> str:
    """
    Build the fingerprint of a query.

    Pattern: transactions:{tenant}:{from:yyyyMMdd}-{to:yyyyMMdd}:{category}:{page}:{pageSize}

    Example:
        build_cache_key("user123", datetime(2025, 9, 1), datetime(2025, 10, 14), "Groceries", 1, 50)
        -> "transactions:user123:20250901-20251014:Groceries:1:50"
    """
    tenant_part = tenant if tenant else "anonymous"
    category_part = category.strip() if category and category.strip() else "all"
    date_range = f"{from_date:%Y%m%d}-{to_date:%Y%m%d}"
    return f"{KEY_PREFIX}:{tenant_part}:{date_range}:{category_part}:{page}:{page_size}"


def validate_key(key: str) -> None:
    if key is None or not str(key).strip():
        raise CacheValidationError("Cache key cannot be null or empty")


def validate_entry(
    key: str, value: Optional[Sequence[TransactionRecord]], ttl: timedelta
) -> None:
    validate_key(key)
    if value is None:
        raise CacheValidationError("Cache value cannot be None")
    if ttl is None or ttl <= timedelta(0):
        raise CacheValidationError("TTL must be greater than zero")


class TransactionCache(ABC):
    """Key-value store of transaction lists with per-entry TTL."""

    backend_name: str = "cache"

    supports_clear: bool = False
    """Whether clear() can remove every entry; if False it raises."""

    @abstractmethod
    async def get(self, key: str) -> Optional[list[TransactionRecord]]:
        """
        Retrieve cached transactions by key.

        Returns:
            The cached records, or None on a miss or expired entry
        """
        pass

    @abstractmethod
    async def set(
        self, key: str, value: Sequence[TransactionRecord], ttl: timedelta
    ) -> None:
        """
        Store transactions with an absolute expiry of now + ttl.

        Raises:
            CacheValidationError: For an empty key, None value or ttl <= 0
            CacheWriteError: If the backing store fails
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a single entry; removing a missing key is a no-op."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """
        Remove every entry.

        Raises:
            CacheClearNotSupportedError: If supports_clear is False
        """
        pass

    async def close(self) -> None:
        """Release connections held by the backing store."""
        return None
