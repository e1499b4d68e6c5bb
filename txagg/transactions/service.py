"""
Transaction aggregation service.

Single entry point for the HTTP layer: validates a query, serves it from
the cache when possible, otherwise fans out to every source, caches the
merged result and returns the requested page.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog

from txagg.cache import create_cache
from txagg.cache.base import (
    CacheClearNotSupportedError,
    CacheWriteError,
    TransactionCache,
    build_cache_key,
)
from txagg.cache.memory import InMemoryTransactionCache
from txagg.core.config import Settings, get_settings
from txagg.transactions.aggregator import TransactionAggregator
from txagg.transactions.clients.base import BaseTransactionSource
from txagg.transactions.clients.http_client import HttpTransactionSource
from txagg.transactions.clients.mock_client import create_mock_banks
from txagg.transactions.config import AggregatorConfig
from txagg.transactions.metrics import AggregationMetrics
from txagg.transactions.models import (
    DEFAULT_PAGE_SIZE,
    PagedResult,
    TransactionQuery,
    TransactionRecord,
)
from txagg.transactions.query import apply_query, filter_by_window
from txagg.transactions.resilience import ResilientSource

logger = structlog.get_logger()


class TransactionService:
    """
    Cache-aside orchestrator over the aggregator and query processor.

    Concurrent misses for the same cache key share one upstream fetch.

    Failure policy: validation errors and cache write errors reach the
    caller; any other unexpected error is logged and answered with an
    empty page, which callers cannot tell apart from "no matches".
    """

    def __init__(
        self,
        sources: Sequence[BaseTransactionSource],
        cache: Optional[TransactionCache] = None,
        config: Optional[AggregatorConfig] = None,
        resilient_sources: Optional[Sequence[ResilientSource]] = None,
    ):
        """
        Initialize the service.

        Args:
            sources: Upstream sources in registration order
            cache: Cache backend (defaults to in-memory)
            config: Aggregation configuration (defaults to settings)
            resilient_sources: Pre-wrapped sources, used instead of wrapping
                ``sources`` (lets tests control clocks and sleeps)
        """
        self.config = config or AggregatorConfig.from_settings(get_settings())
        self.cache = cache if cache is not None else InMemoryTransactionCache()
        self.sources = list(sources)
        wrapped = (
            list(resilient_sources)
            if resilient_sources is not None
            else [ResilientSource(s, self.config) for s in self.sources]
        )
        self.aggregator = TransactionAggregator(wrapped)
        self.metrics = AggregationMetrics(self.config.metrics_history_size)
        self._in_flight: Dict[str, asyncio.Future] = {}

        logger.info(
            "service.initialized",
            sources=self.aggregator.source_names,
            cache_backend=self.cache.backend_name,
            cache_ttl_minutes=self.config.cache.ttl_minutes,
        )

    async def get_transactions(
        self,
        from_date: datetime,
        to_date: datetime,
        category: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        tenant: Optional[str] = None,
    ) -> PagedResult:
        """
        Retrieve one page of aggregated transactions.

        Args:
            from_date: Start of the window (inclusive)
            to_date: End of the window (inclusive)
            category: Optional case-insensitive category filter
            page: Page number (1-based)
            page_size: Items per page (1-100)
            tenant: Optional caller id; only partitions the cache

        Returns:
            PagedResult with totals and the requested window

        Raises:
            QueryValidationError: If the query parameters are invalid
            CacheWriteError: If the fetched result could not be cached
        """
        query = TransactionQuery(
            from_date=from_date,
            to_date=to_date,
            category=category,
            page=page,
            page_size=page_size,
            tenant=tenant,
        )
        query.validate_bounds()

        cache_key = build_cache_key(
            tenant, from_date, to_date, category, page, page_size
        )
        log = logger.bind(cache_key=cache_key)
        log.info(
            "transactions.request",
            from_date=from_date.isoformat(),
            to_date=to_date.isoformat(),
            category=category or "all",
            page=page,
            page_size=page_size,
        )

        try:
            # Entries are keyed by day, so a hit may span more than this window
            records = filter_by_window(
                await self._load(cache_key, query), from_date, to_date
            )
            if not records:
                log.warning("transactions.none_found")
                return PagedResult.empty(page, page_size)

            result = apply_query(records, category, page, page_size)
            log.info(
                "transactions.served",
                count=len(result.transactions),
                total=result.total,
                page=result.page,
                total_pages=result.total_pages,
            )
            return result

        except CacheWriteError:
            raise
        except Exception as e:
            log.error(
                "transactions.unexpected_error",
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            self.metrics.record_degraded_response()
            return PagedResult.empty(page, page_size)

    async def _load(
        self, cache_key: str, query: TransactionQuery
    ) -> List[TransactionRecord]:
        """Cache-aside read with per-key sharing of in-flight fetches."""
        cached = await self.cache.get(cache_key)
        if cached is not None:
            self.metrics.record_cache_hit()
            return cached

        self.metrics.record_cache_miss()

        pending = self._in_flight.get(cache_key)
        if pending is not None:
            self.metrics.record_shared_fetch()
            logger.debug("transactions.joined_in_flight_fetch", cache_key=cache_key)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch_and_store(cache_key, query))
        self._in_flight[cache_key] = task
        task.add_done_callback(lambda _: self._in_flight.pop(cache_key, None))
        return await asyncio.shield(task)

    async def _fetch_and_store(
        self, cache_key: str, query: TransactionQuery
    ) -> List[TransactionRecord]:
        logger.debug("transactions.cache_miss_fetching", cache_key=cache_key)
        records, run = await self.aggregator.fetch_all(query.from_date, query.to_date)
        self.metrics.record_run(run)

        # Empty aggregates are not cached
        if records:
            await self.cache.set(cache_key, records, self.config.cache.get_ttl())
        return records

    async def invalidate(
        self,
        from_date: datetime,
        to_date: datetime,
        category: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        tenant: Optional[str] = None,
    ) -> str:
        """Drop the cached entry for one query. Returns the removed key."""
        cache_key = build_cache_key(
            tenant, from_date, to_date, category, page, page_size
        )
        await self.cache.remove(cache_key)
        return cache_key

    async def clear_cache(self) -> bool:
        """
        Drop every cached entry if the backend can.

        Returns:
            True if cleared, False if the backend does not support it
        """
        if not self.cache.supports_clear:
            logger.warning(
                "cache.clear_unsupported", backend=self.cache.backend_name
            )
            return False
        try:
            await self.cache.clear()
        except CacheClearNotSupportedError:
            return False
        return True

    def get_status(self) -> Dict[str, Any]:
        """Breaker states, cache settings and metrics."""
        return {
            "sources": self.aggregator.source_names,
            "circuit_breakers": [
                s.breaker.get_state() for s in self.aggregator.sources
            ],
            "cache": {
                "backend": self.cache.backend_name,
                "supports_clear": self.cache.supports_clear,
                "ttl_minutes": self.config.cache.ttl_minutes,
            },
            "metrics": self.metrics.snapshot(),
        }

    async def close(self):
        """Release source and cache connections."""
        for source in self.sources:
            await source.close()
        await self.cache.close()


def build_sources(settings: Settings) -> List[BaseTransactionSource]:
    """
    Register the sources named by settings.

    Mock banks come first when enabled, then HTTP sources in the order
    they appear in HTTP_SOURCES.
    """
    sources: List[BaseTransactionSource] = []
    if settings.MOCK_SOURCES_ENABLED:
        if settings.ENV == "production":
            logger.warning("sources.mock_in_production")
        sources.extend(create_mock_banks())
    for name, base_url in settings.HTTP_SOURCES.items():
        sources.append(
            HttpTransactionSource(
                name=name,
                base_url=base_url,
                api_key=settings.HTTP_SOURCE_API_KEY,
                timeout=settings.SOURCE_TIMEOUT_SECONDS,
            )
        )
    if not sources:
        logger.warning("sources.none_registered")
    return sources


# Global service instance
_service_instance: Optional[TransactionService] = None


def get_transaction_service() -> TransactionService:
    """
    Get or create the global service instance.

    Returns:
        TransactionService singleton
    """
    global _service_instance
    if _service_instance is None:
        settings = get_settings()
        _service_instance = TransactionService(
            sources=build_sources(settings),
            cache=create_cache(settings),
            config=AggregatorConfig.from_settings(settings),
        )
    return _service_instance


def set_transaction_service(service: Optional[TransactionService]):
    """Replace the global service instance (used by the app and tests)."""
    global _service_instance
    _service_instance = service
