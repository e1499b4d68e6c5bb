"""
Per-source resilience wrapper.

Composes, outer to inner: circuit breaker -> retry -> timeout. A source
whose call cannot be completed contributes an empty list instead of
raising, so one failing bank never takes the whole aggregation down.
"""

import time
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import structlog

from txagg.transactions.clients.base import (
    BaseTransactionSource,
    SourceTransientError,
)
from txagg.transactions.config import AggregatorConfig
from txagg.transactions.metrics import SourceOutcome, SourceStatus
from txagg.transactions.models import TransactionRecord
from txagg.transactions.query import filter_by_window
from txagg.transactions.retry import (
    CircuitBreaker,
    CircuitOpenError,
    retry_with_backoff,
    with_timeout,
)

logger = structlog.get_logger()


class ResilientSource:
    """Wraps one source with its own circuit breaker, retry and timeout."""

    def __init__(
        self,
        source: BaseTransactionSource,
        config: AggregatorConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Args:
            source: The upstream source to protect
            config: Timeout, retry and breaker settings
            clock: Monotonic time source for the breaker cooldown
            sleep: Awaitable sleep used between retries (tests pass a fake)
        """
        self.source = source
        self.config = config
        self.name = source.get_source_name()
        self.breaker = CircuitBreaker(
            config.circuit_breaker,
            name=self.name,
            failure_exceptions=(SourceTransientError,),
            clock=clock,
        )
        self._retry_kwargs = {"sleep": sleep} if sleep is not None else {}

    async def fetch(
        self, start_time: datetime, end_time: datetime
    ) -> Tuple[List[TransactionRecord], SourceOutcome]:
        """
        Fetch from the source through the resilience stack.

        Never raises for source failures; the outcome tells what happened.

        Returns:
            (records, outcome) where records is empty on failure
        """
        started = time.perf_counter()
        operation = f"fetch_transactions:{self.name}"

        async def attempt() -> List[TransactionRecord]:
            return await with_timeout(
                lambda: self.source.fetch_transactions(start_time, end_time),
                self.config.timeout.seconds,
                operation_name=operation,
            )

        async def attempt_with_retry() -> List[TransactionRecord]:
            return await retry_with_backoff(
                attempt,
                self.config.retry,
                operation_name=operation,
                **self._retry_kwargs,
            )

        def outcome(status: SourceStatus, records: int = 0, error: Optional[str] = None):
            return SourceOutcome(
                source=self.name,
                status=status,
                records=records,
                duration_seconds=time.perf_counter() - started,
                error=error,
            )

        try:
            records = await self.breaker.call_async(attempt_with_retry)
        except CircuitOpenError as e:
            logger.warning("source.circuit_open", source=self.name)
            return [], outcome(SourceStatus.CIRCUIT_OPEN, error=str(e))
        except SourceTransientError as e:
            logger.error(
                "source.retries_exhausted",
                source=self.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return [], outcome(SourceStatus.EXHAUSTED, error=str(e))
        except Exception as e:
            logger.error(
                "source.fatal_error",
                source=self.name,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )
            return [], outcome(SourceStatus.FATAL, error=str(e))

        in_window = self._within_window(records, start_time, end_time)
        result = outcome(SourceStatus.SUCCESS, records=len(in_window))
        logger.info(
            "source.fetched",
            source=self.name,
            count=len(in_window),
            duration_ms=round(result.duration_seconds * 1000, 2),
        )
        return in_window, result

    def _within_window(
        self,
        records: List[TransactionRecord],
        start_time: datetime,
        end_time: datetime,
    ) -> List[TransactionRecord]:
        kept = filter_by_window(records, start_time, end_time)
        if len(kept) != len(records):
            logger.warning(
                "source.out_of_window_dropped",
                source=self.name,
                dropped=len(records) - len(kept),
            )
        return kept
