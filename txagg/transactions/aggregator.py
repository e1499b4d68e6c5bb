"""
Concurrent fan-out over all registered sources.

Every source is called at once through its resilience wrapper and the
aggregator waits for all of them; one slow or failing source never
cancels its siblings.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import List, Sequence, Tuple

import structlog

from txagg.transactions.metrics import (
    AggregationRunMetrics,
    SourceOutcome,
    SourceStatus,
)
from txagg.transactions.models import TransactionRecord
from txagg.transactions.resilience import ResilientSource

logger = structlog.get_logger()


class TransactionAggregator:
    """Merges the results of all sources for a date window."""

    def __init__(self, sources: Sequence[ResilientSource]):
        """
        Args:
            sources: Wrapped sources in registration order
        """
        self.sources = list(sources)

    @property
    def source_names(self) -> List[str]:
        return [s.name for s in self.sources]

    async def fetch_all(
        self, start_time: datetime, end_time: datetime
    ) -> Tuple[List[TransactionRecord], AggregationRunMetrics]:
        """
        Fetch from every source concurrently and concatenate the results.

        Records are concatenated in source registration order with no
        reconciliation or deduplication across sources.

        Returns:
            (merged records, run metrics)
        """
        run = AggregationRunMetrics(
            run_id=f"agg-{uuid.uuid4().hex[:12]}",
            started_at=datetime.now(timezone.utc),
        )
        logger.info(
            "aggregation.started",
            run_id=run.run_id,
            source_count=len(self.sources),
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )

        results = await asyncio.gather(
            *(source.fetch(start_time, end_time) for source in self.sources),
            return_exceptions=True,
        )

        merged: List[TransactionRecord] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                # Wrappers absorb source failures; anything reaching here is a bug
                # in the wrapper itself and still must not sink the other sources.
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(
                    "aggregation.source_crashed",
                    run_id=run.run_id,
                    source=source.name,
                    error_type=type(result).__name__,
                    error=str(result),
                )
                run.sources.append(
                    SourceOutcome(
                        source=source.name,
                        status=SourceStatus.FATAL,
                        error=str(result),
                    )
                )
                continue

            records, outcome = result
            merged.extend(records)
            run.sources.append(outcome)

        run.ended_at = datetime.now(timezone.utc)
        run.duration_seconds = (run.ended_at - run.started_at).total_seconds()
        run.records_fetched = len(merged)

        logger.info(
            "aggregation.completed",
            run_id=run.run_id,
            count=len(merged),
            failed_sources=run.failed_sources,
            duration_ms=round(run.duration_seconds * 1000, 2),
        )
        return merged, run
