"""
Mock transaction sources for testing and development.

Simulates independent bank APIs with their own latency profile and
occasional transient failures, so the resilience layer has something
realistic to work against.
"""

import asyncio
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from txagg.core.logging import new_correlation_id
from txagg.testing.mock_data_templates import MOCK_BANKS
from txagg.transactions.clients.base import (
    BaseTransactionSource,
    SourceConnectionError,
)
from txagg.transactions.models import TransactionRecord, as_utc

logger = structlog.get_logger()


class MockTransactionSource(BaseTransactionSource):
    """
    Mock bank that serves a fixed catalogue of transactions.

    Catalogue items are dated relative to the time of the call, then
    filtered to the requested window.
    """

    def __init__(
        self,
        name: str,
        catalog: Sequence[Dict[str, Any]],
        prefix: Optional[str] = None,
        latency_ms: Tuple[int, int] = (0, 0),
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize mock source.

        Args:
            name: Source name reported on every record
            catalog: Items with amount, category, days_ago and currency
            prefix: Transaction id prefix (defaults to upper-cased name)
            latency_ms: Inclusive range of simulated latency in milliseconds
            failure_rate: Probability of a simulated transient failure (0.0 to 1.0)
            rng: Random generator, injectable for deterministic tests
        """
        super().__init__()
        self.name = name
        self.catalog = list(catalog)
        self.prefix = prefix or name.upper()
        self.latency_ms = latency_ms
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    def get_source_name(self) -> str:
        """Return source identifier."""
        return self.name

    async def fetch_transactions(
        self,
        start_time: datetime,
        end_time: datetime,
    ) -> List[TransactionRecord]:
        """
        Return the catalogue items that fall inside the window.

        Args:
            start_time: Start of time range
            end_time: End of time range

        Returns:
            List of generated transactions
        """
        request_id = new_correlation_id()
        log = logger.bind(source=self.name, source_request_id=request_id)
        log.debug(
            "mock_source.fetch",
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )

        await self._simulate_latency()

        if self._rng.random() < self.failure_rate:
            log.warning("mock_source.simulated_failure")
            raise SourceConnectionError(
                f"[{self.name}] Simulated transient failure - service temporarily unavailable"
            )

        start = as_utc(start_time)
        end = as_utc(end_time)
        now = datetime.now(timezone.utc)

        transactions = []
        for item in self.catalog:
            tx_date = now - timedelta(days=item["days_ago"])
            if tx_date < start or tx_date > end:
                continue
            transactions.append(
                TransactionRecord(
                    id=f"{self.prefix}-{uuid.uuid4()}",
                    date=tx_date,
                    amount=item["amount"],
                    currency=item["currency"],
                    category=item["category"],
                    source=self.name,
                )
            )

        log.info("mock_source.fetched", count=len(transactions))
        return transactions

    async def _simulate_latency(self):
        """Simulate network latency."""
        low, high = self.latency_ms
        if high > 0:
            await asyncio.sleep(self._rng.randint(low, high) / 1000.0)


def create_mock_banks(
    simulate_latency: bool = True, simulate_failures: bool = True
) -> List[MockTransactionSource]:
    """
    Build the standard set of mock banks.

    Args:
        simulate_latency: Apply each bank's latency profile
        simulate_failures: Apply each bank's transient failure rate

    Returns:
        One source per bank, in registration order
    """
    return [
        MockTransactionSource(
            name=name,
            catalog=bank["catalog"],
            prefix=bank["prefix"],
            latency_ms=bank["latency_ms"] if simulate_latency else (0, 0),
            failure_rate=bank["failure_rate"] if simulate_failures else 0.0,
        )
        for name, bank in MOCK_BANKS.items()
    ]
