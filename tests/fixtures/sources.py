"""Scripted sources, clocks and helpers shared by the test modules."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from txagg.transactions.clients.base import (
    BaseTransactionSource,
    SourceConnectionError,
)
from txagg.transactions.models import TransactionRecord

WINDOW_START = datetime(2025, 9, 1, tzinfo=timezone.utc)
WINDOW_END = datetime(2025, 10, 14, 23, 59, 59, tzinfo=timezone.utc)


def make_record(
    tx_id: str,
    date: datetime,
    category: str = "Groceries",
    source: str = "BankA",
    amount: str = "10.00",
    currency: str = "USD",
) -> TransactionRecord:
    return TransactionRecord(
        id=tx_id,
        date=date,
        amount=Decimal(amount),
        currency=currency,
        category=category,
        source=source,
    )


def make_daily_records(
    count: int, source: str = "BankA", start: datetime = WINDOW_START
) -> List[TransactionRecord]:
    """One record per day from ``start``; id N is dated start + N days."""
    return [
        make_record(f"{source}-{i}", start + timedelta(days=i), source=source)
        for i in range(count)
    ]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that returns at once and remembers the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class StaticSource(BaseTransactionSource):
    """Returns the same records on every call, optionally after a delay."""

    def __init__(
        self,
        name: str,
        records: Sequence[TransactionRecord] = (),
        delay: float = 0.0,
    ):
        super().__init__()
        self.name = name
        self.records = list(records)
        self.delay = delay
        self.calls = 0
        self.closed = False

    def get_source_name(self) -> str:
        return self.name

    async def fetch_transactions(self, start_time, end_time):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.records)

    async def close(self):
        self.closed = True


class FailingSource(StaticSource):
    """
    Raises ``error`` for the first ``fail_times`` calls, then behaves like
    StaticSource. With fail_times=None it never recovers.
    """

    def __init__(
        self,
        name: str,
        records: Sequence[TransactionRecord] = (),
        error: Optional[Exception] = None,
        fail_times: Optional[int] = None,
    ):
        super().__init__(name, records)
        self.error = error or SourceConnectionError(f"{name} unavailable")
        self.fail_times = fail_times

    async def fetch_transactions(self, start_time, end_time):
        self.calls += 1
        if self.fail_times is None or self.calls <= self.fail_times:
            raise self.error
        return list(self.records)
