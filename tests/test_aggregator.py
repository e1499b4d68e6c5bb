"""
Tests for the per-source resilience wrapper and the concurrent fan-out.
"""

import asyncio
import time
from datetime import timedelta

import pytest

from txagg.transactions.aggregator import TransactionAggregator
from txagg.transactions.clients.base import (
    SourceAuthenticationError,
    SourceConnectionError,
)
from txagg.transactions.config import AggregatorConfig, TimeoutConfig, RetryConfig
from txagg.transactions.metrics import SourceStatus
from txagg.transactions.resilience import ResilientSource
from txagg.transactions.retry import CircuitState
from tests.fixtures.sources import (
    WINDOW_END,
    WINDOW_START,
    FailingSource,
    StaticSource,
    make_daily_records,
    make_record,
)


class TestResilientSource:
    """Tests for breaker -> retry -> timeout around one source."""

    @pytest.mark.asyncio
    async def test_success(self, fast_config, fake_sleep):
        source = StaticSource("BankA", make_daily_records(3))
        wrapped = ResilientSource(source, fast_config, sleep=fake_sleep)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert len(records) == 3
        assert outcome.status == SourceStatus.SUCCESS
        assert outcome.records == 3
        assert outcome.source == "BankA"

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, fast_config, fake_sleep):
        source = FailingSource("BankA", make_daily_records(2), fail_times=2)
        wrapped = ResilientSource(source, fast_config, sleep=fake_sleep)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert len(records) == 2
        assert outcome.status == SourceStatus.SUCCESS
        assert source.calls == 3
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_exhausted_returns_empty(self, fast_config, fake_sleep):
        source = FailingSource("BankA")
        wrapped = ResilientSource(source, fast_config, sleep=fake_sleep)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert records == []
        assert outcome.status == SourceStatus.EXHAUSTED
        assert source.calls == 4

    @pytest.mark.asyncio
    async def test_fatal_error_returns_empty_without_retry(self, fast_config, fake_sleep):
        source = FailingSource("BankA", error=SourceAuthenticationError("denied"))
        wrapped = ResilientSource(source, fast_config, sleep=fake_sleep)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert records == []
        assert outcome.status == SourceStatus.FATAL
        assert source.calls == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_empty(self, fast_config, fake_sleep):
        source = FailingSource("BankA", error=KeyError("amount"))
        wrapped = ResilientSource(source, fast_config, sleep=fake_sleep)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert records == []
        assert outcome.status == SourceStatus.FATAL

    @pytest.mark.asyncio
    async def test_each_attempt_is_time_bounded(self, fake_sleep):
        config = AggregatorConfig(
            timeout=TimeoutConfig(seconds=0.05),
            retry=RetryConfig(max_retries=1),
        )
        source = StaticSource("BankA", make_daily_records(1), delay=1.0)
        wrapped = ResilientSource(source, config, sleep=fake_sleep)

        started = time.perf_counter()
        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)
        elapsed = time.perf_counter() - started

        assert records == []
        assert outcome.status == SourceStatus.EXHAUSTED
        assert source.calls == 2
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_circuit_opens_and_skips_source(self, no_retry_config, clock):
        source = FailingSource("BankA")
        wrapped = ResilientSource(source, no_retry_config, clock=clock)

        for _ in range(5):
            _, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)
            assert outcome.status == SourceStatus.EXHAUSTED

        assert wrapped.breaker.state == CircuitState.OPEN

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)
        assert records == []
        assert outcome.status == SourceStatus.CIRCUIT_OPEN
        assert source.calls == 5

    @pytest.mark.asyncio
    async def test_half_open_probe_calls_source_once(self, no_retry_config, clock):
        source = FailingSource("BankA", make_daily_records(1), fail_times=5)
        wrapped = ResilientSource(source, no_retry_config, clock=clock)
        for _ in range(5):
            await wrapped.fetch(WINDOW_START, WINDOW_END)

        clock.advance(30)
        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert outcome.status == SourceStatus.SUCCESS
        assert len(records) == 1
        assert source.calls == 6
        assert wrapped.breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_out_of_window_records_dropped(self, fast_config):
        inside = make_record("in", WINDOW_START + timedelta(days=1))
        outside = make_record("out", WINDOW_END + timedelta(days=1))
        wrapped = ResilientSource(StaticSource("BankA", [inside, outside]), fast_config)

        records, outcome = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert [r.id for r in records] == ["in"]
        assert outcome.records == 1

    @pytest.mark.asyncio
    async def test_window_bounds_are_inclusive(self, fast_config):
        first = make_record("first", WINDOW_START)
        last = make_record("last", WINDOW_END)
        wrapped = ResilientSource(StaticSource("BankA", [first, last]), fast_config)

        records, _ = await wrapped.fetch(WINDOW_START, WINDOW_END)

        assert {r.id for r in records} == {"first", "last"}


class TestTransactionAggregator:
    """Tests for concurrent fan-out and merge."""

    @staticmethod
    def _wrap(sources, config, sleep=None):
        return TransactionAggregator(
            [ResilientSource(s, config, sleep=sleep) for s in sources]
        )

    @pytest.mark.asyncio
    async def test_concatenates_in_registration_order(self, fast_config):
        a = StaticSource("BankA", make_daily_records(2, source="BankA"))
        b = StaticSource("BankB", make_daily_records(3, source="BankB"))
        aggregator = self._wrap([a, b], fast_config)

        merged, run = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert [r.source for r in merged] == ["BankA"] * 2 + ["BankB"] * 3
        assert run.records_fetched == 5
        assert run.failed_sources == 0
        assert aggregator.source_names == ["BankA", "BankB"]

    @pytest.mark.asyncio
    async def test_no_deduplication_across_sources(self, fast_config):
        record = make_record("same-id", WINDOW_START + timedelta(days=2))
        aggregator = self._wrap(
            [StaticSource("BankA", [record]), StaticSource("BankB", [record])],
            fast_config,
        )

        merged, _ = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert len(merged) == 2

    @pytest.mark.asyncio
    async def test_partial_failure_isolation(self, fast_config, fake_sleep):
        a = StaticSource("BankA", make_daily_records(4, source="BankA"))
        b = FailingSource("BankB", error=SourceConnectionError("down"))
        c = StaticSource("BankC", make_daily_records(2, source="BankC"))
        aggregator = self._wrap([a, b, c], fast_config, sleep=fake_sleep)

        merged, run = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert len(merged) == 6
        assert {r.source for r in merged} == {"BankA", "BankC"}
        statuses = {o.source: o.status for o in run.sources}
        assert statuses == {
            "BankA": SourceStatus.SUCCESS,
            "BankB": SourceStatus.EXHAUSTED,
            "BankC": SourceStatus.SUCCESS,
        }
        assert run.failed_sources == 1

    @pytest.mark.asyncio
    async def test_all_sources_failing_gives_empty(self, fast_config, fake_sleep):
        aggregator = self._wrap(
            [FailingSource("BankA"), FailingSource("BankB")], fast_config, sleep=fake_sleep
        )

        merged, run = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert merged == []
        assert run.failed_sources == 2

    @pytest.mark.asyncio
    async def test_sources_called_concurrently(self, fast_config):
        sources = [
            StaticSource(name, make_daily_records(1, source=name), delay=0.2)
            for name in ("BankA", "BankB", "BankC")
        ]
        aggregator = self._wrap(sources, fast_config)

        started = time.perf_counter()
        merged, _ = await aggregator.fetch_all(WINDOW_START, WINDOW_END)
        elapsed = time.perf_counter() - started

        assert len(merged) == 3
        assert elapsed < 0.45

    @pytest.mark.asyncio
    async def test_fast_failure_does_not_cancel_slow_sibling(self, fast_config, fake_sleep):
        slow = StaticSource("BankA", make_daily_records(2), delay=0.1)
        failing = FailingSource("BankB", error=SourceAuthenticationError("denied"))
        aggregator = self._wrap([slow, failing], fast_config, sleep=fake_sleep)

        merged, _ = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert len(merged) == 2

    @pytest.mark.asyncio
    async def test_crashing_wrapper_contributes_nothing(self, fast_config):
        class BrokenWrapper(ResilientSource):
            async def fetch(self, start_time, end_time):
                raise RuntimeError("wrapper bug")

        good = ResilientSource(StaticSource("BankA", make_daily_records(2)), fast_config)
        broken = BrokenWrapper(StaticSource("BankB"), fast_config)
        aggregator = TransactionAggregator([good, broken])

        merged, run = await aggregator.fetch_all(WINDOW_START, WINDOW_END)

        assert len(merged) == 2
        assert run.sources[1].status == SourceStatus.FATAL

    @pytest.mark.asyncio
    async def test_no_sources(self):
        merged, run = await TransactionAggregator([]).fetch_all(WINDOW_START, WINDOW_END)

        assert merged == []
        assert run.sources == []

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, fast_config):
        aggregator = self._wrap(
            [StaticSource("BankA", make_daily_records(1), delay=5.0)], fast_config
        )
        task = asyncio.create_task(aggregator.fetch_all(WINDOW_START, WINDOW_END))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
