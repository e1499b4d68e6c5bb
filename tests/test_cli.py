"""
Tests for the command-line query and status commands.
"""

import sys

import pytest

from txagg.cache.redis_cache import RedisTransactionCache
from txagg.transactions import cli
from txagg.transactions.service import TransactionService
from tests.fixtures.fake_redis import FakeRedis
from tests.fixtures.sources import WINDOW_END, WINDOW_START, StaticSource, make_daily_records


class TestCli:
    @pytest.mark.asyncio
    async def test_query_command_prints_page(self, fast_config, capsys):
        service = TransactionService(
            [StaticSource("BankA", make_daily_records(2))], config=fast_config
        )

        code = await cli.query_command(service, WINDOW_START, WINDOW_END)

        out = capsys.readouterr().out
        assert code == 0
        assert "page 1/1, 2 total" in out
        assert "BankA-1" in out

    @pytest.mark.asyncio
    async def test_query_command_invalid(self, fast_config, capsys):
        service = TransactionService([StaticSource("BankA")], config=fast_config)

        code = await cli.query_command(service, WINDOW_END, WINDOW_START)

        assert code == 2
        assert "Invalid query" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_query_command_cache_write_failure(self, fast_config, capsys):
        service = TransactionService(
            [StaticSource("BankA", make_daily_records(1))],
            cache=RedisTransactionCache(FakeRedis(fail_writes=True)),
            config=fast_config,
        )

        code = await cli.query_command(service, WINDOW_START, WINDOW_END)

        assert code == 1
        assert "Could not cache result" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_status_command(self, fast_config, capsys):
        service = TransactionService([StaticSource("BankA")], config=fast_config)

        code = await cli.status_command(service)

        out = capsys.readouterr().out
        assert code == 0
        assert "BankA: closed (failures: 0)" in out
        assert "Backend: memory" in out

    def test_usage_without_command(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["txagg"])

        assert cli.main() == 1
        assert "Usage" in capsys.readouterr().out
