"""
Transaction aggregation CLI commands.

Provides a command-line way to run an aggregated query against the
configured sources and to inspect breaker and cache status.
"""

import asyncio
import sys
from datetime import datetime
from typing import Optional

import structlog

from txagg.cache.base import CacheWriteError
from txagg.core.config import get_settings
from txagg.core.logging import configure_logging
from txagg.transactions.models import PagedResult, QueryValidationError
from txagg.transactions.service import TransactionService, get_transaction_service

logger = structlog.get_logger()


def print_page(result: PagedResult):
    """Pretty print one page of transactions."""
    print(
        f"\n=== Transactions (page {result.page}/{result.total_pages}, "
        f"{result.total} total) ===\n"
    )
    for tx in result.transactions:
        print(
            f"{tx.date:%Y-%m-%d %H:%M}  {tx.source:<8} {tx.category:<18} "
            f"{tx.amount:>12} {tx.currency}  {tx.id}"
        )
    if not result.transactions:
        print("(no transactions)")
    print()


def print_status(status: dict):
    """Pretty print service status."""
    print("\n=== Aggregation Service Status ===\n")
    print(f"Sources: {', '.join(status['sources']) or 'none'}")

    print("\n--- Circuit Breakers ---")
    for cb in status["circuit_breakers"]:
        print(f"{cb['name']}: {cb['state']} (failures: {cb['failure_count']})")

    print("\n--- Cache ---")
    cache = status["cache"]
    print(f"Backend: {cache['backend']}")
    print(f"TTL: {cache['ttl_minutes']} minutes")
    stats = status["metrics"]["cache"]
    print(f"Hits: {stats['hits']}  Misses: {stats['misses']}  Hit Rate: {stats['hit_rate']:.1%}")

    sources = status["metrics"]["sources"]
    if sources:
        print("\n--- Sources ---")
        for name, s in sources.items():
            print(
                f"{name}: {s['calls']} calls, {s['successes']} ok, "
                f"{s['exhausted']} exhausted, {s['circuit_open']} rejected, "
                f"{s['fatal']} fatal, avg {s['avg_latency_seconds']:.2f}s"
            )
    print()


async def query_command(
    service: TransactionService,
    from_date: datetime,
    to_date: datetime,
    category: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> int:
    """Run one aggregated query and print the page."""
    try:
        result = await service.get_transactions(
            from_date, to_date, category, page, page_size
        )
    except QueryValidationError as e:
        print(f"Invalid query: {e}")
        return 2
    except CacheWriteError as e:
        logger.error("cli.cache_write_failed", error=str(e))
        print(f"Could not cache result: {e}")
        return 1
    print_page(result)
    return 0


async def status_command(service: TransactionService) -> int:
    """Show breaker and cache status."""
    print_status(service.get_status())
    return 0


async def _run(command: str, args: list[str]) -> int:
    service = get_transaction_service()
    try:
        if command == "query":
            from_date = datetime.fromisoformat(args[0])
            to_date = datetime.fromisoformat(args[1])
            category = args[2] if len(args) > 2 and args[2] != "all" else None
            page = int(args[3]) if len(args) > 3 else 1
            page_size = int(args[4]) if len(args) > 4 else 50
            code = await query_command(
                service, from_date, to_date, category, page, page_size
            )
            await status_command(service)
            return code
        return await status_command(service)
    finally:
        await service.close()


def main():
    """Main CLI entry point."""
    if len(sys.argv) < 2 or sys.argv[1] not in ("query", "status"):
        print("Usage: python -m txagg.transactions.cli <command> [options]")
        print("\nCommands:")
        print("  query FROM TO [category|all] [page] [page_size]")
        print("                    Run an aggregated query")
        print("  status            Show breaker and cache status")
        print("\nExamples:")
        print("  python -m txagg.transactions.cli query 2025-09-01 2025-10-14")
        print("  python -m txagg.transactions.cli query 2025-09-01 2025-10-14 groceries 1 10")
        return 1

    command = sys.argv[1]
    if command == "query" and len(sys.argv) < 4:
        print("query needs FROM and TO dates (YYYY-MM-DD)")
        return 1

    configure_logging(get_settings().ENV)
    try:
        return asyncio.run(_run(command, sys.argv[2:]))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except ValueError as e:
        print(f"Error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
