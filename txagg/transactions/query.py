"""Category filter, date sort and page window over a record list."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional, Sequence

from txagg.transactions.models import PagedResult, TransactionRecord, as_utc


def filter_by_category(
    records: Sequence[TransactionRecord], category: Optional[str]
) -> list[TransactionRecord]:
    """Keep records whose category equals ``category`` ignoring case."""
    if category is None or not category.strip():
        return list(records)
    wanted = category.strip().casefold()
    return [r for r in records if r.category.casefold() == wanted]


def filter_by_window(
    records: Sequence[TransactionRecord], start: datetime, end: datetime
) -> list[TransactionRecord]:
    """Keep records dated within [start, end], both ends inclusive."""
    start = as_utc(start)
    end = as_utc(end)
    return [r for r in records if start <= as_utc(r.date) <= end]


def sort_by_date_desc(records: Sequence[TransactionRecord]) -> list[TransactionRecord]:
    """Newest first. Stable, so equal dates keep their incoming order."""
    return sorted(records, key=lambda r: as_utc(r.date), reverse=True)


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def apply_query(
    records: Sequence[TransactionRecord],
    category: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    """
    Build one page of results from a merged record list.

    Args:
        records: Merged, unfiltered records
        category: Optional case-insensitive category filter
        page: 1-based page number
        page_size: Items per page

    Returns:
        PagedResult whose total counts matches before pagination
    """
    matching = sort_by_date_desc(filter_by_category(records, category))
    total = len(matching)
    skip = (page - 1) * page_size

    return PagedResult(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages(total, page_size),
        transactions=matching[skip : skip + page_size],
    )
