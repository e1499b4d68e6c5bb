"""
Transaction aggregation module.

Fans out to every upstream source with per-source resilience, caches the
merged result and serves filtered, sorted pages of it.
"""

from txagg.transactions.models import (
    PagedResult,
    QueryValidationError,
    TransactionQuery,
    TransactionRecord,
)

__all__ = [
    "PagedResult",
    "QueryValidationError",
    "TransactionQuery",
    "TransactionRecord",
]
