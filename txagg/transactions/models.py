"""Data models for aggregated transactions, queries and paged results."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
MAX_LOOKBACK_YEARS = 10
MAX_LOOKAHEAD_YEARS = 1


class QueryValidationError(ValueError):
    """Raised when a transaction query has an invalid date range or paging."""

    pass


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _shift_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 on a non-leap target year
        return value.replace(year=value.year + years, day=28)


class TransactionRecord(BaseModel):
    """A single transaction as returned by one upstream source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Source-scoped transaction identifier")
    date: datetime = Field(..., description="When the transaction happened")
    amount: Decimal = Field(
        ..., description="Transaction amount; JSON carries it as a decimal string"
    )
    currency: str = Field(..., description="ISO currency code")
    category: str = Field(..., description="Spending category")
    source: str = Field(..., description="Name of the source that produced it")


class TransactionQuery(BaseModel):
    """Parameters of one aggregated transaction lookup."""

    from_date: datetime
    to_date: datetime
    category: Optional[str] = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    tenant: Optional[str] = None

    def validate_bounds(self, now: Optional[datetime] = None) -> None:
        """
        Check the query invariants.

        Args:
            now: Reference time for the lookback/lookahead limits

        Raises:
            QueryValidationError: If any parameter is out of range
        """
        now = as_utc(now or datetime.now(timezone.utc))
        start = as_utc(self.from_date)
        end = as_utc(self.to_date)

        if start > end:
            raise QueryValidationError(
                "'from' date must be before or equal to 'to' date"
            )
        if start < _shift_years(now, -MAX_LOOKBACK_YEARS):
            raise QueryValidationError(
                f"Parameter 'from' cannot be more than {MAX_LOOKBACK_YEARS} years in the past"
            )
        if end > _shift_years(now, MAX_LOOKAHEAD_YEARS):
            raise QueryValidationError(
                f"Parameter 'to' cannot be more than {MAX_LOOKAHEAD_YEARS} year in the future"
            )
        if self.page < 1:
            raise QueryValidationError("Page number must be greater than 0")
        if self.page_size < 1 or self.page_size > MAX_PAGE_SIZE:
            raise QueryValidationError(
                f"Page size must be between 1 and {MAX_PAGE_SIZE}"
            )


class PagedResult(BaseModel):
    """One page of filtered, sorted transactions plus paging totals."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(..., ge=0, description="Matches before pagination")
    page: int = Field(..., ge=1)
    page_size: int = Field(..., alias="pageSize", ge=1)
    total_pages: int = Field(..., alias="totalPages", ge=0)
    transactions: list[TransactionRecord] = Field(default_factory=list)

    @classmethod
    def empty(cls, page: int, page_size: int) -> "PagedResult":
        """Zero-total result used when nothing matched or aggregation failed."""
        return cls(
            total=0,
            page=max(page, 1),
            page_size=max(page_size, 1),
            total_pages=0,
            transactions=[],
        )

    def pagination_headers(self) -> dict[str, str]:
        """Response headers describing this page."""
        return {
            "X-Total-Count": str(self.total),
            "X-Page": str(self.page),
            "X-PageSize": str(self.page_size),
            "X-Total-Pages": str(self.total_pages),
        }
