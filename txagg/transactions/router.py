"""
Transaction API routes.

Binds query parameters, delegates to the aggregation service and maps
its errors onto HTTP responses.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, Query, Response, status
from fastapi.responses import JSONResponse

from txagg.cache.base import CacheWriteError
from txagg.core.auth import require_api_key
from txagg.transactions.models import DEFAULT_PAGE_SIZE, PagedResult, QueryValidationError
from txagg.transactions.service import TransactionService, get_transaction_service

logger = structlog.get_logger()

router = APIRouter(
    prefix="/api/transactions",
    tags=["transactions"],
    dependencies=[Depends(require_api_key)],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get(
    "",
    response_model=PagedResult,
    responses={
        400: {"description": "Invalid request parameters"},
        401: {"description": "Missing or invalid API key"},
        500: {"description": "Result could not be cached"},
    },
)
async def get_transactions(
    response: Response,
    from_date: datetime = Query(..., alias="from", description="Start date (inclusive)"),
    to_date: datetime = Query(..., alias="to", description="End date (inclusive)"),
    category: Optional[str] = Query(None, description="Case-insensitive category filter"),
    page: int = Query(1, description="Page number (minimum 1)"),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", description="Items per page (1-100)"),
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: TransactionService = Depends(get_transaction_service),
):
    """
    Get aggregated transactions from all banks.

    Results are sorted newest first. Pagination totals are also returned
    in the X-Total-Count, X-Page, X-PageSize and X-Total-Pages headers.

    Upstream failures are not reported as errors: a bank that cannot be
    reached simply contributes no transactions.
    """
    try:
        result = await service.get_transactions(
            from_date, to_date, category, page, page_size, tenant=user_id
        )
    except QueryValidationError as e:
        logger.warning(
            "transactions.invalid_request",
            error=str(e),
            page=page,
            page_size=page_size,
        )
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except CacheWriteError as e:
        logger.error("transactions.cache_write_failed", error=str(e))
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Unexpected error occurred while retrieving transactions",
        )

    response.headers.update(result.pagination_headers())
    return result


@router.head("")
async def get_transactions_metadata(
    from_date: datetime = Query(..., alias="from"),
    to_date: datetime = Query(..., alias="to"),
    category: Optional[str] = Query(None),
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: TransactionService = Depends(get_transaction_service),
):
    """Pagination headers only, no body."""
    try:
        result = await service.get_transactions(
            from_date, to_date, category, page, page_size, tenant=user_id
        )
    except QueryValidationError:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)
    except CacheWriteError:
        return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(status_code=status.HTTP_200_OK, headers=result.pagination_headers())
