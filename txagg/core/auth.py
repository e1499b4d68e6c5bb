"""API key check for the public endpoints."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, status

from txagg.core.config import get_settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Api-Key"


async def require_api_key(
    x_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER),
) -> None:
    """FastAPI dependency rejecting requests without the configured API key.

    When no API_KEY is configured, auth is disabled (development only).
    """
    expected = get_settings().API_KEY
    if not expected:
        return

    if not x_api_key:
        logger.warning("auth.missing_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "API key is missing", "header": API_KEY_HEADER},
        )

    if not hmac.compare_digest(x_api_key, expected):
        logger.warning("auth.invalid_api_key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid API key"},
        )
