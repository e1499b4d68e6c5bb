"""HTTP-backed transaction source for real upstream bank APIs."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from txagg.core.logging import new_correlation_id
from txagg.transactions.clients.base import (
    BaseTransactionSource,
    SourceAuthenticationError,
    SourceConnectionError,
    SourceFatalError,
    SourceRateLimitError,
    SourceTimeoutError,
)
from txagg.transactions.models import TransactionRecord

logger = structlog.get_logger()

_records_adapter = TypeAdapter(List[TransactionRecord])


class HttpTransactionSource(BaseTransactionSource):
    """
    Source that reads ``GET {base_url}/transactions?from=..&to=..``.

    The upstream is expected to answer with a JSON array of records. The
    ``source`` field is always overwritten with this source's name.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout)
        self.name = name
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def get_source_name(self) -> str:
        return self.name

    async def fetch_transactions(
        self,
        start_time: datetime,
        end_time: datetime,
    ) -> List[TransactionRecord]:
        request_id = new_correlation_id()
        params = {
            "from": start_time.strftime("%Y-%m-%d"),
            "to": end_time.strftime("%Y-%m-%d"),
        }
        log = logger.bind(source=self.name, source_request_id=request_id)

        try:
            response = await self._client.get(
                "/transactions",
                params=params,
                headers={"x-request-id": request_id},
            )
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(f"[{self.name}] request timed out: {e}") from e
        except httpx.TransportError as e:
            raise SourceConnectionError(f"[{self.name}] transport error: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise SourceAuthenticationError(f"[{self.name}] rejected credentials ({status})")
        if status == 429:
            raise SourceRateLimitError(f"[{self.name}] rate limit exceeded")
        if status >= 500:
            raise SourceConnectionError(f"[{self.name}] upstream error HTTP {status}")
        if status >= 400:
            raise SourceFatalError(
                f"[{self.name}] request rejected HTTP {status}: {response.text[:200]}"
            )

        try:
            records = _records_adapter.validate_json(response.content)
        except ValidationError as e:
            raise SourceFatalError(f"[{self.name}] malformed response body") from e

        log.info("http_source.fetched", count=len(records), status=status)
        return [r.model_copy(update={"source": self.name}) for r in records]

    async def close(self) -> None:
        await self._client.aclose()
