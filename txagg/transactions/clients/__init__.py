"""Transaction source implementations."""

from txagg.transactions.clients.base import BaseTransactionSource
from txagg.transactions.clients.http_client import HttpTransactionSource
from txagg.transactions.clients.mock_client import (
    MockTransactionSource,
    create_mock_banks,
)

__all__ = [
    "BaseTransactionSource",
    "HttpTransactionSource",
    "MockTransactionSource",
    "create_mock_banks",
]
