"""
Base transaction source interface.

Defines the contract that every upstream provider of transactions must
implement, along with the error taxonomy the resilience layer relies on.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from txagg.transactions.models import TransactionRecord


class BaseTransactionSource(ABC):
    """
    Abstract base class for upstream transaction sources.

    Sources may be slow and may fail intermittently. They are not required
    to return a complete set, only records dated inside the requested window.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the source.

        Args:
            api_key: API authentication key
            base_url: Base URL for the upstream API
            timeout: Transport-level request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    @abstractmethod
    async def fetch_transactions(
        self,
        start_time: datetime,
        end_time: datetime,
    ) -> List[TransactionRecord]:
        """
        Fetch transactions dated within [start_time, end_time].

        Args:
            start_time: Start of the window (inclusive)
            end_time: End of the window (inclusive)

        Returns:
            List of transaction records

        Raises:
            SourceTransientError: For failures worth retrying
            SourceFatalError: For failures that will not go away on retry
        """
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """
        Get the stable name of this source.

        Returns:
            Source identifier (e.g., 'BankA')
        """
        pass

    async def close(self) -> None:
        """Release any connections held by the source."""
        return None


class SourceError(Exception):
    """Base exception for source errors."""

    pass


class SourceTransientError(SourceError):
    """Raised for failures that may succeed when retried."""

    pass


class SourceTimeoutError(SourceTransientError):
    """Raised when a single attempt exceeds its time budget."""

    pass


class SourceConnectionError(SourceTransientError):
    """Raised when the source cannot be reached or answers with a 5xx."""

    pass


class SourceRateLimitError(SourceTransientError):
    """Raised when the source rejects the call due to rate limiting."""

    pass


class SourceFatalError(SourceError):
    """Raised for failures that retrying will not fix."""

    pass


class SourceAuthenticationError(SourceFatalError):
    """Raised when the source rejects our credentials."""

    pass
