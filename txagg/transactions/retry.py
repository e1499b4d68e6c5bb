"""
Retry, timeout and circuit breaker utilities for resilient source calls.

Implements exponential backoff and a Closed/Open/Half-Open circuit
breaker to handle transient upstream failures gracefully.
"""

import asyncio
import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from txagg.transactions.clients.base import SourceTimeoutError, SourceTransientError
from txagg.transactions.config import CircuitBreakerConfig, RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Single probe in flight


class CircuitOpenError(Exception):
    """Raised when circuit breaker is open."""

    pass


class CircuitBreaker:
    """
    Circuit breaker pattern implementation.

    Counts consecutive failures of the protected call. Once the threshold
    is reached the circuit opens and calls are rejected without running
    for the cooldown period. After the cooldown exactly one probe call is
    let through; its outcome closes or re-opens the circuit.

    State transitions happen under an asyncio lock so concurrent callers
    see a consistent state. The protected call itself runs outside it.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig,
        name: str = "default",
        failure_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            config: Circuit breaker configuration
            name: Name of the protected dependency, for logs
            failure_exceptions: Exceptions counted as failures while closed
            clock: Monotonic time source in seconds
        """
        self.config = config
        self.name = name
        self.failure_exceptions = failure_exceptions
        self._clock = clock
        self._lock = asyncio.Lock()

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.last_state_change: datetime = datetime.now(timezone.utc)
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    async def call_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an async function with circuit breaker protection.

        Args:
            func: Async function to execute

        Returns:
            Function result

        Raises:
            CircuitOpenError: If circuit is open or a probe is already running
            Exception: Original exception from function
        """
        async with self._lock:
            is_probe = self._admit()

        try:
            result = await func()
        except self.failure_exceptions:
            async with self._lock:
                self._on_failure(is_probe)
            raise
        except BaseException:
            # Not a counted failure, but a probe that did not succeed still
            # cannot close the circuit.
            if is_probe:
                async with self._lock:
                    self._on_failure(is_probe)
            raise

        async with self._lock:
            self._on_success()
        return result

    def _admit(self) -> bool:
        """Decide whether a call may run. Returns True for a probe call."""
        if self.state == CircuitState.CLOSED:
            return False

        if self.state == CircuitState.OPEN:
            if not self._cooldown_elapsed():
                raise CircuitOpenError(
                    f"Circuit breaker for {self.name} is OPEN. "
                    f"Last failure: {self.last_failure_time}"
                )
            self._transition_to_half_open()

        if self._probe_in_flight:
            raise CircuitOpenError(
                f"Circuit breaker for {self.name} is HALF_OPEN with a probe in flight"
            )
        self._probe_in_flight = True
        return True

    def _on_success(self):
        """Handle successful call."""
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_closed()
            logger.info("breaker.closed", breaker=self.name)

    def _on_failure(self, is_probe: bool):
        """Handle failed call."""
        self.failure_count += 1
        self.last_failure_time = datetime.now(timezone.utc)

        if self.state == CircuitState.OPEN and not is_probe:
            # Admitted before another caller opened the circuit
            return
        if is_probe or self.state == CircuitState.HALF_OPEN:
            self._transition_to_open()
            logger.warning(
                "breaker.reopened",
                breaker=self.name,
                cooldown_seconds=self.config.cooldown_seconds,
            )
        elif self.failure_count >= self.config.failure_threshold:
            self._transition_to_open()
            logger.warning(
                "breaker.opened",
                breaker=self.name,
                failure_count=self.failure_count,
                threshold=self.config.failure_threshold,
                cooldown_seconds=self.config.cooldown_seconds,
            )

    def _cooldown_elapsed(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self.config.cooldown_seconds

    def _transition_to_open(self):
        """Transition to OPEN state."""
        self.state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
        self.last_state_change = datetime.now(timezone.utc)

    def _transition_to_half_open(self):
        """Transition to HALF_OPEN state."""
        self.state = CircuitState.HALF_OPEN
        self._probe_in_flight = False
        self.last_state_change = datetime.now(timezone.utc)
        logger.info("breaker.half_open", breaker=self.name)

    def _transition_to_closed(self):
        """Transition to CLOSED state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self._opened_at = None
        self._probe_in_flight = False
        self.last_state_change = datetime.now(timezone.utc)

    def get_state(self) -> dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": (
                self.last_failure_time.isoformat() if self.last_failure_time else None
            ),
            "last_state_change": self.last_state_change.isoformat(),
        }


async def with_timeout(
    func: Callable[[], Awaitable[T]],
    seconds: float,
    operation_name: str = "operation",
) -> T:
    """
    Run one attempt of ``func`` bounded by ``seconds``.

    Raises:
        SourceTimeoutError: If the attempt did not finish in time
    """
    try:
        return await asyncio.wait_for(func(), timeout=seconds)
    except asyncio.TimeoutError as e:
        logger.warning("attempt.timed_out", operation=operation_name, timeout_seconds=seconds)
        raise SourceTimeoutError(
            f"{operation_name} timed out after {seconds}s"
        ) from e


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (SourceTransientError,),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Execute a function with exponential backoff retry.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates immediately.

    Args:
        func: Async function to execute
        config: Retry configuration
        operation_name: Name for logging
        retry_on: Exception types considered transient
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Function result

    Raises:
        Exception: Last exception if all retries exhausted
    """
    for attempt in range(config.max_attempts):
        try:
            return await func()
        except retry_on as e:
            attempt_num = attempt + 1

            if attempt_num >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    operation=operation_name,
                    attempts=attempt_num,
                    error=str(e),
                )
                raise

            delay = config.delay_for(attempt_num)
            if config.jitter:
                delay = delay * (0.5 + random.random() * 0.5)

            logger.warning(
                "retry.attempt",
                operation=operation_name,
                attempt=attempt_num,
                max_attempts=config.max_attempts,
                delay_seconds=delay,
                error_type=type(e).__name__,
                error=str(e),
            )

            await sleep(delay)

    raise RuntimeError("Retry failed without exception")
