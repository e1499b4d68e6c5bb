"""
Aggregation configuration.

Defines settings for per-source resilience (timeout, retry, circuit
breaker) and for caching of aggregated results.
"""

from datetime import timedelta

from pydantic import BaseModel, Field

from txagg.core.config import Settings


class TimeoutConfig(BaseModel):
    """Configuration for the per-attempt time budget."""

    seconds: float = Field(default=5.0, gt=0, description="Max seconds per attempt")


class RetryConfig(BaseModel):
    """Configuration for retry behavior with exponential backoff."""

    max_retries: int = Field(
        default=3, ge=0, description="Additional attempts after a transient failure"
    )
    initial_delay: float = Field(
        default=1.0, gt=0, description="Multiplier applied to the backoff curve"
    )
    max_delay: float = Field(default=60.0, gt=0, description="Maximum delay in seconds")
    exponential_base: float = Field(default=2.0, gt=1, description="Backoff multiplier")
    jitter: bool = Field(
        default=False, description="Add random jitter to prevent thundering herd"
    )

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry number ``retry_number`` (1-based)."""
        return min(
            self.initial_delay * (self.exponential_base**retry_number),
            self.max_delay,
        )


class CircuitBreakerConfig(BaseModel):
    """Configuration for circuit breaker pattern."""

    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures before opening circuit"
    )
    cooldown_seconds: float = Field(
        default=30.0, gt=0, description="Seconds before admitting a probe call"
    )


class CacheConfig(BaseModel):
    """Configuration for caching aggregated results."""

    ttl_minutes: int = Field(default=10, ge=1, description="Entry lifetime in minutes")

    def get_ttl(self) -> timedelta:
        """Get TTL as timedelta."""
        return timedelta(minutes=self.ttl_minutes)


class AggregatorConfig(BaseModel):
    """Main aggregation configuration."""

    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    # Metrics
    metrics_history_size: int = Field(
        default=100, ge=1, description="Aggregation runs kept in memory"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AggregatorConfig":
        """Build the configuration from environment settings."""
        return cls(
            timeout=TimeoutConfig(seconds=settings.SOURCE_TIMEOUT_SECONDS),
            retry=RetryConfig(
                max_retries=settings.SOURCE_MAX_RETRIES,
                exponential_base=settings.SOURCE_RETRY_BASE,
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
                cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS,
            ),
            cache=CacheConfig(ttl_minutes=settings.CACHE_TTL_MINUTES),
        )
