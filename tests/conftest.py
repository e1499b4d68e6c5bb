import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import txagg` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from txagg.transactions.config import (  # noqa: E402
    AggregatorConfig,
    CircuitBreakerConfig,
    RetryConfig,
    TimeoutConfig,
)
from tests.fixtures.sources import FakeClock, RecordingSleep  # noqa: E402


@pytest.fixture
def fast_config() -> AggregatorConfig:
    """Aggregation settings with tiny delays so retries finish quickly."""
    return AggregatorConfig(
        timeout=TimeoutConfig(seconds=0.5),
        retry=RetryConfig(max_retries=3, initial_delay=0.001, max_delay=0.01),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=5, cooldown_seconds=30.0),
    )


@pytest.fixture
def no_retry_config() -> AggregatorConfig:
    """One attempt per call, so each failed call counts once against the breaker."""
    return AggregatorConfig(
        timeout=TimeoutConfig(seconds=0.5),
        retry=RetryConfig(max_retries=0),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=5, cooldown_seconds=30.0),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()
