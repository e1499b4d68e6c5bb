"""
Aggregation metrics and monitoring.

Tracks cache effectiveness, per-source outcomes and latency, and keeps a
short history of aggregation runs for status reporting.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceStatus(str, Enum):
    """Outcome of one resilient call to a source."""

    SUCCESS = "success"
    CIRCUIT_OPEN = "circuit_open"
    EXHAUSTED = "exhausted"  # Retries used up on transient failures
    FATAL = "fatal"  # Non-retryable error


@dataclass
class SourceOutcome:
    """What one source contributed to an aggregation."""

    source: str
    status: SourceStatus
    records: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class AggregationRunMetrics:
    """Metrics for a single fan-out over all sources."""

    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    records_fetched: int = 0
    sources: List[SourceOutcome] = field(default_factory=list)

    @property
    def failed_sources(self) -> int:
        return sum(1 for s in self.sources if s.status != SourceStatus.SUCCESS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "records_fetched": self.records_fetched,
            "failed_sources": self.failed_sources,
            "sources": [s.to_dict() for s in self.sources],
        }


@dataclass
class SourceStats:
    """Cumulative per-source counters."""

    calls: int = 0
    successes: int = 0
    circuit_open: int = 0
    exhausted: int = 0
    fatal: int = 0
    records: int = 0
    total_latency_seconds: float = 0.0

    @property
    def avg_latency_seconds(self) -> float:
        return self.total_latency_seconds / self.calls if self.calls else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["avg_latency_seconds"] = self.avg_latency_seconds
        return data


class AggregationMetrics:
    """
    In-memory metrics tracker for the aggregation service.

    Owned by one TransactionService instance; nothing here is global.
    """

    def __init__(self, history_size: int = 100):
        """
        Initialize metrics tracker.

        Args:
            history_size: Number of recent aggregation runs to keep in memory
        """
        self.history_size = history_size
        self.cache_hits = 0
        self.cache_misses = 0
        self.shared_fetches = 0
        self.degraded_responses = 0
        self._sources: Dict[str, SourceStats] = {}
        self._history: List[AggregationRunMetrics] = []

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    def record_shared_fetch(self):
        """A miss that joined an in-flight fetch instead of starting one."""
        self.shared_fetches += 1

    def record_degraded_response(self):
        """An unexpected error was turned into an empty result."""
        self.degraded_responses += 1

    def record_run(self, run: AggregationRunMetrics):
        """Add a finished aggregation run and fold in its per-source outcomes."""
        for outcome in run.sources:
            stats = self._sources.setdefault(outcome.source, SourceStats())
            stats.calls += 1
            stats.records += outcome.records
            stats.total_latency_seconds += outcome.duration_seconds
            if outcome.status == SourceStatus.SUCCESS:
                stats.successes += 1
            elif outcome.status == SourceStatus.CIRCUIT_OPEN:
                stats.circuit_open += 1
            elif outcome.status == SourceStatus.EXHAUSTED:
                stats.exhausted += 1
            elif outcome.status == SourceStatus.FATAL:
                stats.fatal += 1

        self._history.append(run)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size :]

    def get_source_stats(self, source: str) -> SourceStats:
        return self._sources.get(source, SourceStats())

    def get_history(self, limit: Optional[int] = None) -> List[AggregationRunMetrics]:
        """
        Get recent run history.

        Args:
            limit: Maximum number of runs to return (defaults to all)

        Returns:
            List of aggregation runs, newest first
        """
        history = list(reversed(self._history))
        if limit:
            history = history[:limit]
        return history

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def snapshot(self) -> Dict[str, Any]:
        """Current counters as a plain dict."""
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "cache": {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "hit_rate": self.cache_hit_rate,
                "shared_fetches": self.shared_fetches,
            },
            "degraded_responses": self.degraded_responses,
            "sources": {name: s.to_dict() for name, s in self._sources.items()},
            "recent_runs": [r.to_dict() for r in self.get_history(limit=10)],
        }
