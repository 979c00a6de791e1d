"""Metrics Aggregator - Per-stage success, latency and error counters."""

import threading
from dataclasses import dataclass
from typing import Any

STAGES = (1, 2, 3, 4)


@dataclass(slots=True)
class StageCounters:
    succeeded: int = 0
    cumulative_latency_ms: int = 0
    errors: int = 0


class MetricsAggregator:
    """Process-lifetime counters owned by one orchestrator.

    Thread-safe; every mutation holds the internal lock.
    """

    __slots__ = ("_lock", "_stages", "_queries", "_cache_hits", "_failures")

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._stages = {stage: StageCounters() for stage in STAGES}
            self._queries = 0
            self._cache_hits = 0
            self._failures = 0

    def record_query(self) -> None:
        with self._lock:
            self._queries += 1

    def record_cache_hit(self) -> None:
        with self._lock:
            self._cache_hits += 1

    def record_success(self, stage: int, latency_ms: int) -> None:
        with self._lock:
            counters = self._stages[stage]
            counters.succeeded += 1
            counters.cumulative_latency_ms += latency_ms

    def record_stage_error(self, stage: int) -> None:
        with self._lock:
            self._stages[stage].errors += 1

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1

    def snapshot(self) -> dict[str, Any]:
        """Derived metrics: rates, averages and raw counters."""
        with self._lock:
            total = self._queries
            successes = sum(c.succeeded for c in self._stages.values())
            latency = sum(c.cumulative_latency_ms for c in self._stages.values())

            return {
                "total_queries": total,
                "success_by_stage": {s: c.succeeded for s, c in self._stages.items()},
                "average_latency_by_stage": {
                    s: (c.cumulative_latency_ms / c.succeeded if c.succeeded else 0.0)
                    for s, c in self._stages.items()
                },
                "error_counts_by_stage": {s: c.errors for s, c in self._stages.items()},
                "success_rate": successes / total if total else 0.0,
                "avg_response_time_ms": latency / successes if successes else 0.0,
                "cache_hit_rate": self._cache_hits / total if total else 0.0,
                "cache_hits": self._cache_hits,
                "total_failures": self._failures,
            }
