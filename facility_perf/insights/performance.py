"""Performance monitoring for data operations.

Keeps a bounded ring buffer of timing samples and derives:
- Average duration and per-operation breakdown
- Cache hit rate (from the attached cache, else from sample flags)
- A simple degradation signal comparing recent samples to earlier ones
"""

from __future__ import annotations

import inspect
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..data.cache import IntelligentCache


DEFAULT_CAPACITY = 100
RECENT_SAMPLES = 10
DEGRADATION_WINDOW = 5
DEGRADATION_FACTOR = 1.5

CacheHit = Union[None, bool, Callable[[], Optional[bool]]]


@dataclass(frozen=True)
class PerformanceSample:
    """One timed operation."""

    operation: str
    duration_ms: float
    item_count: int
    timestamp: float
    cache_hit: Optional[bool] = None
    failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "duration": round(self.duration_ms, 3),
            "itemCount": self.item_count,
            "timestamp": self.timestamp,
            "cacheHit": self.cache_hit,
            "failed": self.failed,
        }


def _average(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


class PerformanceMonitor:
    """Transparent timing wrapper with a fixed-capacity sample buffer.

    Args:
        capacity: Number of samples kept; the oldest are dropped first
        cache: Cache whose hit rate is reported, if any
        clock: High-resolution time source in seconds
        enabled: When False, operations run unmeasured
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        cache: Optional[IntelligentCache] = None,
        clock: Callable[[], float] = time.perf_counter,
        enabled: bool = True,
    ):
        self.capacity = max(1, capacity)
        self.cache = cache
        self.enabled = enabled
        self._clock = clock
        self._samples: "deque[PerformanceSample]" = deque(maxlen=self.capacity)

    def measure_operation(
        self,
        name: str,
        fn: Callable[[], Any],
        item_count: int = 0,
        cache_hit: CacheHit = None,
    ) -> Any:
        """Run ``fn`` and record how long it took.

        If ``fn`` returns an awaitable, an awaitable is returned instead and
        the sample is recorded when it completes. Exceptions are recorded as
        failed samples and re-raised unchanged.

        Args:
            name: Operation name used in the breakdown
            fn: Zero-argument callable performing the work
            item_count: Number of items the operation handled
            cache_hit: Cache outcome, or a callable evaluated after ``fn``
                completes (for outcomes only known afterwards)
        """
        if not self.enabled:
            return fn()

        start = self._clock()
        try:
            result = fn()
        except Exception:
            self._finish(name, start, item_count, cache_hit, failed=True)
            raise

        if inspect.isawaitable(result):
            return self._measure_awaitable(name, result, start, item_count, cache_hit)

        self._finish(name, start, item_count, cache_hit)
        return result

    async def _measure_awaitable(
        self,
        name: str,
        awaitable: Awaitable[Any],
        start: float,
        item_count: int,
        cache_hit: CacheHit,
    ) -> Any:
        try:
            result = await awaitable
        except Exception:
            self._finish(name, start, item_count, cache_hit, failed=True)
            raise
        self._finish(name, start, item_count, cache_hit)
        return result

    def _finish(
        self,
        name: str,
        start: float,
        item_count: int,
        cache_hit: CacheHit,
        failed: bool = False,
    ) -> None:
        if callable(cache_hit):
            cache_hit = cache_hit()
        self.record(
            PerformanceSample(
                operation=name,
                duration_ms=(self._clock() - start) * 1000,
                item_count=item_count,
                timestamp=time.time(),
                cache_hit=cache_hit,
                failed=failed,
            )
        )

    def record(self, sample: PerformanceSample) -> None:
        self._samples.append(sample)

    def clear(self) -> None:
        self._samples.clear()

    @property
    def samples(self) -> List[PerformanceSample]:
        return list(self._samples)

    def cache_hit_rate(self) -> float:
        """Hit rate in [0.0, 1.0]."""
        if self.cache is not None:
            return self.cache.get_stats().hit_rate
        flagged = [s.cache_hit for s in self._samples if s.cache_hit is not None]
        if not flagged:
            return 0.0
        return sum(1 for hit in flagged if hit) / len(flagged)

    def get_performance_stats(self) -> Dict[str, Any]:
        samples = list(self._samples)

        breakdown: Dict[str, Dict[str, Any]] = {}
        durations: Dict[str, List[float]] = {}
        for sample in samples:
            durations.setdefault(sample.operation, []).append(sample.duration_ms)
        for operation, values in durations.items():
            breakdown[operation] = {
                "count": len(values),
                "averageDuration": round(_average(values), 3),
            }

        return {
            "averageDuration": round(_average([s.duration_ms for s in samples]), 3),
            "totalOperations": len(samples),
            "cacheHitRate": self.cache_hit_rate(),
            "operationBreakdown": breakdown,
            "recentMetrics": [s.to_dict() for s in samples[-RECENT_SAMPLES:]],
        }

    def is_performance_degrading(self) -> bool:
        """True when the last few operations are markedly slower than before."""
        if len(self._samples) < 2 * DEGRADATION_WINDOW:
            return False
        samples = list(self._samples)
        recent = [s.duration_ms for s in samples[-DEGRADATION_WINDOW:]]
        previous = [s.duration_ms for s in samples[-2 * DEGRADATION_WINDOW:-DEGRADATION_WINDOW]]
        return _average(recent) > _average(previous) * DEGRADATION_FACTOR

    def __len__(self) -> int:
        return len(self._samples)
