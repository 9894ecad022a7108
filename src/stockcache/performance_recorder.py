"""
Performance sample recording for the cache engine.

Keeps a bounded, per-operation log of timed cache operations that can be
queried by operation name and time window, and pruned by age.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, TYPE_CHECKING

from .logging_config import get_logger

if TYPE_CHECKING:
    from .caching.clock import Clock


@dataclass
class PerformanceSample:
    """A single recorded operation."""
    timestamp: float
    operation: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> Optional[float]:
        return self.data.get('duration_ms')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'operation': self.operation,
            **self.data
        }


class PerformanceRecorder:
    """Append-only, capped log of cache operation samples."""

    RECENT_SAMPLE_COUNT = 10

    def __init__(self, clock: 'Clock', buffer_size: int = 1000, retention_ms: float = 3600000):
        self.clock = clock
        self.buffer_size = buffer_size
        self.retention_ms = retention_ms
        self.logger = get_logger(__name__, 'performance_recorder')
        self.samples: Dict[str, Deque[PerformanceSample]] = {}
        self.stats = self._initial_stats()

    @staticmethod
    def _initial_stats() -> Dict[str, Any]:
        return {
            'samples_recorded': 0,
            'samples_pruned': 0,
            'last_prune_time': None
        }

    def record(self, operation: str, **data) -> PerformanceSample:
        """Record a sample for ``operation``. Oldest samples are dropped past the cap."""
        sample = PerformanceSample(timestamp=self.clock.now(), operation=operation, data=data)

        series = self.samples.get(operation)
        if series is None:
            series = self.samples[operation] = deque(maxlen=self.buffer_size)
        series.append(sample)

        self.stats['samples_recorded'] += 1
        return sample

    def operations(self) -> List[str]:
        return list(self.samples)

    def total_samples(self) -> int:
        return sum(len(series) for series in self.samples.values())

    def get_samples(self, operation: str, since: Optional[float] = None) -> List[PerformanceSample]:
        series = self.samples.get(operation, ())
        if since is None:
            return list(series)
        return [sample for sample in series if sample.timestamp > since]

    def prune(self, retention_ms: Optional[float] = None) -> int:
        """Drop samples older than the retention window. Returns the number dropped."""
        retention_ms = self.retention_ms if retention_ms is None else retention_ms
        now = self.clock.now()
        cutoff = now - retention_ms
        pruned = 0

        for operation in list(self.samples):
            series = self.samples[operation]
            kept = [sample for sample in series if sample.timestamp > cutoff]
            if len(kept) == len(series):
                continue

            pruned += len(series) - len(kept)
            if kept:
                self.samples[operation] = deque(kept, maxlen=self.buffer_size)
            else:
                del self.samples[operation]

        self.stats['samples_pruned'] += pruned
        self.stats['last_prune_time'] = now

        if pruned > 0:
            self.logger.info(f"Performance log cleanup: {pruned} old samples removed", operation="prune")

        return pruned

    def get_stats(self, operation: Optional[str] = None, time_range_ms: float = 3600000) -> Dict[str, Dict[str, Any]]:
        """
        Summarize samples recorded within the last ``time_range_ms``.

        Args:
            operation: Restrict the summary to one operation
            time_range_ms: Size of the window ending now

        Returns:
            Mapping of operation name to count and duration statistics. Operations
            without samples inside the window are omitted.
        """
        cutoff = self.clock.now() - time_range_ms
        operations = [operation] if operation else self.operations()
        summary = {}

        for op in operations:
            recent = self.get_samples(op, since=cutoff)
            if not recent:
                continue

            durations = [sample.duration for sample in recent if sample.duration is not None]
            summary[op] = {
                'count': len(recent),
                'avg_duration': sum(durations) / len(durations) if durations else 0,
                'min_duration': min(durations) if durations else 0,
                'max_duration': max(durations) if durations else 0,
                'recent_samples': [sample.to_dict() for sample in recent[-self.RECENT_SAMPLE_COUNT:]]
            }

        return summary

    def clear(self):
        """Drop every sample and reset the counters."""
        self.samples.clear()
        self.stats = self._initial_stats()
