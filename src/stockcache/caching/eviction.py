"""
Eviction strategies and the engine that applies them.

Each strategy ranks entries; the lowest-ranked entries are evicted first.
"""

import math
from enum import Enum
from typing import Callable, Dict, List

from ..logging_config import get_logger
from .cache_store import CacheEntry, CacheStore
from .clock import Clock


class EvictionStrategy(str, Enum):
    """Eviction strategy enumeration."""
    LRU = "lru"
    LFU = "lfu"
    TTL = "ttl"
    ADAPTIVE = "adaptive"

    @classmethod
    def parse(cls, value) -> 'EvictionStrategy':
        """Accept an enum member, its value or its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for strategy in cls:
                if normalized in (strategy.value, strategy.name.lower()):
                    return strategy
        raise ValueError(f"Unknown eviction strategy: {value!r}")


def adaptive_score(entry: CacheEntry, now: float) -> float:
    """
    Access rate weighted by priority, normalized by footprint.

    Large, cold, low-priority entries score lowest. Entries created at ``now``
    have no measurable age and are never preferred as victims.
    """
    age_seconds = (now - entry.created_at) / 1000
    if age_seconds <= 0:
        return math.inf

    access_rate = entry.access_count / age_seconds
    return access_rate * entry.priority / max(entry.size, 1)


RankFunction = Callable[[CacheEntry, float], float]

_RANKINGS: Dict[EvictionStrategy, RankFunction] = {
    EvictionStrategy.LRU: lambda entry, now: entry.last_accessed,
    EvictionStrategy.LFU: lambda entry, now: entry.access_count,
    EvictionStrategy.TTL: lambda entry, now: entry.expires_at,
    EvictionStrategy.ADAPTIVE: adaptive_score,
}

_unranked = set(EvictionStrategy) - set(_RANKINGS)
if _unranked:
    raise RuntimeError(f"No ranking defined for eviction strategies: {sorted(s.value for s in _unranked)}")


def rank_function(strategy: EvictionStrategy) -> RankFunction:
    return _RANKINGS[strategy]


def select_victims(entries: List[CacheEntry], strategy: EvictionStrategy, count: int, now: float) -> List[CacheEntry]:
    """Pick ``count`` entries to evict. Expired entries are not filtered out."""
    if count <= 0 or not entries:
        return []

    rank = rank_function(strategy)
    return sorted(entries, key=lambda entry: rank(entry, now))[:count]


class EvictionEngine:
    """Applies a store's eviction strategy to free capacity."""

    def __init__(self, clock: Clock, recorder=None):
        self.clock = clock
        self.recorder = recorder
        self.logger = get_logger(__name__, 'eviction_engine')

    def evict(self, store: CacheStore, count: int) -> int:
        """
        Evict up to ``count`` entries from ``store`` using its strategy.

        Returns:
            Number of bytes freed
        """
        now = self.clock.now()
        victims = select_victims(list(store.entries.values()), store.config.strategy, count, now)
        if not victims:
            return 0

        freed = 0
        for entry in victims:
            if store.discard(entry.key) is not None:
                store.stats.evictions += 1
                freed += entry.size

        self.logger.debug(
            f"Evicted {len(victims)} entries from '{store.name}' using {store.config.strategy.value}",
            operation="evict",
            cache_store=store.name,
            freed_bytes=freed
        )

        if self.recorder is not None:
            self.recorder.record(
                'cache_eviction',
                store=store.name,
                strategy=store.config.strategy.value,
                count=len(victims),
                freed=freed
            )

        return freed

    def evict_fraction(self, store: CacheStore, fraction: float) -> int:
        """Evict ``ceil(len(store) * fraction)`` entries. Returns bytes freed."""
        return self.evict(store, math.ceil(len(store) * fraction))
