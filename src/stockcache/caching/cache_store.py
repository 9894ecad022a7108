"""
Cache stores and their entries.

A store is a named collection of entries with its own capacity, default TTL and
eviction strategy. Every removal goes through the store so that its statistics
always describe the entries it actually holds.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .eviction import EvictionStrategy


class CacheConfigurationError(ValueError):
    """Raised when a store is registered with an invalid configuration."""


class StoreNotFoundError(KeyError):
    """Raised internally when an operation names an unregistered store."""

    def __init__(self, store_name: str):
        super().__init__(store_name)
        self.store_name = store_name

    def __str__(self):
        return f"Cache store '{self.store_name}' not found"


@dataclass
class CacheEntry:
    """Cache entry with access metadata."""
    key: str
    value: Any
    size: int
    created_at: float
    ttl: float
    last_accessed: Optional[float] = None
    access_count: int = 1
    tags: FrozenSet[str] = field(default_factory=frozenset)
    priority: float = 1.0
    expires_at: float = field(init=False, default=0.0)

    def __post_init__(self):
        if self.last_accessed is None:
            self.last_accessed = self.created_at
        self.expires_at = self.created_at + self.ttl
        self.tags = frozenset(self.tags)

    def is_expired(self, now: float) -> bool:
        """Check if the entry has outlived its TTL."""
        return now > self.expires_at

    def touch(self, now: float):
        """Record a read. Never extends the lifetime of the entry."""
        self.last_accessed = now
        self.access_count += 1

    def age(self, now: float) -> float:
        return now - self.created_at


@dataclass(frozen=True)
class StoreConfig:
    """Policy parameters of a store, fixed at registration."""
    max_size: int
    ttl_default: float
    strategy: 'EvictionStrategy'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'max_size': self.max_size,
            'ttl': self.ttl_default,
            'strategy': self.strategy.value,
        }


@dataclass
class StoreStats:
    """Running statistics for one store."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0
    size: int = 0
    memory_usage: int = 0

    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hits': self.hits,
            'misses': self.misses,
            'evictions': self.evictions,
            'expirations': self.expirations,
            'invalidations': self.invalidations,
            'size': self.size,
            'memory_usage': self.memory_usage,
            'hit_rate': self.hit_rate(),
        }


class CacheStore:
    """A named collection of cache entries."""

    def __init__(self, name: str, config: StoreConfig, created_at: float):
        self.name = name
        self.config = config
        self.entries: Dict[str, CacheEntry] = {}
        self.created_at = created_at
        self.last_cleanup_at = created_at
        self.stats = StoreStats()

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[Tuple[str, CacheEntry]]:
        return iter(list(self.entries.items()))

    @property
    def memory_usage(self) -> int:
        return self.stats.memory_usage

    def is_full(self) -> bool:
        return len(self.entries) >= self.config.max_size

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self.entries.get(key)

    def put(self, entry: CacheEntry) -> Optional[CacheEntry]:
        """Insert or overwrite an entry, returning the one it replaced."""
        previous = self.entries.get(entry.key)
        self.entries[entry.key] = entry

        if previous is not None:
            self.stats.memory_usage -= previous.size
        self.stats.memory_usage += entry.size
        self.stats.size = len(self.entries)
        return previous

    def discard(self, key: str) -> Optional[CacheEntry]:
        """Remove an entry and release its bytes. Returns the removed entry."""
        entry = self.entries.pop(key, None)
        if entry is not None:
            self.stats.memory_usage -= entry.size
            self.stats.size = len(self.entries)
        return entry

    def expire(self, key: str) -> Optional[CacheEntry]:
        """Remove an entry because its TTL has passed."""
        entry = self.discard(key)
        if entry is not None:
            self.stats.expirations += 1
        return entry

    def purge_expired(self, now: float) -> int:
        """Remove every expired entry. Returns the number removed."""
        expired_keys = [key for key, entry in self.entries.items() if entry.is_expired(now)]
        for key in expired_keys:
            self.expire(key)

        self.last_cleanup_at = now
        return len(expired_keys)

    def remove_many(self, keys: List[str]) -> int:
        """Invalidate the given keys. Returns the number actually removed."""
        removed = 0
        for key in keys:
            if self.discard(key) is not None:
                self.stats.invalidations += 1
                removed += 1
        return removed

    def clear(self) -> int:
        """Drop every entry without touching hit/miss counters."""
        count = len(self.entries)
        self.entries.clear()
        self.stats.memory_usage = 0
        self.stats.size = 0
        return count
