"""
Multi-store in-process caching engine.

This package provides:
- Named cache stores with their own capacity, TTL and eviction strategy
- LRU, LFU, TTL and adaptive eviction
- A cache manager enforcing a global memory budget
- Scheduled and reactive cleanup
- Tag, pattern, age and key based invalidation
"""

from .cache_manager import (
    CacheManager,
    cached,
    create_cache_manager
)

from .cache_store import (
    CacheConfigurationError,
    CacheEntry,
    CacheStore,
    StoreConfig,
    StoreNotFoundError,
    StoreStats
)

from .clock import (
    Clock,
    ManualClock,
    SystemClock
)

from .eviction import (
    EvictionEngine,
    EvictionStrategy,
    adaptive_score,
    select_victims
)

from .invalidation import InvalidationCriteria

from .scheduler import (
    CleanupScheduler,
    ScheduledTask
)

from .size_estimator import estimate_size

__all__ = [
    # Core classes
    'CacheManager',
    'CacheStore',
    'CacheEntry',
    'StoreConfig',
    'StoreStats',

    # Eviction
    'EvictionEngine',
    'EvictionStrategy',
    'adaptive_score',
    'select_victims',

    # Invalidation
    'InvalidationCriteria',

    # Scheduling and time
    'CleanupScheduler',
    'ScheduledTask',
    'Clock',
    'ManualClock',
    'SystemClock',

    # Errors
    'CacheConfigurationError',
    'StoreNotFoundError',

    # Decorators and utilities
    'cached',
    'estimate_size',

    # Factory functions
    'create_cache_manager'
]
