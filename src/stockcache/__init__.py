"""
stockcache - in-process cache and eviction engine for the SuperStock client runtime.
"""

from .caching import (
    CacheManager,
    EvictionStrategy,
    InvalidationCriteria,
    ManualClock,
    SystemClock,
    cached,
    create_cache_manager
)
from .config import CacheSettings, StoreSettings, get_settings
from .performance_recorder import PerformanceRecorder, PerformanceSample

__version__ = "1.0.0"

__all__ = [
    'CacheManager',
    'CacheSettings',
    'EvictionStrategy',
    'InvalidationCriteria',
    'ManualClock',
    'PerformanceRecorder',
    'PerformanceSample',
    'StoreSettings',
    'SystemClock',
    'cached',
    'create_cache_manager',
    'get_settings',
]
