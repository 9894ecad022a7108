"""
Shared fixtures for the cache engine test suite.
"""

import pytest

from stockcache.caching import CacheManager, EvictionStrategy, ManualClock
from stockcache.config import CacheSettings


@pytest.fixture
def clock():
    """Manually driven clock starting at t=0."""
    return ManualClock(start=0)


@pytest.fixture
def settings():
    """Settings without default stores so each test registers its own."""
    return CacheSettings(stores=[])


@pytest.fixture
def manager(settings, clock):
    """Cache manager with a single LRU 'dashboard' store."""
    cache_manager = CacheManager(settings=settings, clock=clock)
    cache_manager.create_store("dashboard", max_size=50, ttl=60000, strategy=EvictionStrategy.LRU)
    yield cache_manager
    cache_manager.destroy()
