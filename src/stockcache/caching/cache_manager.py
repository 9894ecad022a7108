"""
Multi-store cache manager for the stockcache engine.

Owns a fixed set of named cache stores, enforces a global memory budget across
them, runs scheduled and reactive cleanup, and records a performance sample for
every operation. All operations except ``refresh`` are synchronous and never
raise to the caller.
"""

import asyncio
import functools
import inspect
import math
import numbers
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..config import CacheSettings, get_settings
from ..logging_config import CorrelationContext, get_logger
from ..performance_recorder import PerformanceRecorder
from .cache_store import (
    CacheConfigurationError,
    CacheEntry,
    CacheStore,
    StoreConfig,
    StoreNotFoundError,
)
from .clock import Clock, SystemClock
from .eviction import EvictionEngine, EvictionStrategy
from .invalidation import InvalidationCriteria
from .scheduler import CleanupScheduler
from .size_estimator import estimate_size

_MISSING = object()


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _is_real_number(value: Any) -> bool:
    """True for real numbers other than bools and NaN."""
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


class CacheManager:
    """Cache manager coordinating named stores, eviction and cleanup."""

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        clock: Optional[Clock] = None,
        recorder: Optional[PerformanceRecorder] = None
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.logger = get_logger(__name__, 'cache_manager')

        self.recorder = recorder or PerformanceRecorder(
            self.clock,
            buffer_size=self.settings.performance_buffer_size,
            retention_ms=self.settings.metrics_retention_ms
        )
        self.eviction = EvictionEngine(self.clock, self.recorder)
        self.scheduler = CleanupScheduler()

        self.stores: Dict[str, CacheStore] = {}
        self.global_memory_budget = self.settings.global_memory_budget

        self._inflight_refreshes: Dict[Tuple[str, str], asyncio.Task] = {}
        self._destroyed = False

        self._schedule_cleanup_tasks()

    def _schedule_cleanup_tasks(self) -> None:
        self.scheduler.schedule('cache', self.settings.cache_cleanup_interval_ms, self.perform_cache_cleanup)
        self.scheduler.schedule('memory', self.settings.memory_check_interval_ms, self.perform_memory_check)
        self.scheduler.schedule(
            'performance', self.settings.performance_cleanup_interval_ms, self.perform_performance_cleanup
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start scheduled cleanup on the running event loop."""
        if self._destroyed:
            self.logger.warning("Cannot start a destroyed cache manager", operation="start")
            return

        await self.scheduler.start()
        self.logger.info(f"Cache manager started with {len(self.stores)} stores", operation="start")

    def destroy(self) -> None:
        """Cancel scheduled work and drop every store, statistic and metric."""
        self.scheduler.cancel_all()

        for store in self.stores.values():
            store.clear()
        self.stores.clear()
        self.recorder.clear()
        self._destroyed = True

        self.logger.info("Cache manager destroyed and all resources cleaned up", operation="destroy")

    async def shutdown(self) -> None:
        """Destroy the manager and wait for scheduled tasks to finish cancelling."""
        self.destroy()
        await self.scheduler.stop()

    # ------------------------------------------------------------------
    # Store registration
    # ------------------------------------------------------------------

    def create_store(
        self,
        name: str,
        max_size: Optional[int] = None,
        ttl: Optional[float] = None,
        strategy: Union[EvictionStrategy, str] = EvictionStrategy.LRU
    ) -> CacheStore:
        """
        Register a named store with its own capacity, default TTL and strategy.

        ``max_size`` and ``ttl`` fall back to ``default_max_size`` and
        ``default_ttl_ms`` from the settings.
        """
        if max_size is None:
            max_size = self.settings.default_max_size
        if ttl is None:
            ttl = self.settings.default_ttl_ms

        if not isinstance(name, str) or not name:
            raise CacheConfigurationError("Store name must be a non-empty string")
        if name in self.stores:
            raise CacheConfigurationError(f"Cache store '{name}' already exists")
        if not _is_real_number(max_size) or max_size < 1:
            raise CacheConfigurationError(f"Cache store '{name}' needs max_size >= 1")
        if not _is_real_number(ttl) or ttl <= 0:
            raise CacheConfigurationError(f"Cache store '{name}' needs a positive ttl")

        try:
            strategy = EvictionStrategy.parse(strategy)
        except ValueError as e:
            raise CacheConfigurationError(str(e)) from e

        store = CacheStore(name, StoreConfig(max_size, ttl, strategy), created_at=self.clock.now())
        self.stores[name] = store

        self.logger.info(
            f"Cache store '{name}' created",
            operation="create_store",
            cache_store=name,
            max_size=max_size,
            ttl=ttl,
            strategy=strategy.value
        )
        return store

    def store_names(self) -> List[str]:
        return list(self.stores)

    def _require_store(self, store_name: str) -> CacheStore:
        store = self.stores.get(store_name)
        if store is None:
            raise StoreNotFoundError(store_name)
        return store

    # ------------------------------------------------------------------
    # Cache operations
    # ------------------------------------------------------------------

    def set(
        self,
        store_name: str,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
        priority: float = 1.0
    ) -> bool:
        """Store ``value`` under ``key``. Returns False instead of raising on failure."""
        start_time = time.perf_counter()

        try:
            store = self._require_store(store_name)
            if not isinstance(key, str) or not key:
                self.logger.warning(f"Rejected cache key {key!r}", operation="set", cache_store=store_name)
                return False
            if not _is_real_number(priority) or (ttl is not None and not _is_real_number(ttl)):
                self.logger.warning(
                    f"Rejected cache entry {store_name}:{key} with ttl={ttl!r} priority={priority!r}",
                    operation="set",
                    cache_store=store_name
                )
                return False

            size = estimate_size(value)

            if self.get_total_memory_usage() + size > self.global_memory_budget:
                self.perform_memory_cleanup()

            self._evict_if_needed(store, key, size)

            now = self.clock.now()
            entry = CacheEntry(
                key=key,
                value=value,
                size=size,
                created_at=now,
                ttl=ttl if ttl is not None else store.config.ttl_default,
                tags=frozenset([tags]) if isinstance(tags, str) else frozenset(tags or ()),
                priority=priority
            )
            store.put(entry)

            self.recorder.record(
                'cache_set',
                store=store_name,
                key=key,
                size=size,
                duration_ms=_elapsed_ms(start_time)
            )
            return True

        except StoreNotFoundError as e:
            self.logger.warning(f"Cache set failed for {store_name}:{key}: {e}", operation="set")
            return False
        except Exception as e:
            self.logger.exception(f"Cache set error for {store_name}:{key}: {e}", operation="set")
            return False

    def _evict_if_needed(self, store: CacheStore, key: str, new_size: int) -> None:
        """Free capacity in ``store`` before inserting an entry of ``new_size`` bytes."""
        if store.is_full() and key not in store:
            self.eviction.evict(store, 1)

        fair_share = self.global_memory_budget / max(len(self.stores), 1)
        if store.memory_usage + new_size > fair_share:
            self.eviction.evict_fraction(store, self.settings.memory_overflow_evict_fraction)

    def get(self, store_name: str, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` when missing or expired."""
        start_time = time.perf_counter()

        try:
            store = self.stores.get(store_name)
            if store is None:
                self._record_miss(store_name, key, 'store_not_found')
                return default

            entry = store.get_entry(key)
            if entry is None:
                self._record_miss(store_name, key, 'key_not_found')
                return default

            now = self.clock.now()
            if entry.is_expired(now):
                store.expire(key)
                self._record_miss(store_name, key, 'expired')
                return default

            entry.touch(now)
            store.stats.hits += 1

            self.recorder.record(
                'cache_get',
                store=store_name,
                key=key,
                hit=True,
                duration_ms=_elapsed_ms(start_time)
            )
            return entry.value

        except Exception as e:
            self.logger.exception(f"Cache get error for {store_name}:{key}: {e}", operation="get")
            self._record_miss(store_name, key, 'error')
            return default

    def _record_miss(self, store_name: str, key: str, reason: str) -> None:
        store = self.stores.get(store_name)
        if store is not None:
            store.stats.misses += 1
        else:
            self.logger.warning(f"Cache store '{store_name}' not found", operation="get")

        self.recorder.record('cache_miss', store=store_name, key=key, reason=reason)

    def invalidate(
        self,
        store_name: str,
        criteria: Union[InvalidationCriteria, Dict[str, Any], None] = None,
        **criteria_kwargs
    ) -> int:
        """
        Remove entries matching any of the supplied criteria.

        With no criteria the whole store is cleared.

        Returns:
            Number of entries removed (0 for an unknown store)
        """
        start_time = time.perf_counter()

        try:
            store = self._require_store(store_name)
            criteria = InvalidationCriteria.from_value(criteria, **criteria_kwargs)

            keys = criteria.select(store, self.clock.now())
            invalidated_count = store.remove_many(keys)

            self.recorder.record(
                'cache_invalidate',
                store=store_name,
                criteria=criteria.describe(),
                invalidated_count=invalidated_count,
                duration_ms=_elapsed_ms(start_time)
            )

            self.logger.info(
                f"Invalidated {invalidated_count} entries from {store_name} cache",
                operation="invalidate",
                cache_store=store_name
            )
            return invalidated_count

        except StoreNotFoundError as e:
            self.logger.warning(f"Cache invalidation skipped: {e}", operation="invalidate")
            return 0
        except Exception as e:
            self.logger.exception(f"Cache invalidation error for {store_name}: {e}", operation="invalidate")
            return 0

    async def refresh(
        self,
        store_name: str,
        key: str,
        fetch_fn: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float] = None,
        tags: Optional[Iterable[str]] = None,
        priority: float = 1.0
    ) -> Any:
        """
        Replace ``key`` with freshly fetched data.

        Concurrent refreshes of the same key share one fetch. A plain ``set`` made
        while the fetch is pending is overwritten when the fetch completes.

        Returns:
            The fetched value, or None if the store is unknown, the fetch fails,
            or the value could not be stored
        """
        if store_name not in self.stores:
            self.logger.warning(f"Cache refresh skipped, store '{store_name}' not found", operation="refresh")
            return None

        try:
            fresh_data, stored = await self._join_refresh(store_name, key, fetch_fn, ttl, tags, priority)
        except Exception:
            # Logged by _refresh
            return None

        return fresh_data if stored else None

    def _join_refresh(
        self,
        store_name: str,
        key: str,
        fetch_fn: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float],
        tags: Optional[Iterable[str]],
        priority: float
    ) -> Awaitable[Tuple[Any, bool]]:
        """Start a refresh of ``key`` or join the one already in flight."""
        inflight_key = (store_name, key)
        pending = self._inflight_refreshes.get(inflight_key)
        if pending is None or pending.done():
            pending = asyncio.ensure_future(
                self._refresh(store_name, key, fetch_fn, ttl, tags, priority)
            )
            self._inflight_refreshes[inflight_key] = pending
            pending.add_done_callback(functools.partial(self._forget_refresh, inflight_key))
        else:
            self.logger.debug(f"Joining in-flight refresh of {store_name}:{key}", operation="refresh")

        return asyncio.shield(pending)

    def _forget_refresh(self, inflight_key: Tuple[str, str], task: asyncio.Task) -> None:
        if self._inflight_refreshes.get(inflight_key) is task:
            del self._inflight_refreshes[inflight_key]

    async def _refresh(
        self,
        store_name: str,
        key: str,
        fetch_fn: Callable[[], Union[Any, Awaitable[Any]]],
        ttl: Optional[float],
        tags: Optional[Iterable[str]],
        priority: float
    ) -> Tuple[Any, bool]:
        """Invalidate, fetch and store. Fetch errors are logged and re-raised."""
        start_time = time.perf_counter()
        stored = False

        with CorrelationContext(store_value=store_name):
            try:
                self.invalidate(store_name, keys=[key])

                fresh_data = fetch_fn()
                if inspect.isawaitable(fresh_data):
                    fresh_data = await fresh_data

                stored = self.set(store_name, key, fresh_data, ttl=ttl, tags=tags, priority=priority)
                return fresh_data, stored

            except Exception as e:
                self.logger.error(f"Cache refresh error for {store_name}:{key}: {e}", operation="refresh")
                raise

            finally:
                self.recorder.record(
                    'cache_refresh',
                    store=store_name,
                    key=key,
                    success=stored,
                    duration_ms=_elapsed_ms(start_time)
                )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def perform_cache_cleanup(self) -> int:
        """Remove expired entries from every store. Returns the number removed."""
        start_time = time.perf_counter()
        now = self.clock.now()
        total_cleaned = 0

        for store in list(self.stores.values()):
            total_cleaned += store.purge_expired(now)

        self.recorder.record('cache_cleanup', total_cleaned=total_cleaned, duration_ms=_elapsed_ms(start_time))

        if total_cleaned > 0:
            self.logger.info(f"Cache cleanup completed: {total_cleaned} entries removed", operation="cache_cleanup")

        return total_cleaned

    def perform_memory_check(self) -> None:
        """Run memory cleanup when over budget and prune an oversized performance log."""
        total_memory = self.get_total_memory_usage()

        if total_memory > self.global_memory_budget:
            self.logger.warning(
                f"Memory usage ({total_memory} bytes) exceeds limit, performing cleanup",
                operation="memory_check"
            )
            self.perform_memory_cleanup()

        if self.recorder.total_samples() > self.settings.performance_buffer_size * 2:
            self.logger.warning("Performance log growing too large, cleaning up", operation="memory_check")
            self.perform_performance_cleanup()

    def perform_memory_cleanup(self) -> int:
        """
        Shed memory across stores, largest first.

        Each store gives up a fraction of its entries through its own strategy,
        until the target reduction is reached or every store was visited once.

        Returns:
            Number of bytes freed
        """
        start_time = time.perf_counter()
        target_reduction = self.global_memory_budget * self.settings.memory_cleanup_target_ratio
        total_reduced = 0

        stores_by_memory = sorted(self.stores.values(), key=lambda s: s.memory_usage, reverse=True)

        for store in stores_by_memory:
            if total_reduced >= target_reduction:
                break
            total_reduced += self.eviction.evict_fraction(store, self.settings.memory_cleanup_store_fraction)

        self.recorder.record(
            'memory_cleanup',
            target=target_reduction,
            freed=total_reduced,
            duration_ms=_elapsed_ms(start_time)
        )
        self.logger.info(f"Memory cleanup completed: {total_reduced} bytes freed", operation="memory_cleanup")
        return total_reduced

    def perform_performance_cleanup(self) -> int:
        """Drop performance samples older than the retention window."""
        return self.recorder.prune()

    def perform_aggressive_cleanup(self) -> None:
        """Shed volatile data when the host stops being visible."""
        self.invalidate(self.settings.volatile_store)
        self.invalidate(self.settings.trimmed_store, max_age=self.settings.trimmed_store_max_age_ms)
        self.perform_performance_cleanup()

        self.logger.info("Aggressive cleanup performed due to visibility change", operation="aggressive_cleanup")

    def handle_visibility_change(self, hidden: bool) -> None:
        """React to the host becoming hidden or visible."""
        if hidden:
            self.perform_aggressive_cleanup()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_total_memory_usage(self) -> int:
        return sum(store.memory_usage for store in self.stores.values())

    def get_cache_stats(self, store_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Get statistics for one store, or for every store when no name is given."""
        if store_name is not None:
            store = self.stores.get(store_name)
            if store is None:
                return None

            return {
                **store.stats.to_dict(),
                'config': store.config.to_dict(),
                'created_at': store.created_at,
                'last_cleanup': store.last_cleanup_at,
            }

        return {
            'stores': {name: store.stats.to_dict() for name, store in self.stores.items()},
            'total_memory_usage': self.get_total_memory_usage(),
            'total_entries': sum(len(store) for store in self.stores.values()),
        }

    def get_performance_stats(self, operation: Optional[str] = None, time_range_ms: float = 3600000) -> Dict[str, Any]:
        """Summarize recorded operations within the last ``time_range_ms``."""
        return self.recorder.get_stats(operation, time_range_ms)


def create_cache_manager(settings: Optional[CacheSettings] = None, clock: Optional[Clock] = None) -> CacheManager:
    """Build a cache manager with every store listed in the settings."""
    settings = settings or get_settings()
    manager = CacheManager(settings=settings, clock=clock)

    for store_settings in settings.stores:
        manager.create_store(
            store_settings.name,
            max_size=store_settings.max_size,
            ttl=store_settings.ttl_ms,
            strategy=store_settings.strategy
        )

    return manager


def cached(
    cache_manager: CacheManager,
    store_name: str,
    ttl: Optional[float] = None,
    tags: Optional[Iterable[str]] = None,
    priority: float = 1.0,
    key_func: Optional[Callable[..., str]] = None
):
    """
    Decorator for caching async function results in a named store.

    Concurrent misses for the same key share one call. Exceptions raised by the
    decorated function propagate to every caller waiting on it. When the store is
    not registered the function is simply called.
    """
    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("cached() only decorates async functions")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if key_func:
                cache_key = key_func(*args, **kwargs)
            else:
                key_parts = [func.__name__]
                key_parts.extend(str(arg) for arg in args)
                key_parts.extend(f"{k}={v}" for k, v in sorted(kwargs.items()))
                cache_key = ":".join(key_parts)

            if store_name not in cache_manager.stores:
                cache_manager.logger.warning(
                    f"Cache store '{store_name}' not found, calling {func.__name__} uncached",
                    operation="cached"
                )
                return await func(*args, **kwargs)

            cached_result = cache_manager.get(store_name, cache_key, default=_MISSING)
            if cached_result is not _MISSING:
                return cached_result

            result, _ = await cache_manager._join_refresh(
                store_name,
                cache_key,
                lambda: func(*args, **kwargs),
                ttl,
                tags,
                priority
            )
            return result

        return wrapper

    return decorator
