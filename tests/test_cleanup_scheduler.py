"""
Tests for scheduled cleanup and manager lifecycle.
"""

import asyncio

import pytest

from stockcache.caching import CacheManager, CleanupScheduler, ManualClock
from stockcache.config import CacheSettings


class TestCleanupScheduler:
    """Test periodic task management."""

    @pytest.mark.asyncio
    async def test_runs_callbacks_periodically(self):
        scheduler = CleanupScheduler()
        calls = []
        scheduler.schedule("tick", 10, lambda: calls.append(1))

        await scheduler.start()
        await asyncio.sleep(0.08)
        await scheduler.stop()

        assert len(calls) >= 2
        assert scheduler.tasks["tick"].run_count == len(calls)
        assert scheduler.tasks["tick"].last_run is not None

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self):
        scheduler = CleanupScheduler()
        calls = []

        async def callback():
            calls.append(1)

        scheduler.schedule("tick", 10, callback)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert calls

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_running(self):
        scheduler = CleanupScheduler()

        def callback():
            raise RuntimeError("cleanup failed")

        task = scheduler.schedule("broken", 10, callback)

        await scheduler.start()
        await asyncio.sleep(0.05)

        assert task.active
        assert task.error_count >= 1

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_schedule_while_running(self):
        scheduler = CleanupScheduler()
        await scheduler.start()

        task = scheduler.schedule("late", 10, lambda: None)

        assert task.active
        await scheduler.stop()
        assert not task.active

    @pytest.mark.asyncio
    async def test_reschedule_replaces_task(self):
        scheduler = CleanupScheduler()
        await scheduler.start()

        first = scheduler.schedule("tick", 1000, lambda: None)
        second = scheduler.schedule("tick", 1000, lambda: None)
        await asyncio.sleep(0)

        assert scheduler.tasks["tick"] is second
        assert first.handle.cancelled()
        await scheduler.stop()

    def test_invalid_interval(self):
        scheduler = CleanupScheduler()

        with pytest.raises(ValueError):
            scheduler.schedule("tick", 0, lambda: None)

    def test_get_stats(self):
        scheduler = CleanupScheduler()
        scheduler.schedule("tick", 500, lambda: None)

        stats = scheduler.get_stats()

        assert stats["running"] is False
        assert stats["tasks"]["tick"]["interval_ms"] == 500
        assert stats["tasks"]["tick"]["active"] is False


class TestManagerLifecycle:
    """Test the cache manager's scheduled cleanup."""

    @pytest.fixture
    def settings(self):
        return CacheSettings(
            stores=[],
            cache_cleanup_interval_ms=10,
            memory_check_interval_ms=10,
            performance_cleanup_interval_ms=10,
        )

    def test_cleanup_tasks_registered(self, settings):
        manager = CacheManager(settings=settings, clock=ManualClock())

        assert set(manager.scheduler.tasks) == {"cache", "memory", "performance"}

    @pytest.mark.asyncio
    async def test_scheduled_expiry_sweep(self, settings):
        clock = ManualClock()
        manager = CacheManager(settings=settings, clock=clock)
        manager.create_store("dashboard", max_size=10, ttl=60000)
        manager.set("dashboard", "short", 1, ttl=5)

        await manager.start()
        clock.advance(100)
        await asyncio.sleep(0.08)

        stats = manager.get_cache_stats("dashboard")
        assert stats["size"] == 0
        assert stats["expirations"] == 1
        assert manager.scheduler.tasks["cache"].run_count >= 1

        await manager.shutdown()
        assert not any(task.active for task in manager.scheduler.tasks.values())

    @pytest.mark.asyncio
    async def test_destroy_cancels_tasks(self, settings):
        manager = CacheManager(settings=settings, clock=ManualClock())
        await manager.start()

        manager.destroy()
        await asyncio.sleep(0.02)

        assert all(not task.active for task in manager.scheduler.tasks.values())

    @pytest.mark.asyncio
    async def test_start_after_destroy(self, settings):
        manager = CacheManager(settings=settings, clock=ManualClock())
        manager.destroy()

        await manager.start()

        assert not manager.scheduler.running
        assert all(task.handle is None for task in manager.scheduler.tasks.values())
