"""
Scheduled cleanup tasks for the cache engine.

Each scheduled task sleeps for its interval and then runs its callback, forever,
on the running asyncio event loop. The scheduler keeps every task handle so that
teardown can cancel them all.
"""
import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ScheduledTask:
    """A periodic callback and the asyncio task driving it."""
    name: str
    interval_ms: float
    callback: Callable[[], Any]
    handle: Optional[asyncio.Task] = None
    run_count: int = 0
    error_count: int = 0
    last_run: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.handle is not None and not self.handle.done()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_ms": self.interval_ms,
            "active": self.active,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_run": self.last_run,
        }


class CleanupScheduler:
    """
    Owns the periodic cleanup tasks of a cache manager.

    Tasks may be registered before or after start; tasks registered while the
    scheduler is running start immediately.
    """

    def __init__(self):
        self.tasks: Dict[str, ScheduledTask] = {}
        self.running = False

    def schedule(self, name: str, interval_ms: float, callback: Callable[[], Any]) -> ScheduledTask:
        """Register a periodic callback under ``name``, replacing any existing one."""
        if interval_ms <= 0:
            raise ValueError("Schedule interval must be positive")

        existing = self.tasks.get(name)
        if existing is not None and existing.handle is not None:
            existing.handle.cancel()

        task = ScheduledTask(name=name, interval_ms=interval_ms, callback=callback)
        self.tasks[name] = task

        if self.running:
            self._launch(task)

        return task

    async def start(self) -> None:
        """Start every registered task on the running event loop."""
        if self.running:
            logger.warning("Cleanup scheduler is already running")
            return

        self.running = True
        for task in self.tasks.values():
            self._launch(task)

        logger.info("Cleanup scheduler started", tasks=list(self.tasks))

    def cancel_all(self) -> None:
        """Cancel every task without waiting for it to finish."""
        self.running = False
        for task in self.tasks.values():
            if task.handle is not None:
                task.handle.cancel()

    async def stop(self) -> None:
        """Cancel every task and wait until all of them have finished."""
        self.cancel_all()

        handles = [task.handle for task in self.tasks.values() if task.handle is not None]
        if handles:
            await asyncio.gather(*handles, return_exceptions=True)

        for task in self.tasks.values():
            task.handle = None

        logger.info("Cleanup scheduler stopped", tasks=len(handles))

    def clear(self) -> None:
        """Cancel and forget every task."""
        self.cancel_all()
        self.tasks.clear()

    def _launch(self, task: ScheduledTask) -> None:
        task.handle = asyncio.get_running_loop().create_task(
            self._run_periodically(task), name=f"stockcache:{task.name}"
        )

    async def _run_periodically(self, task: ScheduledTask) -> None:
        interval_seconds = task.interval_ms / 1000

        while True:
            await asyncio.sleep(interval_seconds)
            try:
                result = task.callback()
                if inspect.isawaitable(result):
                    await result
                task.run_count += 1
                task.last_run = time.time()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                task.error_count += 1
                logger.error("Scheduled cleanup task failed", task=task.name, error=str(e))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "tasks": {name: task.to_dict() for name, task in self.tasks.items()},
        }
