"""Background task scheduler for periodic jobs (periodic sync, storage retention)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals. State is ephemeral and does
    not survive restarts. A failing task is logged and retried at its next
    interval; it never stops the loop.
    """

    def __init__(self, tick_seconds: float = 5.0):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self._task_handle: Optional[asyncio.Task] = None
        self._tick = tick_seconds

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the scheduler loop."""
        self._running = True
        logger.info("Task scheduler started")

        while self._running:
            await self.run_due()
            await asyncio.sleep(self._tick)

    def start_background(self) -> asyncio.Task:
        """Run the loop as a task owned by the scheduler."""
        if self._task_handle is None or self._task_handle.done():
            self._task_handle = asyncio.create_task(self.start())
        return self._task_handle

    async def run_due(self, now: Optional[datetime] = None):
        """Run every task whose next run time has passed."""
        now = now or datetime.now(timezone.utc)
        for name, task in list(self._tasks.items()):
            if now >= task["next_run"]:
                await self._run(name, task, now)

    async def _run(self, name: str, task: Dict[str, Any], now: datetime):
        try:
            if asyncio.iscoroutinefunction(task["func"]):
                await task["func"]()
            else:
                task["func"]()
            task["last_run"] = now
            task["run_count"] = task.get("run_count", 0) + 1
            task["next_run"] = now + task["interval"]
            task["last_error"] = None
            logger.debug(f"Scheduled task '{name}' completed")
        except Exception as e:
            task["last_error"] = str(e)
            task["next_run"] = now + task["interval"]
            logger.error(f"Scheduled task '{name}' failed: {e}")

    async def stop(self):
        self._running = False
        if self._task_handle:
            self._task_handle.cancel()
            try:
                await self._task_handle
            except asyncio.CancelledError:
                pass
            self._task_handle = None
        logger.info("Task scheduler stopped")

    def add_task(self, name: str, func: Callable, interval_seconds: int, initial_delay: float = 10):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=initial_delay),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "interval_seconds": int(t["interval"].total_seconds()),
                "run_count": t.get("run_count", 0),
                "last_error": t.get("last_error"),
            }
            for name, t in self._tasks.items()
        }
