"""Timer-driven background work owned by the application context.

Tasks are created through a ``TaskScheduler`` so the owner can cancel every
timer on teardown instead of leaking ad-hoc intervals.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``callback`` every ``interval_seconds`` until cancelled. The first run waits one interval."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive: {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.runs = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.callback()
            except Exception as exc:
                logger.error("Periodic task %s failed: %s", self.name, exc)
            self.runs += 1

    async def cancel(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class TaskScheduler:
    """Registry of named periodic tasks; scheduling a name twice replaces the old task."""

    def __init__(self) -> None:
        self.tasks: Dict[str, PeriodicTask] = {}

    async def schedule(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[None]],
    ) -> PeriodicTask:
        await self.cancel(name)
        task = PeriodicTask(name, interval_seconds, callback)
        task.start()
        self.tasks[name] = task
        return task

    async def cancel(self, name: str) -> None:
        task = self.tasks.pop(name, None)
        if task is not None:
            await task.cancel()

    async def cancel_all(self) -> None:
        for name in list(self.tasks):
            await self.cancel(name)
