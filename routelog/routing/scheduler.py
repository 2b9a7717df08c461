"""Delayed-task scheduler for deferred notification retries.

Each scheduled job is an ``asyncio.Task`` that sleeps for its delay and then
runs its callback.  The scheduler keeps the pending tasks so a pipeline can
drain or cancel them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class RetryTask(BaseModel):
    """A deferred notification retry.

    The attempt counter lives on the task, never on the entry, so it cannot
    leak into a serialized payload.
    """

    model_config = ConfigDict(frozen=True)

    entry: dict[str, Any]
    attempt: int
    delay_seconds: float


class DelayedTaskScheduler:
    """Runs callbacks after a delay on the running event loop.

    Parameters
    ----------
    sleep:
        Awaitable used for the delay; tests substitute a fast one.
    """

    def __init__(
        self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ) -> None:
        self._sleep = sleep
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def schedule(
        self,
        delay_seconds: float,
        callback: Callable[[], Awaitable[Any]],
        *,
        name: str = "delayed-task",
    ) -> asyncio.Task[Any]:
        """Schedule *callback* to run after *delay_seconds*."""

        async def _run() -> None:
            await self._sleep(delay_seconds)
            try:
                await callback()
            except Exception as exc:  # noqa: BLE001
                logger.error("Delayed task %s failed: %s", name, exc)

        task = asyncio.get_running_loop().create_task(_run(), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Scheduled %s in %.1fs", name, delay_seconds)
        return task

    async def drain(self) -> None:
        """Wait until no task is pending, including tasks scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
