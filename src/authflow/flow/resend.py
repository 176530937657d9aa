"""Countdown before another one-time code may be requested."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from authflow.flow.scheduler import Scheduler

logger = logging.getLogger(__name__)


class ResendTimer:
    """Ticks once per ``tick_seconds`` from ``window`` down to zero.

    ``on_tick`` receives the remaining seconds after each decrement. At most
    one countdown runs at a time; ``restart`` replaces it and ``stop`` tears it
    down without further ticks.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[int], None],
        tick_seconds: float = 1.0,
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._tick_seconds = tick_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def restart(self, window: int) -> None:
        self.stop()
        if window <= 0:
            return
        self._task = self._scheduler.spawn(self._countdown(window), name="resend-countdown")

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _countdown(self, remaining: int) -> None:
        while remaining > 0:
            await self._scheduler.sleep(self._tick_seconds)
            remaining -= 1
            self._on_tick(remaining)
        logger.debug("Resend countdown finished")
