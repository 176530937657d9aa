"""Side-effect scheduler for the flow's timers and background tasks.

The controller never calls ``asyncio.sleep`` or ``asyncio.create_task``
directly; it goes through a ``Scheduler`` so a test clock can drive debounce,
backoff and countdown deterministically.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from typing import Any


class Scheduler(ABC):
    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""

    @abstractmethod
    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Run ``coro`` as a background task on the current loop."""


class AsyncioScheduler(Scheduler):
    """Real-time scheduler backed by the running event loop."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro, name=name)
