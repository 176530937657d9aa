"""Debounced, retried, cancelable "does this email have an account" lookup.

Every lookup is tagged with the ``request_id`` current when it was scheduled.
The owner bumps that id on every email edit; after each suspension point
(debounce, backoff sleep, backend call) the checker asks ``is_current`` and
silently drops the work if it has gone stale. In-flight backend calls are not
cancelled, only ignored. Only the debounce timer is cancelled outright.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from authflow.config import FlowTimings
from authflow.errors import AuthError
from authflow.flow.scheduler import Scheduler
from authflow.models.flow import CheckStatus, ExistenceCheck

logger = logging.getLogger(__name__)

Lookup = Callable[[str], Awaitable[bool]]


class ExistenceChecker:
    def __init__(
        self,
        lookup: Lookup,
        scheduler: Scheduler,
        timings: FlowTimings,
        *,
        is_current: Callable[[int], bool],
        publish: Callable[[ExistenceCheck], None],
        rng: random.Random | None = None,
    ) -> None:
        self._lookup = lookup
        self._scheduler = scheduler
        self._timings = timings
        self._is_current = is_current
        self._publish = publish
        self._rng = rng or random.Random()
        self._debounce: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def backoff_delay(self, attempt: int) -> float:
        """Sleep after failed ``attempt`` (1-based): base x attempt + jitter."""
        jitter = 0.0
        if self._timings.retry_jitter:
            jitter = self._rng.uniform(0, self._timings.retry_jitter)
        return self._timings.retry_base_delay * attempt + jitter

    def cancel_pending(self) -> None:
        """Drop a debounce that has not fired yet. Safe to call repeatedly."""
        task, self._debounce = self._debounce, None
        if task is not None and not task.done():
            task.cancel()

    def schedule(self, email: str, request_id: int) -> None:
        """Start the debounce window for ``email``; replaces any pending one."""
        self.cancel_pending()
        task = self._scheduler.spawn(
            self._debounced(email, request_id), name=f"email-check-{request_id}"
        )
        self._debounce = task
        self._track(task)

    async def _debounced(self, email: str, request_id: int) -> None:
        await self._scheduler.sleep(self._timings.debounce_seconds)
        if self._debounce is asyncio.current_task():
            # Past this point a newer edit must not cancel us; staleness is
            # handled cooperatively through the request id.
            self._debounce = None
        if not self._is_current(request_id):
            return
        await self.run(email, request_id)

    async def run(self, email: str, request_id: int) -> None:
        """Attempt the lookup with bounded retry. Publishes only while current."""
        attempts = self._timings.check_attempts
        for attempt in range(1, attempts + 1):
            if not self._is_current(request_id):
                logger.debug("Email check %s went stale before attempt %s", request_id, attempt)
                return
            self._publish(ExistenceCheck(status=CheckStatus.CHECKING, request_id=request_id))
            try:
                exists = await self._lookup(email)
            except AuthError as exc:
                if not self._is_current(request_id):
                    logger.debug("Discarding stale email check failure %s", request_id)
                    return
                logger.warning(
                    "Email check %s attempt %s/%s failed (%s)",
                    request_id,
                    attempt,
                    attempts,
                    exc.kind.value,
                )
                if attempt < attempts:
                    await self._scheduler.sleep(self.backoff_delay(attempt))
                continue

            if not self._is_current(request_id):
                logger.debug("Discarding stale email check result %s", request_id)
                return
            self._publish(
                ExistenceCheck(status=CheckStatus.READY, exists=exists, request_id=request_id)
            )
            return

        if self._is_current(request_id):
            logger.warning("Email check %s gave up after %s attempts", request_id, attempts)
            self._publish(ExistenceCheck(status=CheckStatus.IDLE, request_id=request_id))

    async def wait(self) -> None:
        """Wait until every lookup started so far has finished or been cancelled."""
        while self.pending:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        self.cancel_pending()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
