"""Shared fixtures: a manually advanced clock and scripted identity backends."""

from __future__ import annotations

import asyncio
import heapq
from collections.abc import Coroutine
from typing import Any

import pytest

from authflow.errors import AuthError, ErrorKind
from authflow.flow.scheduler import Scheduler
from authflow.identity.adapter import IdentityProviderAdapter, create_identity_providers
from authflow.identity.memory import InMemoryIdentityBackend


class FakeClock(Scheduler):
    """Scheduler whose sleeps only finish when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._timers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._timers, (self.now + seconds, self._seq, future))
        self._seq += 1
        await future

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        return asyncio.get_running_loop().create_task(coro, name=name)

    @property
    def pending_timers(self) -> int:
        return sum(1 for _, _, future in self._timers if not future.done())

    async def settle(self) -> None:
        """Let every runnable task proceed until it blocks again."""
        for _ in range(50):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._timers and self._timers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._timers)
            self.now = deadline
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.now = target
        await self.settle()


class ScriptedLookup:
    """Existence lookup that answers from a script, optionally held on a gate.

    Each script entry is a bool answer or an ``AuthError`` to raise.
    """

    def __init__(self, *answers: bool | AuthError) -> None:
        self._answers = list(answers)
        self.calls: list[str] = []
        self.gates: list[asyncio.Event] = []
        self.gated = False

    async def __call__(self, email: str) -> bool:
        self.calls.append(email)
        answer = self._answers.pop(0) if self._answers else False
        if self.gated:
            gate = asyncio.Event()
            self.gates.append(gate)
            await gate.wait()
        if isinstance(answer, AuthError):
            raise answer
        return answer


def network_error() -> AuthError:
    return AuthError("Cannot reach the identity service.", ErrorKind.NETWORK)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> InMemoryIdentityBackend:
    backend = InMemoryIdentityBackend(code_factory=lambda: "123456")
    backend.add_user("old@x.com", password="correct-horse", name="Olga")
    return backend


@pytest.fixture
def adapter(backend: InMemoryIdentityBackend) -> IdentityProviderAdapter:
    return create_identity_providers(backend)


@pytest.fixture
def make_lookup():
    """Factory for ``ScriptedLookup``; pass answers, get a lookup callable."""
    return ScriptedLookup


@pytest.fixture
def failure():
    """Factory for the transient lookup failure the retry loop recovers from."""
    return network_error
