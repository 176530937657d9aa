"""Tests for the debounced, retried email existence check."""

from __future__ import annotations

import random

import pytest

from authflow.config import FlowTimings
from authflow.flow.existence import ExistenceChecker
from authflow.models.flow import CheckStatus, ExistenceCheck


class Harness:
    """Owner stand-in: holds the current request id and records publications."""

    def __init__(self, clock, lookup, **timings) -> None:
        self.request_id = 1
        self.published: list[ExistenceCheck] = []
        self.checker = ExistenceChecker(
            lookup,
            clock,
            FlowTimings(**timings),
            is_current=lambda request_id: request_id == self.request_id,
            publish=self.published.append,
            rng=random.Random(7),
        )

    @property
    def statuses(self) -> list[CheckStatus]:
        return [check.status for check in self.published]


class TestDebounce:
    @pytest.mark.asyncio
    async def test_waits_for_window(self, clock, make_lookup) -> None:
        lookup = make_lookup(True)
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)

        await clock.advance(0.4)
        assert lookup.calls == []

        await clock.advance(0.1)
        assert lookup.calls == ["a@x.com"]
        assert harness.statuses == [CheckStatus.CHECKING, CheckStatus.READY]
        assert harness.published[-1] == ExistenceCheck(
            status=CheckStatus.READY, exists=True, request_id=1
        )

    @pytest.mark.asyncio
    async def test_newer_schedule_cancels_pending(self, clock, make_lookup) -> None:
        lookup = make_lookup(False)
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)
        await clock.advance(0.3)
        harness.request_id = 2
        harness.checker.schedule("b@x.com", 2)

        await clock.advance(0.6)
        assert lookup.calls == ["b@x.com"]
        assert harness.published[-1].request_id == 2

    @pytest.mark.asyncio
    async def test_cancel_pending_is_idempotent(self, clock, make_lookup) -> None:
        lookup = make_lookup(True)
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)
        harness.checker.cancel_pending()
        harness.checker.cancel_pending()

        await clock.advance(1)
        assert lookup.calls == []
        assert harness.published == []
        assert harness.checker.pending is False


class TestRetry:
    @pytest.mark.asyncio
    async def test_four_attempts_with_increasing_backoff(self, clock, make_lookup, failure) -> None:
        lookup = make_lookup(*[failure() for _ in range(4)])
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)

        await clock.advance(10)

        assert len(lookup.calls) == 4
        backoffs = clock.sleeps[1:]
        assert len(backoffs) == 3
        assert backoffs == sorted(backoffs)
        for attempt, delay in enumerate(backoffs, start=1):
            assert 0.35 * attempt <= delay <= 0.35 * attempt + 0.15
        assert harness.published[-1] == ExistenceCheck(
            status=CheckStatus.IDLE, exists=None, request_id=1
        )

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, clock, make_lookup, failure) -> None:
        lookup = make_lookup(failure(), failure(), False)
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)

        await clock.advance(10)

        assert len(lookup.calls) == 3
        assert harness.published[-1].status == CheckStatus.READY
        assert harness.published[-1].exists is False

    def test_backoff_without_jitter(self, clock, make_lookup) -> None:
        harness = Harness(clock, make_lookup(), retry_jitter=0)
        assert harness.checker.backoff_delay(1) == pytest.approx(0.35)
        assert harness.checker.backoff_delay(3) == pytest.approx(1.05)


class TestStaleness:
    @pytest.mark.asyncio
    async def test_in_flight_result_discarded(self, clock, make_lookup) -> None:
        lookup = make_lookup(True)
        lookup.gated = True
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)
        await clock.advance(0.5)
        assert harness.statuses == [CheckStatus.CHECKING]

        harness.request_id = 2
        lookup.gates[0].set()
        await clock.settle()

        assert harness.statuses == [CheckStatus.CHECKING]

    @pytest.mark.asyncio
    async def test_stale_during_backoff_stops_retrying(self, clock, make_lookup, failure) -> None:
        lookup = make_lookup(failure(), True)
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)
        await clock.advance(0.5)
        assert len(lookup.calls) == 1

        harness.request_id = 2
        await clock.advance(5)

        assert len(lookup.calls) == 1
        assert CheckStatus.READY not in harness.statuses

    @pytest.mark.asyncio
    async def test_wait_and_aclose(self, clock, make_lookup) -> None:
        lookup = make_lookup(True)
        lookup.gated = True
        harness = Harness(clock, lookup)
        harness.checker.schedule("a@x.com", 1)
        await clock.advance(0.5)
        assert harness.checker.pending is True

        await harness.checker.aclose()
        assert harness.checker.pending is False
        await harness.checker.wait()
