"""
Unit tests for TimerRegistry.

Tests cover:
- Firing after the delay, and removal before the callback runs
- Cancellation and rescheduling
- Callback failures are contained
- Shutdown
"""

import asyncio

import pytest

from fulfillment.scheduling import TimerRegistry


@pytest.fixture
def timers() -> TimerRegistry:
    return TimerRegistry(enable_tracing=False)


class TestTimerRegistry:
    @pytest.mark.asyncio
    async def test_fires_once(self, timers: TimerRegistry) -> None:
        fired: list[int] = []

        async def callback() -> None:
            fired.append(1)

        task = timers.schedule(445, "payment", 0.01, callback)
        await task

        assert fired == [1]
        assert not timers.is_scheduled(445, "payment")

    @pytest.mark.asyncio
    async def test_removed_before_callback(self, timers: TimerRegistry) -> None:
        seen: list[bool] = []

        async def callback() -> None:
            seen.append(timers.is_scheduled(445, "payment"))
            seen.append(timers.cancel(445, "payment"))

        await timers.schedule(445, "payment", 0, callback)

        assert seen == [False, False]

    @pytest.mark.asyncio
    async def test_cancel(self, timers: TimerRegistry) -> None:
        fired: list[int] = []

        async def callback() -> None:
            fired.append(1)

        timers.schedule(445, "payment", 0.05, callback)

        assert timers.cancel(445, "payment")
        assert not timers.cancel(445, "payment")
        await asyncio.sleep(0.1)
        assert fired == []

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self, timers: TimerRegistry) -> None:
        fired: list[str] = []

        async def first() -> None:
            fired.append("first")

        async def second() -> None:
            fired.append("second")

        timers.schedule(1, "review", 0.05, first)
        task = timers.schedule(1, "review", 0.01, second)
        await task
        await asyncio.sleep(0.06)

        assert fired == ["second"]
        assert timers.pending_count == 0

    @pytest.mark.asyncio
    async def test_names_are_independent(self, timers: TimerRegistry) -> None:
        async def noop() -> None:
            return None

        timers.schedule(1, "payment", 10, noop)
        timers.schedule(1, "review", 10, noop)
        timers.schedule(2, "payment", 10, noop)

        assert timers.cancel_order(1) == 2
        assert timers.is_scheduled(2, "payment")
        assert await timers.shutdown() == 1

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, timers: TimerRegistry) -> None:
        async def callback() -> None:
            raise RuntimeError("boom")

        await timers.schedule(1, "payment", 0, callback)

        assert timers.pending_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_cancels_everything(self, timers: TimerRegistry) -> None:
        async def noop() -> None:
            return None

        tasks = [timers.schedule(n, "payment", 10, noop) for n in range(3)]

        assert await timers.shutdown() == 3
        assert all(t.cancelled() for t in tasks)
        assert timers.pending_count == 0
