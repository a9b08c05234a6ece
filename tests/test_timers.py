"""Tests for the per-session timer registry."""

import asyncio

import pytest

from commerce_assistant.services.timers import TimerRegistry


class TestTimerRegistry:
    """Scheduling, replacement and cancellation of delayed callbacks."""

    @pytest.mark.asyncio
    async def test_runs_sync_and_async_callbacks(self) -> None:
        """Both plain and coroutine callbacks run after the delay."""
        timers = TimerRegistry()
        fired: list[str] = []

        async def _async_cb() -> None:
            fired.append("async")

        timers.schedule(0.01, lambda: fired.append("sync"))
        timers.schedule(0.01, _async_cb)
        await asyncio.sleep(0.05)

        assert sorted(fired) == ["async", "sync"]
        assert timers.pending == []

    @pytest.mark.asyncio
    async def test_same_name_replaces_pending_timer(self) -> None:
        """Only the latest timer under a name fires."""
        timers = TimerRegistry()
        fired: list[int] = []

        timers.schedule(0.01, lambda: fired.append(1), name="restart")
        timers.schedule(0.01, lambda: fired.append(2), name="restart")
        await asyncio.sleep(0.05)

        assert fired == [2]

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        timers = TimerRegistry()
        fired: list[int] = []

        timers.schedule(0.01, lambda: fired.append(1), name="t")
        assert timers.is_pending("t")
        assert timers.cancel("t") is True
        assert timers.cancel("t") is False
        await asyncio.sleep(0.03)

        assert fired == []

    @pytest.mark.asyncio
    async def test_cancel_all(self) -> None:
        """Cancelling all timers prevents every pending callback."""
        timers = TimerRegistry()
        fired: list[int] = []

        for i in range(3):
            timers.schedule(0.01, lambda i=i: fired.append(i))
        assert timers.cancel_all() == 3
        await asyncio.sleep(0.03)

        assert fired == []
        assert timers.pending == []

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self) -> None:
        """An exception in one callback does not affect other timers."""
        timers = TimerRegistry()
        fired: list[str] = []

        def _boom() -> None:
            raise RuntimeError("boom")

        timers.schedule(0.01, _boom)
        timers.schedule(0.02, lambda: fired.append("ok"))
        await asyncio.sleep(0.05)

        assert fired == ["ok"]

    @pytest.mark.asyncio
    async def test_callback_may_reschedule_its_own_name(self) -> None:
        timers = TimerRegistry()
        fired: list[int] = []

        def _tick() -> None:
            fired.append(len(fired))
            if len(fired) < 2:
                timers.schedule(0.01, _tick, name="tick")

        timers.schedule(0.01, _tick, name="tick")
        await asyncio.sleep(0.06)

        assert fired == [0, 1]
        assert not timers.is_pending("tick")
