"""
Unit tests for the bidding window countdown.
"""

import asyncio

import pytest

from penny.core.session import Countdown, CountdownState, DEFAULT_WINDOW


class TestCountdown:
    """Tests for manual ticking."""

    def test_initial_state(self):
        countdown = Countdown()
        assert countdown.window == DEFAULT_WINDOW
        assert countdown.state == CountdownState.INACTIVE
        assert countdown.time_left == 0

    def test_tick_ignored_when_inactive(self):
        countdown = Countdown(window=3)
        assert countdown.tick() == 0
        assert countdown.state == CountdownState.INACTIVE

    def test_start_outside_loop(self):
        """Without a running loop the countdown still starts; ticks are manual."""
        countdown = Countdown(window=3)
        countdown.start()
        assert countdown.is_running
        assert countdown.time_left == 3
        assert countdown._task is None

    def test_expires_once(self):
        """Reaching zero expires and fires on_expire exactly once."""
        expired = []
        countdown = Countdown(window=3, on_expire=lambda: expired.append(True))
        countdown.start()

        assert [countdown.tick() for _ in range(3)] == [2, 1, 0]
        assert countdown.is_expired
        assert expired == [True]

        countdown.tick()
        assert countdown.time_left == 0
        assert expired == [True]

    def test_reset_restarts_window(self):
        """A reset returns to a full window, even from EXPIRED."""
        countdown = Countdown(window=2)
        countdown.start()
        countdown.tick()
        countdown.tick()
        assert countdown.is_expired

        countdown.reset()
        assert countdown.is_running
        assert countdown.time_left == 2

    def test_on_tick_reports_time_left(self):
        seen = []
        countdown = Countdown(window=2, on_tick=seen.append)
        countdown.start()
        countdown.tick()
        assert seen == [2, 1]

    def test_cancel(self):
        countdown = Countdown(window=5)
        countdown.start()
        countdown.cancel()
        assert countdown.state == CountdownState.INACTIVE
        assert countdown.time_left == 0
        assert countdown.tick() == 0

    def test_formatted(self):
        countdown = Countdown(window=15)
        countdown.start()
        assert countdown.formatted == "0:15"
        for _ in range(8):
            countdown.tick()
        assert countdown.formatted == "0:07"


class TestCountdownTask:
    """Tests for background ticking."""

    @pytest.mark.asyncio
    async def test_background_expiry(self):
        """The background task ticks down to expiry."""
        done = asyncio.Event()
        countdown = Countdown(window=3, tick_interval=0.01, on_expire=done.set)
        countdown.start()

        await asyncio.wait_for(done.wait(), timeout=2.0)
        assert countdown.is_expired
        countdown.cancel()

    @pytest.mark.asyncio
    async def test_cancel_stops_task(self):
        countdown = Countdown(window=3, tick_interval=0.01)
        countdown.start()
        task = countdown._task
        assert task is not None

        countdown.cancel()
        await asyncio.sleep(0.05)
        assert task.cancelled()
        assert countdown.state == CountdownState.INACTIVE

    @pytest.mark.asyncio
    async def test_task_ends_at_expiry(self):
        done = asyncio.Event()
        countdown = Countdown(window=2, tick_interval=0.01, on_expire=done.set)
        countdown.start()
        task = countdown._task

        await asyncio.wait_for(done.wait(), timeout=2.0)
        await asyncio.sleep(0)
        assert task.done()
        assert not task.cancelled()

    @pytest.mark.asyncio
    async def test_reset_after_expiry_restarts_task(self):
        """A reset after expiry resumes ticking on a fresh task."""
        expiries = []
        countdown = Countdown(window=2, tick_interval=0.01, on_expire=lambda: expiries.append(True))
        countdown.start()
        first = countdown._task
        await asyncio.wait_for(first, timeout=2.0)
        assert countdown.is_expired

        countdown.reset()
        second = countdown._task
        assert second is not first
        assert not second.done()
        assert countdown.is_running

        await asyncio.wait_for(second, timeout=2.0)
        assert countdown.is_expired
        assert expiries == [True, True]
