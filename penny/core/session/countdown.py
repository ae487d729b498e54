"""
Countdown - Bidding window timer.

State machine:
    INACTIVE --start--> RUNNING --tick to zero--> EXPIRED
    RUNNING/EXPIRED --reset--> RUNNING (full window)
    any --cancel--> INACTIVE

The countdown gates admission: once EXPIRED, bids are refused and only
settlement is possible. tick() is synchronous so tests can drive it step
by step. On a running event loop, start() and reset() also run a background
task that ticks every tick_interval seconds until the window expires.
"""

import asyncio
from enum import IntEnum
from typing import Callable, Optional

from penny.utils.logger import get_logger

logger = get_logger("countdown")


DEFAULT_WINDOW = 15


class CountdownState(IntEnum):
    """State of the countdown."""
    INACTIVE = 0
    RUNNING = 1
    EXPIRED = 2


class Countdown:
    """
    Single-ticking timer for one session.

    Attributes:
        window: Ticks in a full bidding window
        tick_interval: Seconds between background ticks
        time_left: Remaining ticks
        state: Current countdown state
    """

    def __init__(
        self,
        window: int = DEFAULT_WINDOW,
        tick_interval: float = 1.0,
        on_expire: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
    ):
        self.window = window
        self.tick_interval = tick_interval
        self.time_left = 0
        self.state = CountdownState.INACTIVE
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state == CountdownState.RUNNING

    @property
    def is_expired(self) -> bool:
        return self.state == CountdownState.EXPIRED

    @property
    def formatted(self) -> str:
        """Remaining time as 0:SS."""
        return f"0:{self.time_left:02d}"

    def start(self) -> None:
        """Start at a full window and begin background ticking."""
        self.reset()
        logger.debug(f"Countdown started ({self.window} ticks)")

    def reset(self) -> None:
        """Return to RUNNING at the full window, resuming background ticking."""
        self.time_left = self.window
        self.state = CountdownState.RUNNING
        if self._on_tick:
            self._on_tick(self.time_left)
        self._ensure_task()

    def tick(self) -> int:
        """
        Advance one tick.

        Returns:
            Remaining ticks
        """
        if self.state != CountdownState.RUNNING:
            return self.time_left

        self.time_left = max(0, self.time_left - 1)
        if self._on_tick:
            self._on_tick(self.time_left)

        if self.time_left == 0:
            self.state = CountdownState.EXPIRED
            logger.info("Countdown expired")
            if self._on_expire:
                self._on_expire()

        return self.time_left

    def cancel(self) -> None:
        """Stop ticking and return to INACTIVE."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.time_left = 0
        self.state = CountdownState.INACTIVE

    def _ensure_task(self) -> None:
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; countdown advances on manual ticks only")
            return
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        # Ends at expiry; a reset starts a fresh task
        while self.state == CountdownState.RUNNING:
            await asyncio.sleep(self.tick_interval)
            self.tick()
