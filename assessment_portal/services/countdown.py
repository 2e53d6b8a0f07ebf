"""Countdown for time-limited assessments.

The countdown only drives what the respondent sees: when it reaches zero
it stops and reports expiry, but the form stays open and is not
submitted automatically.
"""

import asyncio
from typing import Callable, Optional

from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

# Urgency thresholds in seconds
CRITICAL_SECONDS = 60
WARNING_SECONDS = 300


class CountdownTimer:
    """One-second resolution countdown running as an asyncio task."""

    def __init__(
        self,
        total_seconds: int,
        tick_seconds: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
    ):
        """Initialize the countdown.

        Args:
            total_seconds: Starting time in seconds
            tick_seconds: Real time per decrement
            on_tick: Called with the remaining seconds after each decrement
            on_expire: Called once when zero is reached
        """
        if total_seconds < 0:
            raise ValueError("total_seconds must not be negative")
        self.total_seconds = total_seconds
        self.remaining = total_seconds
        self.tick_seconds = tick_seconds
        self.on_tick = on_tick
        self.on_expire = on_expire
        self._task: Optional[asyncio.Task] = None

    @property
    def expired(self) -> bool:
        return self.remaining == 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start counting down (no-op if already running or expired)."""
        if self.running or self.expired:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Stop the countdown, keeping the remaining time."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            self.remaining -= 1
            if self.on_tick is not None:
                self.on_tick(self.remaining)

        logger.info("Assessment time limit reached")
        if self.on_expire is not None:
            self.on_expire()

    def format_remaining(self) -> str:
        """Remaining time as ``mm:ss``.

        Example:
            >>> CountdownTimer(125).format_remaining()
            '02:05'
        """
        minutes, seconds = divmod(self.remaining, 60)
        return f"{minutes:02d}:{seconds:02d}"

    def fraction_remaining(self) -> float:
        """Remaining share of the time limit, between 0 and 1."""
        if self.total_seconds == 0:
            return 0.0
        return self.remaining / self.total_seconds

    def urgency(self) -> str:
        """``critical`` under a minute, ``warning`` under five, else ``normal``."""
        if self.remaining < CRITICAL_SECONDS:
            return "critical"
        if self.remaining < WARNING_SECONDS:
            return "warning"
        return "normal"
