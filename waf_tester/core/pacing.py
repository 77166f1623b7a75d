"""Request pacing for baseline and burst tests."""

import asyncio
import logging
import time
from typing import AsyncIterator, Optional

from .models import TestConfig


def calculate_interval_ms(total_requests: int, duration: int, test_mode: str) -> int:
    """
    Compute the delay between two requests in milliseconds.

    Baseline spreads requests over the whole duration. Burst packs them
    into the first half. An interval of 0 means back-to-back requests.
    """
    if total_requests <= 0:
        raise ValueError("total_requests must be positive")
    if test_mode == "burst":
        burst_duration = duration // 2
        return (burst_duration * 1000) // total_requests
    return (duration * 1000) // total_requests


async def wait_or_cancelled(seconds: float, cancel_event: Optional[asyncio.Event]) -> bool:
    """
    Sleep for ``seconds`` unless the cancel event fires first.

    Returns:
        True if cancelled during (or before) the wait
    """
    if cancel_event is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return False
    if cancel_event.is_set():
        return True
    if seconds <= 0:
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


class PacingScheduler:
    """
    Drives timed dispatch of the request slots of one test.

    Iterating yields sequence numbers 1..N. The scheduler waits the
    configured interval between slots (not after the last) and stops
    early once the cancel event is set. In burst mode the iteration
    only finishes after the full configured duration has elapsed.
    """

    def __init__(self, config: TestConfig, cancel_event: Optional[asyncio.Event] = None):
        self.config = config
        self.cancel_event = cancel_event
        self.interval_ms = calculate_interval_ms(
            config.total_requests, config.duration, config.test_mode
        )
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(__name__)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def slots(self) -> AsyncIterator[int]:
        """Yield request sequence numbers at the paced rate."""
        total = self.config.total_requests
        self.start_time = time.monotonic()

        self.logger.info(
            f"Pacing {total} requests over {self.config.duration}s "
            f"({self.config.test_mode}, interval {self.interval_ms}ms)"
        )

        for i in range(1, total + 1):
            if self.cancelled:
                return

            yield i

            if i < total:
                if await wait_or_cancelled(self.interval_ms / 1000, self.cancel_event):
                    return

        if self.config.is_burst:
            await self._wait_out_duration()

    async def _wait_out_duration(self) -> None:
        """Idle for whatever remains of the configured duration."""
        elapsed = time.monotonic() - self.start_time
        remaining = self.config.duration - elapsed
        if remaining > 0:
            self.logger.info(f"Burst finished, idling {remaining:.1f}s")
            await wait_or_cancelled(remaining, self.cancel_event)
