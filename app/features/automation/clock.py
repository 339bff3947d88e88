"""
Time source for the automation engine.

The scheduler, pipeline and batch dispatcher never call datetime.now() or
asyncio.sleep() directly; they go through an injected Clock so pacing can
be cancelled like any other await and tests can fast-forward virtual time.
"""

import asyncio
import time
from datetime import UTC, datetime


class Clock:
    """Wall-clock time with cancellable sleeps."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        """Suspend for `seconds`; raises CancelledError if the task is cancelled."""
        if seconds > 0:
            await asyncio.sleep(seconds)


system_clock = Clock()
