"""
Clock

Time source for the loop, pacer and ticker. Everything that waits goes
through a Clock so tests can run on virtual time instead of the wall clock.
"""

import asyncio
import time


class Clock:
    """Wall-clock time and asyncio sleeps."""

    def now(self) -> float:
        """Current time in seconds since the epoch."""
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
