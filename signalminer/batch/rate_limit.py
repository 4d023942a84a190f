import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque

from ..config import RateLimit

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window admission gate: at most `calls` acquisitions in any
    window of `interval_ms` milliseconds.

    Waiters are served one at a time in arrival order; the lock is held
    while sleeping so a later caller cannot overtake an earlier one.
    """

    def __init__(self, limit: RateLimit, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self._interval = limit.interval_ms / 1000.0
        self._clock = clock
        self._starts: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                while self._starts and now - self._starts[0] >= self._interval:
                    self._starts.popleft()

                if len(self._starts) < self.limit.calls:
                    self._starts.append(now)
                    return

                delay = self._starts[0] + self._interval - now
                logger.debug(f"Rate limit reached, waiting {delay * 1000:.0f} ms")
                await asyncio.sleep(delay)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.limit.calls}/{self.limit.interval_ms}ms)"
