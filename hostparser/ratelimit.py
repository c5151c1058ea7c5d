"""Token bucket used to throttle job admission."""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Shared token bucket refilling at ``rate`` tokens per second.

    The bucket starts full and holds at most ``capacity`` tokens (``rate`` by
    default). Each :meth:`acquire` takes one token. When the bucket is empty
    the caller reserves the next token by driving the balance negative and
    sleeps until it has accrued, so concurrent callers queue up fairly
    instead of polling.
    """

    def __init__(
        self,
        rate: int,
        capacity: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = float(rate)
        self.capacity = float(capacity if capacity is not None else rate)
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = self.capacity
        self._updated = clock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._updated = now

    def _reserve(self) -> float:
        """Take one token and return how long the caller must wait for it."""
        with self._lock:
            self._refill(self._clock())
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    async def acquire(self) -> None:
        """Wait until a permit is available and consume it."""
        delay = self._reserve()
        if delay > 0:
            logger.debug(f"Rate limit reached, waiting {delay:.3f}s")
            await self._sleep(delay)

