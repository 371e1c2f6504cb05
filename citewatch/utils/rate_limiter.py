"""Throttles for pacing calls to external answer engines.

Every throttle exposes ``async wait()``; the monitoring loop awaits it
between engine calls and between entries.  ``NoThrottle`` lets tests run
a whole batch without wall-clock sleeps.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class Throttle:
    """Base delay policy: awaiting ``wait`` returns immediately."""

    async def wait(self) -> None:
        return None


class NoThrottle(Throttle):
    """Throttle that never sleeps."""


class FixedDelayThrottle(Throttle):
    """Sleep a fixed number of seconds on every ``wait``.

    Args:
        seconds: Delay per call; values <= 0 disable sleeping.
        sleep: Coroutine used to sleep, ``asyncio.sleep`` by default.
        name: Label used in debug logging.
    """

    def __init__(
        self,
        seconds: float,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        name: str = "default",
    ):
        self._seconds = max(0.0, float(seconds))
        self._sleep = sleep or asyncio.sleep
        self._name = name

    @property
    def seconds(self) -> float:
        return self._seconds

    async def wait(self) -> None:
        if self._seconds <= 0:
            return
        logger.debug("Throttle(%s) sleeping %.2fs", self._name, self._seconds)
        await self._sleep(self._seconds)


class RateLimiter(Throttle):
    """Sliding-window request cap, used per API client.

    Usage::

        limiter = RateLimiter(requests_per_minute=30)
        async with limiter:
            await make_request()
    """

    def __init__(
        self,
        requests_per_minute: int = 60,
        requests_per_hour: Optional[int] = None,
        name: str = "default",
    ):
        self._rpm = requests_per_minute
        self._rph = requests_per_hour
        self._name = name
        self._minute_window: list[float] = []
        self._hour_window: list[float] = []
        self._async_lock = asyncio.Lock()

    def _clean_windows(self, now: float) -> None:
        """Remove expired timestamps from sliding windows."""
        self._minute_window = [t for t in self._minute_window if now - t < 60.0]
        if self._rph:
            self._hour_window = [t for t in self._hour_window if now - t < 3600.0]

    def _wait_time(self) -> float:
        """Calculate how long to wait before the next request is allowed."""
        now = time.monotonic()
        self._clean_windows(now)
        wait = 0.0
        if len(self._minute_window) >= self._rpm:
            wait = max(wait, 60.0 - (now - self._minute_window[0]))
        if self._rph and len(self._hour_window) >= self._rph:
            wait = max(wait, 3600.0 - (now - self._hour_window[0]))
        return wait

    def _record(self) -> None:
        """Record a request timestamp."""
        now = time.monotonic()
        self._minute_window.append(now)
        if self._rph:
            self._hour_window.append(now)

    async def acquire(self) -> None:
        """Wait until a request slot is available (async)."""
        async with self._async_lock:
            while True:
                wait = self._wait_time()
                if wait <= 0:
                    break
                logger.debug("RateLimiter(%s) async sleeping %.2fs", self._name, wait)
                await asyncio.sleep(wait)
            self._record()

    async def wait(self) -> None:
        await self.acquire()

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, *args):
        pass

    @property
    def requests_in_last_minute(self) -> int:
        """Number of requests made in the last 60 seconds."""
        self._clean_windows(time.monotonic())
        return len(self._minute_window)


def build_throttle(seconds: Optional[float], name: str = "default") -> Throttle:
    """Return a fixed-delay throttle, or ``NoThrottle`` when disabled."""
    if not seconds or seconds <= 0:
        return NoThrottle()
    return FixedDelayThrottle(seconds, name=name)
