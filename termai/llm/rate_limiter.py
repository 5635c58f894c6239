"""Client-side pacing of outbound requests."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .config import RateLimitConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimiterStats:
    """Read-only snapshot of limiter state."""

    request_count: int
    requests_per_window: int
    window_remaining: float
    last_request_time: Optional[float]


class RateLimiter:
    """
    Fixed-window rate limiter with a minimum spacing between requests.

    ``wait()`` holds an asyncio lock for its whole duration, so concurrent
    callers queue behind each other and are released one at a time.
    Counters only change after the waits complete; a caller cancelled while
    sleeping leaves the state untouched.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()
        self._lock = asyncio.Lock()
        self._last_request_time: Optional[float] = None
        self._window_start = time.monotonic()
        self._request_count = 0

    async def wait(self) -> None:
        """Block until a request may be sent, then record it."""
        async with self._lock:
            now = time.monotonic()

            if now - self._window_start >= self.config.window_seconds:
                self._window_start = now
                self._request_count = 0

            if self._request_count >= self.config.requests_per_window:
                sleep_for = self.config.window_seconds - (now - self._window_start)
                if sleep_for > 0:
                    logger.warning(
                        f"Request window full ({self._request_count}/"
                        f"{self.config.requests_per_window}), waiting {sleep_for:.1f}s"
                    )
                    await asyncio.sleep(sleep_for)
                self._window_start = time.monotonic()
                self._request_count = 0

            if self._last_request_time is not None:
                elapsed = time.monotonic() - self._last_request_time
                if elapsed < self.config.min_interval:
                    await asyncio.sleep(self.config.min_interval - elapsed)

            self._last_request_time = time.monotonic()
            self._request_count += 1

    def stats(self) -> RateLimiterStats:
        """Get a snapshot of the limiter state."""
        elapsed = time.monotonic() - self._window_start
        return RateLimiterStats(
            request_count=self._request_count,
            requests_per_window=self.config.requests_per_window,
            window_remaining=max(0.0, self.config.window_seconds - elapsed),
            last_request_time=self._last_request_time,
        )
