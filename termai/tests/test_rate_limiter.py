"""Tests for client-side rate limiting."""

import asyncio
import time

import pytest

from termai.llm import RateLimitConfig, RateLimiter


class TestRateLimiter:
    """Tests for RateLimiter.wait()."""

    @pytest.mark.asyncio
    async def test_first_request_is_immediate(self):
        """A fresh limiter does not sleep."""
        limiter = RateLimiter(RateLimitConfig(min_interval=5.0))

        start = time.monotonic()
        await limiter.wait()

        assert time.monotonic() - start < 0.5
        assert limiter.stats().request_count == 1

    @pytest.mark.asyncio
    async def test_min_interval_spacing(self):
        """Consecutive requests are at least min_interval apart."""
        limiter = RateLimiter(RateLimitConfig(min_interval=0.05))

        start = time.monotonic()
        for _ in range(3):
            await limiter.wait()
        elapsed = time.monotonic() - start

        assert elapsed >= 0.095

    @pytest.mark.asyncio
    async def test_concurrent_callers_queue(self):
        """Concurrent waits are serialized and spaced."""
        limiter = RateLimiter(RateLimitConfig(min_interval=0.05))
        release_times = []

        async def worker():
            await limiter.wait()
            release_times.append(time.monotonic())

        await asyncio.gather(*(worker() for _ in range(3)))

        release_times.sort()
        gaps = [b - a for a, b in zip(release_times, release_times[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_window_limit_waits_for_next_window(self):
        """Once the window is full, the next request waits for a new window."""
        limiter = RateLimiter(
            RateLimitConfig(min_interval=0.0, requests_per_window=2, window_seconds=0.2)
        )

        start = time.monotonic()
        await limiter.wait()
        await limiter.wait()
        assert time.monotonic() - start < 0.1

        await limiter.wait()
        assert time.monotonic() - start >= 0.15
        assert limiter.stats().request_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_leaves_counters(self):
        """A cancelled wait raises promptly and records nothing."""
        limiter = RateLimiter(RateLimitConfig(min_interval=10.0))
        await limiter.wait()

        task = asyncio.create_task(limiter.wait())
        await asyncio.sleep(0.02)
        task.cancel()

        start = time.monotonic()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - start < 1.0
        assert limiter.stats().request_count == 1

    def test_stats_snapshot(self):
        """Stats reflect the configuration before any request."""
        limiter = RateLimiter(RateLimitConfig(requests_per_window=30, window_seconds=60))
        stats = limiter.stats()

        assert stats.request_count == 0
        assert stats.requests_per_window == 30
        assert stats.last_request_time is None
        assert 0 < stats.window_remaining <= 60
