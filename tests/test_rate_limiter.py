"""Tests for the rate limiter and retry manager."""

import asyncio
import time

import pytest

from llm.rate_limiter import RateLimiter, RetryManager, is_rate_limit_error


class OverloadedError(Exception):
    """Stand-in for an upstream 529 response."""

    def __init__(self, message="Overloaded"):
        super().__init__(message)
        self.status_code = 529


class TestRateLimitDetection:
    """Test classification of retryable errors."""

    def test_status_codes(self):
        assert is_rate_limit_error(OverloadedError())

    def test_message_patterns(self):
        assert is_rate_limit_error(Exception("Rate limit exceeded"))
        assert is_rate_limit_error(Exception("HTTP 429 Too Many Requests"))
        assert is_rate_limit_error(Exception("server overloaded"))

    def test_other_errors(self):
        assert not is_rate_limit_error(ValueError("bad input"))


class TestRateLimiter:
    """Test rolling-window throttling."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        limiter = RateLimiter(max_requests=5, window_seconds=1.0, min_interval=0)

        async def call():
            return 42

        assert await limiter.execute(call) == 42
        assert limiter.get_status()["requests_in_window"] == 1

    @pytest.mark.asyncio
    async def test_saturated_window_waits(self):
        """A call beyond max_requests waits for the oldest to age out."""
        limiter = RateLimiter(max_requests=2, window_seconds=0.3, min_interval=0)
        started = []

        async def call():
            started.append(time.monotonic())

        await asyncio.gather(*(limiter.execute(call) for _ in range(3)))

        assert len(started) == 3
        assert started[2] - started[0] >= 0.29

    @pytest.mark.asyncio
    async def test_dispatch_order_is_fifo(self):
        """Callers are served in arrival order."""
        limiter = RateLimiter(max_requests=10, window_seconds=1.0, min_interval=0)
        order = []

        def make(i):
            async def call():
                order.append(i)
            return call

        await asyncio.gather(*(limiter.execute(make(i)) for i in range(5)))

        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        limiter = RateLimiter(max_requests=2, window_seconds=1.0, min_interval=0)

        async def call():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await limiter.execute(call)

    def test_status_shape(self):
        limiter = RateLimiter(max_requests=15, window_seconds=60.0)

        assert limiter.get_status() == {
            "requests_in_window": 0,
            "max_requests": 15,
            "window_seconds": 60.0,
            "queue_length": 0,
        }


class TestRetryManager:
    """Test overload retries."""

    @pytest.mark.asyncio
    async def test_retry_ceiling(self):
        """At most max_retries + 1 attempts, then the last error propagates."""
        manager = RetryManager(max_retries=2, base_delay=0)
        attempts = []

        async def call():
            attempts.append(1)
            raise OverloadedError()

        with pytest.raises(OverloadedError):
            await manager.execute(call)

        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_recovers_after_overload(self):
        manager = RetryManager(max_retries=3, base_delay=0)
        attempts = []

        async def call():
            attempts.append(1)
            if len(attempts) < 2:
                raise OverloadedError()
            return "ok"

        assert await manager.execute(call) == "ok"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        manager = RetryManager(max_retries=3, base_delay=0)
        attempts = []

        async def call():
            attempts.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await manager.execute(call)

        assert len(attempts) == 1
