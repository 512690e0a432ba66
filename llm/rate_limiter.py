"""Upstream call throttling and overload retries."""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS_CODES = {429, 529}


def is_rate_limit_error(exception: BaseException) -> bool:
    """Check if an exception is an overload or rate-limit error worth retrying."""
    status = getattr(exception, "status_code", None)
    if status is None:
        status = getattr(exception, "status", None)
    if status in RATE_LIMIT_STATUS_CODES:
        return True

    message = str(exception).lower()
    return "overloaded" in message or "rate limit" in message or "429" in message


class RateLimiter:
    """
    FIFO throttle for upstream calls.

    At most max_requests dispatches per rolling window; a saturated window
    blocks the queue until the oldest dispatch ages out. Every dispatch is
    followed by a fixed min_interval pause.
    """

    def __init__(
        self,
        max_requests: int = 15,
        window_seconds: float = 60.0,
        min_interval: float = 0.1
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_interval = min_interval
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()  # FIFO: waiters acquire in arrival order
        self._queued = 0

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn once a slot is available.

        Args:
            fn: Zero-argument coroutine function

        Returns:
            Whatever fn returns; its exceptions propagate
        """
        self._queued += 1
        try:
            await self._lock.acquire()
        finally:
            self._queued -= 1

        try:
            await self._wait_for_slot()
            self._timestamps.append(time.monotonic())
            try:
                return await fn()
            finally:
                await asyncio.sleep(self.min_interval)
        finally:
            self._lock.release()

    def _evict_expired(self, now: float):
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def _wait_for_slot(self):
        while True:
            now = time.monotonic()
            self._evict_expired(now)
            if len(self._timestamps) < self.max_requests:
                return
            wait = self._timestamps[0] + self.window_seconds - now
            logger.info(f"Rate limit reached, waiting {wait:.2f}s")
            await asyncio.sleep(wait)

    def get_status(self) -> Dict[str, Any]:
        """Current window usage and queue length."""
        self._evict_expired(time.monotonic())
        return {
            "requests_in_window": len(self._timestamps),
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "queue_length": self._queued,
        }

    def cleanup(self):
        """Forget request history."""
        self._timestamps.clear()


class RetryManager:
    """Retries overload and rate-limit errors with exponential backoff."""

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0):
        """
        Initialize retry manager.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry; doubles per attempt
        """
        self.max_retries = max_retries
        self.base_delay = base_delay

    def _log_retry(self, retry_state: RetryCallState):
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Rate limited (attempt {retry_state.attempt_number}/{self.max_retries + 1}), "
            f"retrying in {wait:.1f}s: {exception}"
        )

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run fn, retrying rate-limit errors; other errors propagate immediately.

        Args:
            fn: Zero-argument coroutine function

        Returns:
            Whatever fn returns

        Raises:
            The last exception once retries are exhausted
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay),
            retry=retry_if_exception(is_rate_limit_error),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await fn()
