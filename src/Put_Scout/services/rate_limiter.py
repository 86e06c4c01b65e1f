"""Async rate limiter: a concurrency cap plus a token bucket.

One instance is built in the composition root and handed to every
adapter that talks to a rate-limited feed, so all of them draw from the
same budget. There is no process-wide limiter state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Final, TypeVar

from Put_Scout.utils.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_REQUESTS_PER_SECOND: Final[float] = 2.0
DEFAULT_MAX_CONCURRENT: Final[int] = 5
DEFAULT_MAX_RETRIES: Final[int] = 5
DEFAULT_BACKOFF_DELAYS: Final[tuple[float, ...]] = (1.0, 2.0, 4.0, 8.0, 16.0)


class RateLimiter:
    """Async rate limiter combining concurrency control and a token bucket.

    Usage::

        limiter = RateLimiter(max_concurrent=5, requests_per_second=2.0)

        async with limiter:
            result = await some_http_call()

        # Or retry automatically on RateLimitExceededError
        result = await limiter.execute(
            lambda: fetch_groups(),
            ticker="*",
            source="broker",
        )
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_delays: list[float] | None = None,
    ) -> None:
        if requests_per_second <= 0:
            msg = f"requests_per_second must be positive, got {requests_per_second}"
            raise ValueError(msg)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._requests_per_second = requests_per_second
        self._max_retries = max_retries
        self._backoff_delays = (
            list(backoff_delays) if backoff_delays else list(DEFAULT_BACKOFF_DELAYS)
        )

        # Token bucket state
        self._token_interval = 1.0 / requests_per_second
        self._capacity = float(max_concurrent)
        self._tokens = self._capacity
        self._last_refill = time.monotonic()
        self._bucket_lock = asyncio.Lock()

        logger.info(
            "RateLimiter initialized: max_concurrent=%d, rate=%.1f req/s, max_retries=%d",
            max_concurrent,
            requests_per_second,
            max_retries,
        )

    async def acquire(self) -> None:
        """Block until both the concurrency cap and the bucket allow a request."""
        await self._semaphore.acquire()
        try:
            await self._take_token()
        except BaseException:
            self._semaphore.release()
            raise

    def release(self) -> None:
        """Return a concurrency slot."""
        self._semaphore.release()

    async def __aenter__(self) -> RateLimiter:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        ticker: str,
        source: str,
    ) -> T:
        """Run ``call()`` under the limiter, retrying on RateLimitExceededError.

        A fresh awaitable is created per attempt. A ``retry_after`` value on
        the exception overrides the backoff schedule.

        Raises:
            RateLimitExceededError: After exhausting all retries.
        """
        attempt = 0
        while True:
            async with self:
                try:
                    return await call()
                except RateLimitExceededError as exc:
                    if attempt >= self._max_retries:
                        logger.error(
                            "Rate limit exceeded for %s from %s after %d retries",
                            ticker,
                            source,
                            self._max_retries,
                        )
                        raise
                    delay = self._retry_delay(exc, attempt)

            attempt += 1
            logger.warning(
                "Rate limited on %s from %s (attempt %d/%d), retrying in %.1fs",
                ticker,
                source,
                attempt,
                self._max_retries,
                delay,
            )
            await asyncio.sleep(delay)

    # ------------------------------------------------------------------
    # Token bucket internals
    # ------------------------------------------------------------------

    async def _take_token(self) -> None:
        while True:
            async with self._bucket_lock:
                now = time.monotonic()
                refill = (now - self._last_refill) * self._requests_per_second
                self._tokens = min(self._capacity, self._tokens + refill)
                self._last_refill = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
            await asyncio.sleep(self._token_interval)

    def _retry_delay(self, exc: RateLimitExceededError, attempt: int) -> float:
        retry_after: float | None = getattr(exc, "retry_after", None)
        if retry_after is not None and retry_after > 0:
            return retry_after
        return self._backoff_delays[min(attempt, len(self._backoff_delays) - 1)]
