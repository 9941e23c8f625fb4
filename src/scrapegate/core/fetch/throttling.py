"""
Rate limiting utilities.

Per-host token bucket: capacity ``burst``, refilled at ``rps`` tokens per
second, one token consumed per outbound request.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from scrapegate.core.logging import get_logger

logger = get_logger("throttle")

DEFAULT_RPS = 0.5
DEFAULT_BURST = 2


@dataclass
class RateBucket:
    """Token state for one host."""

    host: str
    tokens: float
    last_refill: float

    def refill(self, now: float, rps: float, burst: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(float(burst), self.tokens + elapsed * rps)
        self.last_refill = now


class RateLimiter:
    """Per-host token bucket limiter.

    Waiters are not queued: each one sleeps for the time its own refill
    needs and then re-reads the bucket, so there is no FIFO ordering
    between concurrent callers on the same host.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            clock: Monotonic time source in seconds
            sleep: Coroutine used to wait for tokens
        """
        self._clock = clock
        self._sleep = sleep
        self._buckets: dict[str, RateBucket] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def acquire(
        self,
        host: str,
        rps: float = DEFAULT_RPS,
        burst: int = DEFAULT_BURST,
    ) -> None:
        """Block until a request to ``host`` is permitted.

        Args:
            host: Host key (hostname[:port])
            rps: Refill rate in tokens per second
            burst: Bucket capacity
        """
        if rps <= 0:
            raise ValueError(f"rps must be positive, got {rps}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")

        while True:
            async with self._locks[host]:
                now = self._clock()
                bucket = self._buckets.get(host)
                if bucket is None:
                    bucket = RateBucket(host=host, tokens=float(burst), last_refill=now)
                    self._buckets[host] = bucket

                bucket.refill(now, rps, burst)

                if bucket.tokens >= 1:
                    bucket.tokens -= 1
                    return

                wait = (1 - bucket.tokens) / rps

            logger.debug("Rate limit reached for %s, waiting %.3fs", host, wait, extra={"host": host})
            await self._sleep(wait)

    def reset(self, host: str | None = None) -> None:
        """Clear one host's bucket, or every bucket.

        Used operationally to recover from persistent blocking.
        """
        if host:
            self._buckets.pop(host, None)
        else:
            self._buckets.clear()

    def snapshot(self, host: str) -> dict[str, Any] | None:
        """Current bucket state for a host, or None if it was never used."""
        bucket = self._buckets.get(host)
        if bucket is None:
            return None
        return {
            "host": bucket.host,
            "tokens": bucket.tokens,
            "last_refill": bucket.last_refill,
        }

    @property
    def hosts(self) -> list[str]:
        return list(self._buckets)
