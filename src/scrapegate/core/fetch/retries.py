"""
Retry utilities with tenacity.

Backoff policies for the fetcher's retry loop and a small helper for
fixed-delay retries of whole operations.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from scrapegate.core.logging import get_logger

logger = get_logger("retries")

T = TypeVar("T")

# Transport failures worth another attempt. UnsupportedProtocol and
# LocalProtocolError are deliberately absent: they fail the same way every time.
RETRYABLE_TRANSPORT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.ProxyError,
)


class RetryableStatusError(Exception):
    """Internal signal: the attempt got a status from the retry set."""

    def __init__(self, response: httpx.Response, attempt: int):
        super().__init__(f"Retryable status {response.status_code}")
        self.response = response
        self.attempt = attempt

    @property
    def status(self) -> int:
        return self.response.status_code


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with bounded uniform jitter."""

    base_ms: float
    jitter_ms: float

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        uniform = (rng or random).uniform
        return (self.base_ms * 2 ** (attempt - 1) + uniform(0, self.jitter_ms)) / 1000.0


STATUS_BACKOFF = BackoffPolicy(base_ms=500, jitter_ms=250)
NETWORK_BACKOFF = BackoffPolicy(base_ms=300, jitter_ms=150)


class wait_by_outcome:
    """Tenacity wait strategy picking a backoff policy from the failure type."""

    def __init__(
        self,
        status: BackoffPolicy = STATUS_BACKOFF,
        network: BackoffPolicy = NETWORK_BACKOFF,
        rng: random.Random | None = None,
    ):
        self.status = status
        self.network = network
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        policy = self.status if isinstance(exc, RetryableStatusError) else self.network
        return policy.delay(retry_state.attempt_number, self.rng)


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """Execute an async function, retrying with a fixed delay.

    Args:
        coro_func: Async function to call
        *args: Positional arguments
        attempts: Total attempts, including the first
        delay: Seconds between attempts
        retry_on: Exception types that trigger another attempt
        sleep: Coroutine used to wait between attempts
        **kwargs: Keyword arguments

    Returns:
        Function result

    Raises:
        The last exception once attempts are exhausted
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)
