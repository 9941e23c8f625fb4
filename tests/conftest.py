# tests/conftest.py
from __future__ import annotations

import logging
import random
import types

import pytest

from scrapegate.core.config.models import FetchSettings
from scrapegate.core.fetch import Fetcher, RateLimiter, ScrapeContext
from scrapegate.core.fetch.health import HealthMetrics
from scrapegate.core.logging import ROOT_LOGGER


@pytest.fixture
def clock() -> types.SimpleNamespace:
    """
    Manual monotonic clock.

    Exposes:
      now() -> float     current time in seconds
      advance(dt)        move the clock forward
    """
    t = {"now": 1_000.0}
    return types.SimpleNamespace(
        now=lambda: t["now"],
        advance=lambda dt: t.__setitem__("now", t["now"] + float(dt)),
    )


@pytest.fixture
def sleeps(clock) -> types.SimpleNamespace:
    """Async sleep that records requested delays and advances the clock."""
    recorded: list[float] = []

    async def sleep(dt: float) -> None:
        recorded.append(dt)
        clock.advance(dt)

    return types.SimpleNamespace(sleep=sleep, recorded=recorded)


@pytest.fixture
def context(clock, sleeps) -> ScrapeContext:
    # health timestamps in ms derived from the fake clock
    return ScrapeContext(
        rate_limiter=RateLimiter(clock=clock.now, sleep=sleeps.sleep),
        health=HealthMetrics(clock=lambda: int(clock.now() * 1000)),
    )


@pytest.fixture
def settings() -> FetchSettings:
    # generous buckets so throttling never interferes with retry tests
    return FetchSettings(rps=1000, burst=1000, timeout_ms=5_000)


@pytest.fixture
def fetcher(context, settings, sleeps) -> Fetcher:
    return Fetcher(context, settings=settings, sleep=sleeps.sleep, rng=random.Random(7))


@pytest.fixture(autouse=True)
def _reset_logging():
    # CLI tests install handlers bound to captured streams
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
