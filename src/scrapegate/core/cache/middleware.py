"""
Read-through cache wrapper for request handlers.

A live entry is returned without calling the handler. On a miss the handler
runs and its result is stored only when it is explicitly successful
(``ok is True``). Handler exceptions propagate untouched and are never
cached.

Concurrent misses for the same key are not coalesced: each one calls the
handler.
"""

from __future__ import annotations

import copy
from enum import IntEnum
from functools import update_wrapper
from typing import Any, Awaitable, Callable, Literal, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit

from scrapegate.core.logging import get_logger

from .store import MISSING, ResponseCache

logger = get_logger("cache")

ResponseType = Literal["json", "text"]
Handler = Callable[[Any], Awaitable[Any]]


class CacheTTL(IntEnum):
    """Route TTL policy in minutes."""

    LISTING = 5  # volatile listings (home, ongoing, search)
    DETAIL = 10  # anime/episode detail pages
    CATALOG = 30  # full catalogs, schedules
    STATIC = 60  # genre lists and other near-static pages


def cache_key(path: str, query: str = "") -> str:
    """Normalized key: collapsed path plus query params sorted by name."""
    normalized = "/" + "/".join(segment for segment in path.split("/") if segment)
    pairs = parse_qsl(query, keep_blank_values=True)
    if not pairs:
        return normalized
    pairs.sort(key=lambda pair: pair[0])
    return f"{normalized}?{urlencode(pairs)}"


def request_cache_key(request: Any) -> str:
    """Key for a request object exposing ``.url``, or a URL string."""
    url = getattr(request, "url", request)
    parts = urlsplit(str(url))
    return cache_key(parts.path, parts.query)


def is_successful(result: Any) -> bool:
    """True only for results carrying an explicit ``ok`` flag set to True."""
    if isinstance(result, Mapping):
        return result.get("ok") is True
    return getattr(result, "ok", None) is True


class CacheMiddleware:
    """Wrap an async handler with a read-through response cache.

    Only results carrying ``ok is True`` are stored, whatever the response
    type. A handler that returns a bare ``str`` is therefore never cached;
    text handlers return an envelope (e.g. ``Payload``) whose data is the text.
    ``response_type="text"`` only turns off the deep copies.
    """

    def __init__(
        self,
        handler: Handler,
        cache: ResponseCache,
        *,
        ttl_minutes: float | None = None,
        response_type: ResponseType = "json",
        key_func: Callable[[Any], str] = request_cache_key,
    ):
        """Initialize the wrapper.

        Args:
            handler: Downstream handler ``request -> result``
            cache: Shared response cache
            ttl_minutes: Entry lifetime; None uses the cache default, 0 disables storing
            response_type: "json" results are deep-copied in and out of the
                cache; "text" results are stored and returned as-is (no copy).
                Storing still requires ``ok is True``
            key_func: Builds the cache key from a request
        """
        if response_type not in ("json", "text"):
            raise ValueError(f"response_type must be 'json' or 'text', got {response_type!r}")
        self.handler = handler
        self.cache = cache
        self.response_type = response_type
        self.key_func = key_func
        self.ttl = cache.default_ttl if ttl_minutes is None else ttl_minutes * 60.0
        update_wrapper(self, handler)

    def _copy(self, value: Any) -> Any:
        if self.response_type == "json":
            return copy.deepcopy(value)
        return value

    async def __call__(self, request: Any) -> Any:
        key = self.key_func(request)

        cached = self.cache.get(key, MISSING)
        if cached is not MISSING:
            logger.debug("Cache hit for %s", key, extra={"cache_key": key})
            return self._copy(cached)

        result = await self.handler(request)

        if self.ttl > 0 and is_successful(result):
            self.cache.set(key, self._copy(result), ttl=self.ttl)
            logger.debug("Cached %s for %.0fs", key, self.ttl, extra={"cache_key": key})

        return result


def server_cache(
    cache: ResponseCache,
    ttl_minutes: float | None = None,
    response_type: ResponseType = "json",
    key_func: Callable[[Any], str] = request_cache_key,
) -> Callable[[Handler], CacheMiddleware]:
    """Decorator form of CacheMiddleware.

    Usage:
        @server_cache(cache, ttl_minutes=CacheTTL.DETAIL)
        async def anime_detail(request): ...
    """

    def decorator(handler: Handler) -> CacheMiddleware:
        return CacheMiddleware(
            handler,
            cache,
            ttl_minutes=ttl_minutes,
            response_type=response_type,
            key_func=key_func,
        )

    return decorator
