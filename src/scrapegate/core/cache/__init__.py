"""Response caching - TTL/LRU store and read-through handler wrapper."""

from scrapegate.core.config.models import CacheSettings

from .middleware import (
    CacheMiddleware,
    CacheTTL,
    cache_key,
    is_successful,
    request_cache_key,
    server_cache,
)
from .store import CacheStats, ResponseCache


def create_cache(settings: CacheSettings | None = None) -> ResponseCache:
    """Build a ResponseCache from configuration."""
    settings = settings or CacheSettings()
    return ResponseCache(
        max_entries=settings.max_entries,
        default_ttl=settings.default_ttl_minutes * 60.0,
    )


__all__ = [
    "CacheMiddleware",
    "CacheStats",
    "CacheTTL",
    "ResponseCache",
    "cache_key",
    "create_cache",
    "is_successful",
    "request_cache_key",
    "server_cache",
]
