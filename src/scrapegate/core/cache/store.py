"""
In-memory response cache with TTL and LRU size eviction.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable


# Sentinel distinguishing a miss from a stored None
MISSING: Any = object()


@dataclass
class CacheEntry:
    """A stored value and the monotonic time it stops being served."""

    key: Hashable
    value: Any
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    size: int


class ResponseCache:
    """Bounded TTL cache.

    An entry leaves the cache when its TTL runs out or when it is the
    least recently used entry and the cache is full, whichever comes first.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_entries: Entries kept before LRU eviction
            default_ttl: Seconds an entry lives when ``set`` gets no TTL
            clock: Monotonic time source in seconds
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return a live value and mark it recently used, else ``default``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if not entry.is_live(self._clock()):
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return default
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` for ``ttl`` seconds (default TTL when None).

        A non-positive TTL stores nothing.
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return

        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=now + ttl)
            self._entries.move_to_end(key)

            if len(self._entries) > self.max_entries:
                self._purge_expired(now)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._purge_expired(self._clock())

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
        for key in expired:
            del self._entries[key]
        self._evictions += len(expired)
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
            )

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.is_live(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
