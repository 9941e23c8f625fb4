"""
Per-host cookie store.

Cookies set by upstream responses are kept per host and replayed on later
requests. Entries never expire; clearing the jar (or restarting the process)
is the way to drop them.
"""

from __future__ import annotations

import re
import threading
from typing import Any, Iterable

# Split a folded Set-Cookie value only where a comma starts a new name=value
# pair, never inside attribute values such as "Expires=Wed, 21 Oct 2015".
_SET_COOKIE_SPLIT = re.compile(r",\s*(?=[^;,\s=]+=)")


def parse_cookie_string(raw: str) -> list[tuple[str, str]]:
    """Parse a request-style ``"k=v; k2=v2"`` string into pairs."""
    pairs: list[tuple[str, str]] = []
    for part in raw.split(";"):
        part = part.strip()
        if not part:
            continue
        name, _, value = part.partition("=")
        name = name.strip()
        if not name:
            continue
        pairs.append((name, value.strip()))
    return pairs


def parse_set_cookie(raw: str) -> tuple[str, str] | None:
    """Extract ``(name, value)`` from one Set-Cookie line, or None if malformed."""
    pair = raw.split(";", 1)[0].strip()
    name, sep, value = pair.partition("=")
    name = name.strip()
    if not sep or not name:
        return None
    return name, value.strip()


def split_set_cookie(raw: str) -> list[str]:
    """Split a comma-joined Set-Cookie header into individual cookies."""
    return [part.strip() for part in _SET_COOKIE_SPLIT.split(raw) if part.strip()]


def _set_cookie_values(source: Any) -> list[str]:
    """Collect raw Set-Cookie strings from a response, headers, list or string."""
    if source is None:
        return []
    if isinstance(source, str):
        raw_values: Iterable[str] = [source]
    elif hasattr(source, "get_list"):
        raw_values = source.get_list("set-cookie")
    elif hasattr(source, "headers"):
        return _set_cookie_values(source.headers)
    else:
        raw_values = list(source)

    values: list[str] = []
    for raw in raw_values:
        values.extend(split_set_cookie(raw))
    return values


class CookieJar:
    """Cookie accumulation keyed by host."""

    def __init__(self) -> None:
        self._store: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def build_cookie_header(self, host: str, override: str | None = None) -> str | None:
        """Build the Cookie header for a request to ``host``.

        Stored cookies come first; ``override`` pairs replace stored values
        with the same name.

        Returns:
            ``"name=value; ..."`` or None when there is nothing to send
        """
        with self._lock:
            merged = dict(self._store.get(host, {}))

        if override:
            for name, value in parse_cookie_string(override):
                merged[name] = value

        if not merged:
            return None

        return "; ".join(f"{name}={value}" for name, value in merged.items())

    def store_cookies(self, host: str, response: Any) -> int:
        """Upsert every Set-Cookie pair carried by ``response``.

        Args:
            host: Host key the response came from
            response: httpx.Response, httpx.Headers, a list of Set-Cookie
                strings, or one comma-joined string

        Returns:
            Number of cookies stored
        """
        pairs = [
            pair
            for pair in (parse_set_cookie(raw) for raw in _set_cookie_values(response))
            if pair is not None
        ]
        if not pairs:
            return 0

        with self._lock:
            store = self._store.setdefault(host, {})
            for name, value in pairs:
                store[name] = value

        return len(pairs)

    def get(self, host: str) -> dict[str, str]:
        """Copy of the cookies stored for a host."""
        with self._lock:
            return dict(self._store.get(host, {}))

    def clear(self, host: str | None = None) -> None:
        """Clear stored cookies.

        Args:
            host: Specific host to clear, or None for all
        """
        with self._lock:
            if host:
                self._store.pop(host, None)
            else:
                self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
