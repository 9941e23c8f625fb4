"""
Browser-like request headers with per-host rotation.
"""

from __future__ import annotations

import random
import threading
from typing import Mapping, Sequence
from urllib.parse import urlsplit

import httpx


# Common user agents for rotation
USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_5_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.6 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.6261.128 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:124.0) Gecko/20100101 Firefox/124.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1",
)

ACCEPT_LANGUAGES = (
    "en-US,en;q=0.9,id;q=0.8",
    "en-GB,en;q=0.9,id;q=0.8",
    "en-US,en;q=0.8,ja;q=0.6",
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


class UserAgentRotator:
    """Round-robin user agent choice per host, starting at a random slot."""

    def __init__(
        self,
        pool: Sequence[str] = USER_AGENTS,
        rng: random.Random | None = None,
    ):
        if not pool:
            raise ValueError("User agent pool must not be empty")
        self.pool = tuple(pool)
        self._rng = rng or random.Random()
        self._next: dict[str, int] = {}
        self._lock = threading.Lock()

    def choose(self, host: str) -> str:
        with self._lock:
            index = self._next.get(host)
            if index is None:
                index = self._rng.randrange(len(self.pool))
            self._next[host] = (index + 1) % len(self.pool)
        return self.pool[index % len(self.pool)]

    def reset(self, host: str | None = None) -> None:
        with self._lock:
            if host:
                self._next.pop(host, None)
            else:
                self._next.clear()


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def build_request_headers(
    url: str,
    host: str,
    attempt: int,
    rotator: UserAgentRotator,
    caller_headers: Mapping[str, str] | None = None,
    cookie_header: str | None = None,
    accept_languages: Sequence[str] = ACCEPT_LANGUAGES,
) -> httpx.Headers:
    """Assemble headers for one attempt.

    Caller headers win over every default. The user agent only rotates
    when the caller did not pin one.
    """
    caller = httpx.Headers(caller_headers or {})

    headers = httpx.Headers(DEFAULT_HEADERS)
    headers["User-Agent"] = caller.get("User-Agent") or rotator.choose(host)
    headers["Accept-Language"] = accept_languages[attempt % len(accept_languages)]
    headers["Referer"] = f"{origin_of(url)}/"
    headers.update(caller)

    if cookie_header:
        headers["Cookie"] = cookie_header

    return headers
