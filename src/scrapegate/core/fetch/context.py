"""
Shared fetch state bundled into one explicitly constructed object.

Each process (or test) builds its own context and hands it to the Fetcher,
so there is no hidden module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .cookies import CookieJar
from .headers import UserAgentRotator
from .health import HealthMetrics
from .throttling import RateLimiter


@dataclass
class ScrapeContext:
    """Rate buckets, cookies, health records and UA rotation state."""

    rate_limiter: RateLimiter = field(default_factory=RateLimiter)
    cookie_jar: CookieJar = field(default_factory=CookieJar)
    health: HealthMetrics = field(default_factory=HealthMetrics)
    user_agents: UserAgentRotator = field(default_factory=UserAgentRotator)

    def reset(self, host: str | None = None) -> None:
        """Drop throttling, cookie and rotation state (for one host, or all).

        Health history is kept unless the whole context is reset, since it
        is keyed by site rather than host.
        """
        self.rate_limiter.reset(host)
        self.cookie_jar.clear(host)
        self.user_agents.reset(host)
        if host is None:
            self.health.reset()
