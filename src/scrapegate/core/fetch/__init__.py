"""Fetch utilities - throttling, cookies, retries, health."""

from .context import ScrapeContext
from .cookies import CookieJar
from .fetcher import FetchRequest, Fetcher, host_of, resolve_redirect, site_key
from .headers import UserAgentRotator, build_request_headers
from .health import HealthMetrics, HealthSnapshot, LastError
from .retries import BackoffPolicy, retry_async
from .throttling import RateLimiter

__all__ = [
    "BackoffPolicy",
    "CookieJar",
    "FetchRequest",
    "Fetcher",
    "HealthMetrics",
    "HealthSnapshot",
    "LastError",
    "RateLimiter",
    "ScrapeContext",
    "UserAgentRotator",
    "build_request_headers",
    "host_of",
    "resolve_redirect",
    "retry_async",
    "site_key",
]
