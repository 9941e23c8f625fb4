"""
Error taxonomy shared by the fetcher, parsers and route layers.

Every failure carries an explicit ``ErrorKind`` tag so callers can branch
on the kind instead of probing arbitrary attributes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


# Statuses the fetcher retries before giving up
RETRYABLE_STATUSES = frozenset({403, 429, 500, 502, 503, 504})


class ErrorKind(str, Enum):
    """Normalized failure kinds."""

    RETRYABLE_HTTP = "retryable_http"  # retry-set status, budget exhausted
    HTTP = "http"  # bad status outside the retry set
    TIMEOUT = "timeout"
    NETWORK = "network"
    ABORTED = "aborted"  # cancelled by the caller
    FATAL = "fatal"
    SELECTOR = "selector"  # page structure did not match


# Transport-level status a route layer should answer with, per kind
_KIND_HTTP_STATUS = {
    ErrorKind.RETRYABLE_HTTP: 502,
    ErrorKind.HTTP: 502,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK: 502,
    ErrorKind.ABORTED: 499,
    ErrorKind.FATAL: 500,
    ErrorKind.SELECTOR: 502,
}


class ScraperError(Exception):
    """Base exception for all scraping failures."""

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        url: str | None = None,
        site: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.url = url
        self.site = site
        self.cause = cause

    @property
    def retryable(self) -> bool:
        """Whether the fetcher would retry this failure while budget remains."""
        return self.kind in (ErrorKind.RETRYABLE_HTTP, ErrorKind.TIMEOUT, ErrorKind.NETWORK)

    @property
    def http_status(self) -> int:
        """Status a route layer should return to its own caller.

        Upstream 404s are passed through; everything else maps by kind.
        """
        if self.kind is ErrorKind.HTTP and self.status == 404:
            return 404
        return _KIND_HTTP_STATUS[self.kind]

    def to_dict(self) -> dict[str, Any]:
        """Caller-safe representation (no traceback, no cookies)."""
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.site is not None:
            data["site"] = self.site
        if self.url is not None:
            data["url"] = self.url
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, status={self.status}, site={self.site!r})"


class FetchFailedError(ScraperError):
    """Upstream answered with a bad status and no retries remain."""

    def __init__(
        self,
        message: str,
        attempt: int,
        *,
        status: int | None = None,
        url: str | None = None,
        site: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message, status=status, url=url, site=site, cause=cause)
        self.attempt = attempt

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        if self.status in RETRYABLE_STATUSES:
            return ErrorKind.RETRYABLE_HTTP
        return ErrorKind.HTTP

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempt"] = self.attempt
        return data


class FetchTimeoutError(ScraperError):
    """Every attempt timed out."""

    kind = ErrorKind.TIMEOUT


class UpstreamConnectionError(ScraperError):
    """Every attempt failed at the network layer."""

    kind = ErrorKind.NETWORK


class RequestAbortedError(ScraperError):
    """The caller's abort signal fired."""

    kind = ErrorKind.ABORTED


class SelectorError(ScraperError):
    """Expected structure is missing from a page.

    Bumping the site's selector version is the usual remediation once the
    new markup has been mapped.
    """

    kind = ErrorKind.SELECTOR

    def __init__(
        self,
        message: str,
        selector: str,
        version: str,
        *,
        site: str | None = None,
        url: str | None = None,
    ):
        super().__init__(message, site=site, url=url)
        self.selector = selector
        self.version = version

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["selector"] = self.selector
        data["version"] = self.version
        return data
