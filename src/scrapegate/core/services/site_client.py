"""
Site-aware client on top of the Fetcher.

Applies per-site configuration to every request:
- configured cookies (e.g. a Cloudflare clearance cookie) merged with any
  Cookie header the caller passes
- per-site rate limit overrides
- health records keyed by the configured site name

and adds the request conveniences route handlers need: query params,
JSON bodies, typed response decoding, and fetch-then-parse.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Literal, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import orjson

from scrapegate.core.config.models import AppConfig, SiteConfig
from scrapegate.core.errors import ScraperError
from scrapegate.core.extract.base import Parser
from scrapegate.core.fetch.context import ScrapeContext
from scrapegate.core.fetch.fetcher import FetchRequest, Fetcher, site_key
from scrapegate.core.logging import get_logger

from .payload import Payload

logger = get_logger("site_client")

ResponseType = Literal["text", "json", "bytes"]


def append_params(url: str, params: Mapping[str, Any] | None = None) -> str:
    """Set query parameters on ``url``; None values are skipped."""
    if not params:
        return url

    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if value is None:
            continue
        query[key] = str(value)

    return urlunsplit(parts._replace(query=urlencode(query)))


def join_cookies(*parts: str | None) -> str | None:
    """Join raw cookie strings with "; ", skipping empty parts."""
    value = "; ".join(part.strip() for part in parts if part and part.strip())
    return value or None


def build_body(method: str, data: Any, headers: httpx.Headers) -> bytes | str | None:
    """Serialize request data; mappings and lists are sent as JSON."""
    if method.upper() in ("GET", "HEAD") or data is None:
        return None
    if isinstance(data, (str, bytes)):
        return data
    if "content-type" not in headers:
        headers["Content-Type"] = "application/json"
    return orjson.dumps(data)


class SiteClient:
    """Fetch pages from configured sites."""

    def __init__(self, fetcher: Fetcher, sites: Iterable[SiteConfig] = ()):
        self.fetcher = fetcher
        self._sites: dict[str, SiteConfig] = {}
        for site in sites:
            # First registration of a host wins
            self._sites.setdefault(site.host, site)

    @classmethod
    def from_config(cls, config: AppConfig, context: ScrapeContext | None = None) -> "SiteClient":
        return cls(Fetcher(context, settings=config.fetch), config.sites)

    async def close(self) -> None:
        await self.fetcher.close()

    async def __aenter__(self) -> "SiteClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def site_for(self, url: str, ref: str | None = None) -> SiteConfig | None:
        """Configured site for the URL's host, else for the referer's host."""
        for candidate in (url, ref):
            if not candidate:
                continue
            try:
                host = urlsplit(candidate).netloc
            except ValueError:
                continue
            if host in self._sites:
                return self._sites[host]
        return None

    def _prepare(
        self,
        url: str,
        ref: str | None,
        headers: Mapping[str, str] | None,
    ) -> tuple[httpx.Headers, SiteConfig | None, str, str | None]:
        """Headers without Cookie, site config, site key and cookie override."""
        request_headers = httpx.Headers(headers or {})
        if ref and "referer" not in request_headers:
            request_headers["Referer"] = ref

        header_cookie = request_headers.get("cookie")
        if header_cookie is not None:
            del request_headers["cookie"]

        site = self.site_for(url, ref)
        name = site.name if site else site_key(ref, url)
        cookies = join_cookies(site.cookies if site else None, header_cookie)
        return request_headers, site, name, cookies

    async def fetch(
        self,
        url: str,
        ref: str | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        method: str = "GET",
        data: Any = None,
        response_type: ResponseType = "text",
        timeout_ms: int | None = None,
        max_retries: int | None = 3,
        abort_signal: asyncio.Event | None = None,
    ) -> Any:
        """Fetch a page and decode it.

        Returns:
            ``str`` for "text", parsed JSON for "json", ``bytes`` for "bytes"
        """
        final_url = append_params(url, params)
        request_headers, site, name, cookies = self._prepare(final_url, ref, headers)
        body = build_body(method, data, request_headers)

        response = await self.fetcher.fetch_response(
            FetchRequest(
                url=final_url,
                method=method.upper(),
                headers=request_headers,
                body=body,
                site=name,
                max_retries=max_retries,
                timeout_ms=timeout_ms,
                cookies_override=cookies,
                abort_signal=abort_signal,
                rps=site.rps if site else None,
                burst=site.burst if site else None,
            )
        )
        return self._decode(response, response_type, name)

    def _decode(self, response: httpx.Response, response_type: ResponseType, site: str) -> Any:
        if response_type == "bytes":
            return response.content
        if response_type == "json":
            try:
                return response.json()
            except ValueError as e:
                raise ScraperError(
                    "Upstream returned invalid JSON",
                    status=response.status_code,
                    url=str(response.url),
                    site=site,
                    cause=e,
                ) from e
        return response.text

    async def get_final_urls(
        self,
        urls: Iterable[str],
        ref: str | None = None,
        *,
        headers: Mapping[str, str] | None = None,
        retries: int = 3,
        delay: float = 1.0,
    ) -> list[str]:
        """Resolve redirect targets for a batch, sending the referer site's cookies."""
        urls = list(urls)
        anchor = ref or (urls[0] if urls else "")
        request_headers, _, name, cookies = self._prepare(anchor, ref, headers)
        return await self.fetcher.get_final_urls(
            urls,
            ref,
            retries=retries,
            delay=delay,
            headers=request_headers,
            cookies=cookies,
            site=name,
        )

    async def scrape(
        self,
        url: str,
        ref: str | None,
        parser: Parser,
        **kwargs: Any,
    ) -> Payload:
        """Fetch a page and run it through a parser.

        Fetch and selector errors propagate to the caller.
        """
        html = await self.fetch(url, ref, **kwargs)
        data = parser.parse(html, url=url)
        logger.debug("Parsed %s with %s selectors %s", url, parser.site, parser.version)
        return Payload.success(data, source_url=url)
