"""
Resilient HTTP fetcher using httpx.

One logical fetch runs a bounded tenacity loop of attempts. Each attempt:
- waits for a rate-limit token for the host
- builds rotated browser headers plus stored cookies
- executes with a per-attempt timeout, cancellable by the caller
- is classified as success, retryable failure or terminal failure

Terminal outcomes update the context's cookie jar and health metrics.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar
from urllib.parse import urljoin, urlsplit

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from scrapegate.core.config.models import FetchSettings
from scrapegate.core.errors import (
    FetchFailedError,
    FetchTimeoutError,
    RequestAbortedError,
    ScraperError,
    UpstreamConnectionError,
)
from scrapegate.core.logging import ContextualLogger, get_contextual_logger, get_logger

from .context import ScrapeContext
from .headers import build_request_headers
from .retries import (
    RETRYABLE_TRANSPORT_ERRORS,
    BackoffPolicy,
    RetryableStatusError,
    retry_async,
    wait_by_outcome,
)

logger = get_logger("fetch")

T = TypeVar("T")


@dataclass(frozen=True)
class FetchRequest:
    """One logical fetch. Unset numeric fields fall back to FetchSettings."""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | str | None = None
    site: str | None = None
    max_retries: int | None = None
    timeout_ms: int | None = None
    cookies_override: str | None = None
    abort_signal: asyncio.Event | None = None
    rps: float | None = None
    burst: int | None = None
    follow_redirects: bool = True


def host_of(url: str) -> str:
    """Host key (hostname[:port]) of an absolute http(s) URL.

    Raises:
        ScraperError: If the URL is not absolute http(s)
    """
    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise ScraperError(f"Invalid URL: {url}", url=url, cause=e) from e
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ScraperError(f"Invalid URL: {url}", url=url)
    return parts.netloc


def site_key(ref: str | None, url: str) -> str:
    """Site identifier for a request: hostname of the referer, else of the URL."""
    for candidate in (ref, url):
        if not candidate:
            continue
        try:
            hostname = urlsplit(candidate).hostname
        except ValueError:
            continue
        if hostname:
            return hostname
    return "unknown"


def resolve_redirect(location: str, base_url: str, site: str | None = None) -> str:
    """Resolve a Location header against the URL that produced it."""
    target = urljoin(base_url, location.strip())
    parts = urlsplit(target)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ScraperError(
            f"Invalid redirect URL: {location!r}",
            url=base_url,
            site=site,
        )
    return target


class Fetcher:
    """Fetches pages through the shared throttling/cookie/health context.

    Features:
    - Per-host token bucket throttling
    - User-Agent and Accept-Language rotation
    - Cookie persistence across requests
    - Retry with exponential backoff and jitter
    - Per-site health telemetry
    """

    def __init__(
        self,
        context: ScrapeContext | None = None,
        *,
        settings: FetchSettings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """Initialize the fetcher.

        Args:
            context: Shared state; a fresh one is created if omitted
            settings: Fetch defaults (retries, timeouts, rates, backoff)
            client: Preconfigured httpx client (closed by its owner)
            sleep: Coroutine used for backoff sleeps
            rng: Random source for backoff jitter
        """
        self.context = context or ScrapeContext()
        self.settings = settings or FetchSettings()
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._wait = wait_by_outcome(
            status=BackoffPolicy(self.settings.status_backoff_ms, self.settings.status_jitter_ms),
            network=BackoffPolicy(self.settings.network_backoff_ms, self.settings.network_jitter_ms),
            rng=rng,
        )

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout_s),
                follow_redirects=True,
                limits=httpx.Limits(
                    max_connections=self.settings.max_connections,
                    max_keepalive_connections=self.settings.max_keepalive_connections,
                ),
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Core fetch loop
    # ------------------------------------------------------------------

    async def fetch_response(self, request: FetchRequest) -> httpx.Response:
        """Fetch a URL, retrying throttled/failed attempts.

        Args:
            request: Request to send

        Returns:
            The successful httpx.Response

        Raises:
            FetchFailedError: Bad status (after retries for the retry set)
            FetchTimeoutError: Every attempt timed out
            UpstreamConnectionError: Every attempt failed at the network layer
            RequestAbortedError: The abort signal fired
            ScraperError: Any other unrecoverable failure
        """
        host = host_of(request.url)
        site = request.site or host
        log = get_contextual_logger("fetch", site=site, url=request.url)

        max_retries = self.settings.max_retries if request.max_retries is None else request.max_retries
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        timeout_ms = request.timeout_ms or self.settings.timeout_ms
        rps = request.rps or self.settings.rps
        burst = request.burst or self.settings.burst

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type((RetryableStatusError, *RETRYABLE_TRANSPORT_ERRORS)),
            sleep=partial(self._sleep_or_abort, request=request, site=site),
            before_sleep=partial(self._log_retry, log),
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    response = await self._attempt(
                        request,
                        host,
                        site,
                        attempt_number,
                        rps=rps,
                        burst=burst,
                        timeout_s=timeout_ms / 1000.0,
                    )
                    self._classify(response, request, site, attempt_number)
        except RetryableStatusError as e:
            raise self._fail(
                FetchFailedError(
                    f"Fetch failed with status {e.status}",
                    e.attempt,
                    status=e.status,
                    url=request.url,
                    site=site,
                ),
                log,
            ) from None
        except FetchFailedError as e:
            raise self._fail(e, log)
        except RequestAbortedError:
            log.info("Request aborted on attempt %d", attempt_number)
            raise
        except httpx.TimeoutException as e:
            raise self._fail(
                FetchTimeoutError(
                    f"Request timed out after {attempt_number} attempts",
                    url=request.url,
                    site=site,
                    cause=e,
                ),
                log,
            ) from e
        except RETRYABLE_TRANSPORT_ERRORS as e:
            raise self._fail(
                UpstreamConnectionError(
                    f"Transport error after {attempt_number} attempts: {e}",
                    url=request.url,
                    site=site,
                    cause=e,
                ),
                log,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise self._fail(
                ScraperError(f"Fetch failed: {e}", url=request.url, site=site, cause=e),
                log,
            ) from e

        self.context.cookie_jar.store_cookies(host, response)
        self.context.health.record_success(site)
        log.debug("Fetched %s in %d attempt(s)", response.status_code, attempt_number)
        return response

    async def _attempt(
        self,
        request: FetchRequest,
        host: str,
        site: str,
        attempt: int,
        *,
        rps: float,
        burst: int,
        timeout_s: float,
    ) -> httpx.Response:
        """Run a single attempt: throttle, build headers, send."""
        await self._abortable(self.context.rate_limiter.acquire(host, rps, burst), request, site)

        cookie_header = self.context.cookie_jar.build_cookie_header(host, request.cookies_override)
        headers = build_request_headers(
            request.url,
            host,
            attempt,
            self.context.user_agents,
            caller_headers=request.headers,
            cookie_header=cookie_header,
        )

        client = await self._ensure_client()
        return await self._abortable(
            self._send(client, request, headers, timeout_s),
            request,
            site,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        request: FetchRequest,
        headers: httpx.Headers,
        timeout_s: float,
    ) -> httpx.Response:
        """Send one request; ``timeout_s`` bounds the whole exchange, body included.

        httpx timeouts apply per phase, so a slowly trickled body would
        otherwise never expire.
        """
        try:
            return await asyncio.wait_for(
                client.request(
                    request.method.upper(),
                    request.url,
                    headers=headers,
                    content=request.body,
                    timeout=timeout_s,
                    follow_redirects=request.follow_redirects,
                ),
                timeout_s,
            )
        except asyncio.TimeoutError:
            raise httpx.ReadTimeout(f"No complete response within {timeout_s:.2f}s") from None

    def _classify(self, response: httpx.Response, request: FetchRequest, site: str, attempt: int) -> None:
        """Raise for retryable or terminal statuses; return quietly on success."""
        if response.status_code in self.settings.retry_statuses:
            raise RetryableStatusError(response, attempt)

        redirect_ok = not request.follow_redirects and response.is_redirect
        if not (response.is_success or redirect_ok):
            raise FetchFailedError(
                f"Fetch failed with status {response.status_code}",
                attempt,
                status=response.status_code,
                url=request.url,
                site=site,
            )

    def _fail(self, error: ScraperError, log: ContextualLogger) -> ScraperError:
        """Record a terminal failure and hand the error back for raising."""
        self.context.health.record_failure(
            error.site or "unknown",
            status=error.status,
            message=error.message,
            url=error.url,
        )
        log.warning("%s", error.message, extra={"status": error.status})
        return error

    def _log_retry(self, log: ContextualLogger, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        reason = f"status {exc.status}" if isinstance(exc, RetryableStatusError) else type(exc).__name__
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        log.warning(
            "Attempt %d failed (%s), retrying in %.2fs",
            retry_state.attempt_number,
            reason,
            wait,
            extra={"attempt": retry_state.attempt_number},
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def _abortable(self, aw: Awaitable[T], request: FetchRequest, site: str) -> T:
        """Await ``aw`` unless the request's abort signal fires first."""
        signal = request.abort_signal
        if signal is None:
            return await aw

        task = asyncio.ensure_future(aw)
        if signal.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise RequestAbortedError("Request aborted", url=request.url, site=site)

        waiter = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()

        await asyncio.gather(task, return_exceptions=True)
        raise RequestAbortedError("Request aborted", url=request.url, site=site)

    async def _sleep_or_abort(self, seconds: float, *, request: FetchRequest, site: str) -> None:
        await self._abortable(self._sleep(seconds), request, site)
        if request.abort_signal is not None and request.abort_signal.is_set():
            raise RequestAbortedError("Request aborted during backoff", url=request.url, site=site)

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def fetch_html(self, request: FetchRequest) -> str:
        """Fetch and return the decoded text body."""
        response = await self.fetch_response(request)
        return response.text

    async def get_final_url(
        self,
        url: str,
        ref: str | None = None,
        *,
        headers: Mapping[str, str] | None = None,
        cookies: str | None = None,
        site: str | None = None,
        method: str = "HEAD",
        max_retries: int = 2,
        timeout_ms: int | None = None,
        abort_signal: asyncio.Event | None = None,
    ) -> str:
        """Resolve one redirect hop without following it.

        Returns:
            The Location target resolved against ``url``, or ``url`` itself
            when the upstream did not redirect
        """
        request_headers = httpx.Headers(headers or {})
        if ref and "referer" not in request_headers:
            request_headers["Referer"] = ref
        site = site or site_key(ref, url)

        response = await self.fetch_response(
            FetchRequest(
                url=url,
                method=method,
                headers=request_headers,
                site=site,
                max_retries=max_retries,
                timeout_ms=timeout_ms,
                cookies_override=cookies,
                abort_signal=abort_signal,
                follow_redirects=False,
            )
        )

        location = response.headers.get("location")
        if location:
            return resolve_redirect(location, url, site)
        return str(response.url) or url

    async def get_final_urls(
        self,
        urls: Iterable[str],
        ref: str | None = None,
        *,
        retries: int = 3,
        delay: float = 1.0,
        **kwargs: Any,
    ) -> list[str]:
        """Resolve a batch of URLs concurrently.

        Each URL gets up to ``retries`` tries with a fixed ``delay``. A URL
        that still fails yields ``""``; the rest of the batch is unaffected.
        """

        async def resolve(url: str) -> str:
            try:
                return await retry_async(
                    self.get_final_url,
                    url,
                    ref,
                    attempts=retries,
                    delay=delay,
                    retry_on=(ScraperError,),
                    sleep=self._sleep,
                    **kwargs,
                )
            except ScraperError as e:
                logger.warning("Could not resolve %s: %s", url, e.message, extra={"url": url})
                return ""

        return list(await asyncio.gather(*(resolve(url) for url in urls)))
