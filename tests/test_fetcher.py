# tests/test_fetcher.py
from __future__ import annotations

import asyncio
import time

import brotli
import httpx
import pytest
import respx
from httpx import Response

from scrapegate.core.errors import (
    ErrorKind,
    FetchFailedError,
    FetchTimeoutError,
    RequestAbortedError,
    ScraperError,
    UpstreamConnectionError,
)
from scrapegate.core.fetch import FetchRequest, Fetcher, host_of, resolve_redirect, site_key

URL = "https://example.com/ongoing/"


def _run(fetcher: Fetcher, request: FetchRequest):
    async def go():
        try:
            return await fetcher.fetch_response(request)
        finally:
            await fetcher.close()

    return asyncio.run(go())


# ------------------------------------ success ----------------------------------------


@respx.mock
def test_success_records_health(fetcher, context):
    route = respx.get(URL).mock(return_value=Response(200, text="<html>ok</html>"))

    response = _run(fetcher, FetchRequest(URL))

    assert response.status_code == 200
    assert response.text == "<html>ok</html>"
    assert route.call_count == 1
    health = context.health.get("example.com")
    assert health.last_success is not None
    assert health.consecutive_failures == 0


@respx.mock
def test_request_carries_browser_headers(fetcher):
    route = respx.get(URL).mock(return_value=Response(200))

    _run(fetcher, FetchRequest(URL, headers={"X-Test": "1"}))

    sent = route.calls.last.request.headers
    assert sent["referer"] == "https://example.com/"
    assert sent["x-test"] == "1"
    assert "mozilla" in sent["user-agent"].lower()


@respx.mock
def test_fetch_html_returns_text(fetcher):
    respx.get(URL).mock(return_value=Response(200, text="hello"))

    async def go():
        try:
            return await fetcher.fetch_html(FetchRequest(URL))
        finally:
            await fetcher.close()

    assert asyncio.run(go()) == "hello"


# ------------------------------------ retries ----------------------------------------


@respx.mock
def test_retryable_status_exhausts_budget(fetcher, context, sleeps):
    route = respx.get(URL).mock(return_value=Response(503))

    with pytest.raises(FetchFailedError) as exc_info:
        _run(fetcher, FetchRequest(URL, max_retries=2))

    err = exc_info.value
    assert route.call_count == 3
    assert err.attempt == 3
    assert err.status == 503
    assert err.kind is ErrorKind.RETRYABLE_HTTP
    assert len(sleeps.recorded) == 2

    health = context.health.get("example.com")
    assert health.consecutive_failures == 1
    assert health.last_error.status == 503
    assert health.last_error.url == URL


@respx.mock
def test_throttled_then_success_backs_off_exponentially(fetcher, context, sleeps):
    route = respx.get(URL).mock(side_effect=[Response(429), Response(429), Response(200)])

    response = _run(fetcher, FetchRequest(URL, max_retries=3))

    assert response.status_code == 200
    assert route.call_count == 3
    first, second = sleeps.recorded
    assert 0.5 <= first <= 0.75
    assert 1.0 <= second <= 1.25
    assert context.health.get("example.com").consecutive_failures == 0


@respx.mock
def test_attempts_rotate_accept_language(fetcher):
    route = respx.get(URL).mock(side_effect=[Response(503), Response(200)])

    _run(fetcher, FetchRequest(URL))

    languages = [call.request.headers["accept-language"] for call in route.calls]
    assert languages[0] != languages[1]


@respx.mock
def test_zero_retries_means_single_attempt(fetcher, sleeps):
    route = respx.get(URL).mock(return_value=Response(502))

    with pytest.raises(FetchFailedError) as exc_info:
        _run(fetcher, FetchRequest(URL, max_retries=0))

    assert route.call_count == 1
    assert exc_info.value.attempt == 1
    assert sleeps.recorded == []


@respx.mock
def test_not_found_is_fatal_immediately(fetcher, context, sleeps):
    route = respx.get(URL).mock(return_value=Response(404))

    with pytest.raises(FetchFailedError) as exc_info:
        _run(fetcher, FetchRequest(URL, max_retries=3))

    err = exc_info.value
    assert route.call_count == 1
    assert err.kind is ErrorKind.HTTP
    assert err.http_status == 404
    assert sleeps.recorded == []
    assert context.health.get("example.com").last_error.status == 404


@respx.mock
def test_timeouts_retry_then_fail(fetcher, context, sleeps):
    route = respx.get(URL).mock(side_effect=httpx.ConnectTimeout("slow"))

    with pytest.raises(FetchTimeoutError) as exc_info:
        _run(fetcher, FetchRequest(URL, max_retries=1))

    assert route.call_count == 2
    assert exc_info.value.kind is ErrorKind.TIMEOUT
    assert exc_info.value.http_status == 504
    # network backoff: 300ms base plus up to 150ms jitter
    assert len(sleeps.recorded) == 1
    assert 0.3 <= sleeps.recorded[0] <= 0.45
    assert context.health.get("example.com").consecutive_failures == 1


@respx.mock
def test_connection_errors_map_to_network_kind(fetcher):
    respx.get(URL).mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(UpstreamConnectionError) as exc_info:
        _run(fetcher, FetchRequest(URL, max_retries=1))

    assert exc_info.value.kind is ErrorKind.NETWORK
    assert isinstance(exc_info.value.cause, httpx.ConnectError)


@respx.mock
def test_network_error_then_success(fetcher):
    route = respx.get(URL).mock(side_effect=[httpx.ReadError("reset"), Response(200)])

    response = _run(fetcher, FetchRequest(URL))

    assert response.status_code == 200
    assert route.call_count == 2


def test_negative_retries_rejected(fetcher):
    with pytest.raises(ValueError):
        _run(fetcher, FetchRequest(URL, max_retries=-1))


def test_invalid_url_rejected(fetcher, context):
    with pytest.raises(ScraperError):
        _run(fetcher, FetchRequest("ftp://example.com/file"))
    assert context.health.get_all() == {}


# ------------------------------------ cookies ----------------------------------------


@respx.mock
def test_set_cookie_is_replayed(fetcher, context):
    route = respx.get(URL).mock(
        side_effect=[
            Response(200, headers=[("set-cookie", "sid=abc; Path=/"), ("set-cookie", "lang=id")]),
            Response(200),
        ]
    )

    async def go():
        try:
            await fetcher.fetch_response(FetchRequest(URL))
            await fetcher.fetch_response(FetchRequest(URL, cookies_override="cf_clearance=xyz"))
        finally:
            await fetcher.close()

    asyncio.run(go())

    assert "cookie" not in route.calls[0].request.headers
    assert route.calls[1].request.headers["cookie"] == "sid=abc; lang=id; cf_clearance=xyz"
    assert context.cookie_jar.get("example.com") == {"sid": "abc", "lang": "id"}


# ------------------------------------ aborts -----------------------------------------


@respx.mock
def test_abort_before_start(fetcher, context):
    route = respx.get(URL).mock(return_value=Response(200))
    signal = asyncio.Event()
    signal.set()

    with pytest.raises(RequestAbortedError) as exc_info:
        _run(fetcher, FetchRequest(URL, abort_signal=signal))

    assert exc_info.value.kind is ErrorKind.ABORTED
    assert route.call_count == 0
    assert context.health.get_all() == {}


@respx.mock
def test_abort_during_backoff(context, settings):
    route = respx.get(URL).mock(return_value=Response(503))
    signal = asyncio.Event()

    async def sleep_then_abort(dt: float) -> None:
        signal.set()

    fetcher = Fetcher(context, settings=settings, sleep=sleep_then_abort)

    with pytest.raises(RequestAbortedError):
        _run(fetcher, FetchRequest(URL, max_retries=3, abort_signal=signal))

    assert route.call_count == 1
    assert context.health.get_all() == {}


# ------------------------------------ helpers ----------------------------------------


def test_host_of():
    assert host_of("https://example.com:8443/a") == "example.com:8443"
    with pytest.raises(ScraperError):
        host_of("/relative/path")


def test_site_key_prefers_referer():
    assert site_key("https://otakudesu.cloud/", "https://cdn.example/x") == "otakudesu.cloud"
    assert site_key(None, "https://cdn.example/x") == "cdn.example"
    assert site_key(None, "not a url") == "unknown"


def test_resolve_redirect():
    assert resolve_redirect("/b", "https://example.com/a/") == "https://example.com/b"
    assert resolve_redirect("https://cdn.example/v.mp4", "https://example.com/a") == "https://cdn.example/v.mp4"
    with pytest.raises(ScraperError):
        resolve_redirect("javascript:alert(1)", "https://example.com/a")


def test_context_reset_scopes(context):
    asyncio.run(context.rate_limiter.acquire("example.com", 1, 1))
    context.cookie_jar.store_cookies("example.com", ["a=1"])
    context.health.record_success("example.com")

    context.reset("example.com")
    assert context.rate_limiter.snapshot("example.com") is None
    assert context.cookie_jar.get("example.com") == {}
    assert "example.com" in context.health.get_all()

    context.reset()
    assert context.health.get_all() == {}


# ------------------------------------ deadlines & encodings --------------------------


async def _trickle_body(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    """Send headers at once, then one body byte every 0.3s."""
    await reader.readuntil(b"\r\n\r\n")
    writer.write(b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\nContent-Length: 10\r\n\r\n")
    try:
        await writer.drain()
        for _ in range(10):
            await asyncio.sleep(0.3)
            writer.write(b"x")
            await writer.drain()
    except ConnectionError:
        pass
    finally:
        writer.close()


def test_timeout_bounds_whole_attempt_including_body(context, settings, sleeps):
    async def go():
        server = await asyncio.start_server(_trickle_body, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        client = httpx.AsyncClient(trust_env=False)
        fetcher = Fetcher(context, settings=settings, client=client, sleep=sleeps.sleep)
        started = time.monotonic()
        try:
            with pytest.raises(FetchTimeoutError):
                await fetcher.fetch_html(
                    FetchRequest(
                        f"http://127.0.0.1:{port}/slow", site="slow", max_retries=0, timeout_ms=500
                    )
                )
            return time.monotonic() - started
        finally:
            await client.aclose()
            server.close()

    elapsed = asyncio.run(go())

    assert elapsed < 1.0
    health = context.health.get("slow")
    assert health.consecutive_failures == 1
    assert health.last_error.status is None


@respx.mock
def test_brotli_body_is_decoded(fetcher):
    route = respx.get(URL).mock(
        return_value=Response(
            200,
            content=brotli.compress("<p>grüße</p>".encode("utf-8")),
            headers={"content-encoding": "br", "content-type": "text/html; charset=utf-8"},
        )
    )

    response = _run(fetcher, FetchRequest(URL))

    assert response.text == "<p>grüße</p>"
    assert "br" in route.calls.last.request.headers["accept-encoding"]


@respx.mock
def test_abort_while_request_in_flight(fetcher, context):
    signal = asyncio.Event()
    started_requests = []

    async def slow(request):
        started_requests.append(request)
        await asyncio.sleep(5)
        return Response(200, text="late")

    respx.get(URL).mock(side_effect=slow)

    async def go():
        asyncio.get_running_loop().call_later(0.05, signal.set)
        try:
            return await fetcher.fetch_html(FetchRequest(URL, abort_signal=signal))
        finally:
            await fetcher.close()

    started = time.monotonic()
    with pytest.raises(RequestAbortedError):
        asyncio.run(go())

    assert time.monotonic() - started < 2
    assert len(started_requests) == 1
    assert context.health.get_all() == {}

