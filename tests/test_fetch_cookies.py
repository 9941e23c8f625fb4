# tests/test_fetch_cookies.py
from __future__ import annotations

import httpx

from scrapegate.core.fetch import CookieJar
from scrapegate.core.fetch.cookies import parse_cookie_string, parse_set_cookie, split_set_cookie


def test_empty_jar_has_no_header():
    assert CookieJar().build_cookie_header("example.com") is None


def test_store_and_replay_in_insertion_order():
    jar = CookieJar()
    stored = jar.store_cookies("example.com", ["a=1; Path=/; HttpOnly", "b=2"])
    assert stored == 2
    assert jar.build_cookie_header("example.com") == "a=1; b=2"
    # deterministic for unchanged state
    assert jar.build_cookie_header("example.com") == "a=1; b=2"


def test_later_cookie_replaces_same_name():
    jar = CookieJar()
    jar.store_cookies("example.com", ["a=1", "b=2"])
    jar.store_cookies("example.com", ["a=3"])
    assert jar.build_cookie_header("example.com") == "a=3; b=2"


def test_override_wins_over_stored():
    jar = CookieJar()
    jar.store_cookies("example.com", ["a=1", "b=2"])
    header = jar.build_cookie_header("example.com", "b=9; cf_clearance=xyz")
    assert header == "a=1; b=9; cf_clearance=xyz"
    # overrides are per-request only
    assert jar.get("example.com") == {"a": "1", "b": "2"}


def test_hosts_do_not_share_cookies():
    jar = CookieJar()
    jar.store_cookies("a.example", ["a=1"])
    assert jar.build_cookie_header("b.example") is None


def test_comma_joined_header_keeps_expires_dates():
    raw = "a=1; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Path=/, b=2; Max-Age=60"
    assert split_set_cookie(raw) == [
        "a=1; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Path=/",
        "b=2; Max-Age=60",
    ]
    jar = CookieJar()
    assert jar.store_cookies("example.com", raw) == 2
    assert jar.get("example.com") == {"a": "1", "b": "2"}


def test_malformed_entries_are_ignored():
    jar = CookieJar()
    stored = jar.store_cookies("example.com", ["novalue", "=orphan", "ok=1"])
    assert stored == 1
    assert jar.get("example.com") == {"ok": "1"}


def test_reads_set_cookie_from_httpx_response():
    response = httpx.Response(
        200,
        headers=[("set-cookie", "sid=abc; Path=/"), ("set-cookie", "theme=dark")],
    )
    jar = CookieJar()
    assert jar.store_cookies("example.com", response) == 2
    assert jar.build_cookie_header("example.com") == "sid=abc; theme=dark"


def test_response_without_cookies_stores_nothing():
    jar = CookieJar()
    assert jar.store_cookies("example.com", httpx.Response(200)) == 0
    assert len(jar) == 0


def test_clear_one_host_or_all():
    jar = CookieJar()
    jar.store_cookies("a.example", ["a=1"])
    jar.store_cookies("b.example", ["b=1"])
    jar.clear("a.example")
    assert jar.get("a.example") == {}
    assert jar.get("b.example") == {"b": "1"}
    jar.clear()
    assert len(jar) == 0


def test_parse_helpers():
    assert parse_cookie_string(" a=1 ;; b = 2 ; =x") == [("a", "1"), ("b", "2")]
    assert parse_set_cookie("sid=; Path=/") == ("sid", "")
    assert parse_set_cookie("Path=/") == ("Path", "/")
    assert parse_set_cookie("garbage") is None
