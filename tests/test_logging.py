# tests/test_logging.py
from __future__ import annotations

import logging

import orjson

from scrapegate.core.logging import (
    JSONFormatter,
    get_contextual_logger,
    get_logger,
    setup_logging,
)


def test_logger_names_are_namespaced():
    assert get_logger("fetch").name == "scrapegate.fetch"
    assert get_logger().name == "scrapegate"


def test_json_formatter_includes_context_fields():
    record = logging.LogRecord("scrapegate.fetch", logging.WARNING, __file__, 1, "retry %d", (2,), None)
    record.site = "otakudesu"
    record.attempt = 2

    data = orjson.loads(JSONFormatter().format(record))

    assert data["level"] == "WARNING"
    assert data["logger"] == "scrapegate.fetch"
    assert data["message"] == "retry 2"
    assert data["site"] == "otakudesu"
    assert data["attempt"] == 2
    assert "url" not in data


def test_contextual_logger_injects_site_and_url(caplog):
    log = get_contextual_logger("fetch", site="otakudesu", url="https://x/")

    with caplog.at_level(logging.INFO, logger="scrapegate"):
        log.info("hello", extra={"status": 503})
        log.with_context(url="https://y/").info("again")

    first, second = caplog.records
    assert (first.site, first.url, first.status) == ("otakudesu", "https://x/", 503)
    assert (second.site, second.url) == ("otakudesu", "https://y/")


def test_setup_logging_writes_json_lines(tmp_path):
    log_file = tmp_path / "logs" / "scrapegate.log"
    root = setup_logging(level="DEBUG", log_file=log_file, rich_console=False)
    try:
        get_logger("cache").debug("Cache hit for %s", "/home", extra={"cache_key": "/home"})
        for handler in root.handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        data = orjson.loads(line)
        assert data["cache_key"] == "/home"
        assert data["message"] == "Cache hit for /home"
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
