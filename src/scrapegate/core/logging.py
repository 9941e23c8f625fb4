"""
Logging for scrapegate.

Console output goes through rich; an optional file handler writes one JSON
object per line. Fetch code logs through ContextualLogger so every record
carries the site and URL it concerns, and those fields land as top-level
keys in the JSON output.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import orjson
from rich.console import Console
from rich.markup import escape


ROOT_LOGGER = "scrapegate"

# Record attributes promoted to top-level JSON keys
CONTEXT_FIELDS = ("site", "host", "url", "attempt", "status", "cache_key")

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.INFO: "default",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=str).decode("utf-8")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json_dumps(entry)


class RichConsoleHandler(logging.Handler):
    """Colour records by level, prefixed with the site and attempt."""

    def __init__(self, console: Console | None = None, level: int = logging.INFO):
        super().__init__(level)
        self.console = console or Console(stderr=True)

    def _prefix(self, record: logging.LogRecord) -> str:
        site = getattr(record, "site", None)
        attempt = getattr(record, "attempt", None)
        if site and attempt:
            return f"[cyan][{site} #{attempt}][/cyan] "
        if site:
            return f"[cyan][{site}][/cyan] "
        return ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            style = LEVEL_STYLES.get(record.levelno, "default")
            # URLs and selectors contain brackets
            message = escape(self.format(record))
            self.console.print(f"{self._prefix(record)}[{style}]{message}[/{style}]", highlight=False)
            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


def _console_handler(level: int, rich_console: bool) -> logging.Handler:
    handler: logging.Handler
    if rich_console:
        handler = RichConsoleHandler(level=level)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    handler.setLevel(level)
    return handler


def _file_handler(path: Path, json_format: bool) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``scrapegate`` logger tree.

    Calling it again replaces the previous handlers.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file that receives every record from DEBUG up
        json_format: Write the file as JSON lines instead of plain text
        rich_console: Use rich for console output

    Returns:
        The ``scrapegate`` logger
    """
    numeric_level = getattr(logging, level.upper())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if log_file else numeric_level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.addHandler(_console_handler(numeric_level, rich_console))
    if log_file:
        root.addHandler(_file_handler(Path(log_file), json_format))

    return root


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the ``scrapegate`` namespace (``get_logger("fetch")`` -> ``scrapegate.fetch``)."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


class ContextualLogger(logging.LoggerAdapter):
    """Adapter that stamps fixed context (site, url, ...) onto every record.

    Per-call ``extra`` values win over the bound context.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        bound = {key: value for key, value in context.items() if value is not None}
        super().__init__(logger, bound)

    @property
    def site(self) -> str | None:
        return self.extra.get("site")

    @property
    def url(self) -> str | None:
        return self.extra.get("url")

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextualLogger":
        """New adapter with extra context layered over this one's."""
        return ContextualLogger(self.logger, **{**self.extra, **context})


def get_contextual_logger(
    name: str | None = None,
    site: str | None = None,
    url: str | None = None,
    **context: Any,
) -> ContextualLogger:
    return ContextualLogger(get_logger(name), site=site, url=url, **context)
