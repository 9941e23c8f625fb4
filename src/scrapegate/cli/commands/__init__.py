"""CLI command modules."""

from . import config, fetch

__all__ = [
    "config",
    "fetch",
]
