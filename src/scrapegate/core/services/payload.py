"""
Handler result envelope.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from scrapegate.core.errors import ScraperError


class Payload(BaseModel):
    """Result returned by route handlers.

    Only payloads with ``ok=True`` are ever stored by the response cache.
    """

    ok: bool = True
    status: int = 200
    message: str | None = None
    data: Any = None
    source_url: str | None = Field(default=None, description="Upstream page the data came from")

    @classmethod
    def success(cls, data: Any, *, source_url: str | None = None) -> "Payload":
        return cls(ok=True, status=200, data=data, source_url=source_url)

    @classmethod
    def from_error(cls, error: ScraperError) -> "Payload":
        """Caller-safe failure envelope for a route layer that reports errors inline."""
        return cls(ok=False, status=error.http_status, message=error.message)
