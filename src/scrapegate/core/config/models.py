"""
Pydantic configuration models for scrapegate.

These models provide type-safe configuration with validation for:
- Fetch pipeline tuning (retries, timeouts, rate limits, backoff)
- Response cache sizing
- Per-site settings (base URL, cookies, rate overrides)
- Logging
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Fetch Configuration
# =============================================================================


class FetchSettings(BaseModel):
    """Defaults applied to every fetch that does not override them."""

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt",
    )
    timeout_ms: int = Field(
        default=25_000,
        gt=0,
        description="Per-attempt timeout in milliseconds",
    )
    rps: float = Field(
        default=0.5,
        gt=0,
        description="Sustained requests per second per host",
    )
    burst: int = Field(
        default=2,
        ge=1,
        description="Token bucket capacity per host",
    )
    status_backoff_ms: float = Field(
        default=500,
        ge=0,
        description="Base backoff after a retryable status",
    )
    status_jitter_ms: float = Field(
        default=250,
        ge=0,
        description="Upper bound of random jitter after a retryable status",
    )
    network_backoff_ms: float = Field(
        default=300,
        ge=0,
        description="Base backoff after a timeout or network error",
    )
    network_jitter_ms: float = Field(
        default=150,
        ge=0,
        description="Upper bound of random jitter after a timeout or network error",
    )
    retry_statuses: frozenset[int] = Field(
        default=frozenset({403, 429, 500, 502, 503, 504}),
        description="HTTP statuses that trigger a retry",
    )
    max_connections: int = Field(default=20, ge=1)
    max_keepalive_connections: int = Field(default=10, ge=0)

    @field_validator("retry_statuses")
    @classmethod
    def statuses_are_errors(cls, v: frozenset[int]) -> frozenset[int]:
        """Only 4xx/5xx statuses can be retried."""
        bad = sorted(s for s in v if not 400 <= s <= 599)
        if bad:
            raise ValueError(f"retry_statuses must be 4xx/5xx codes, got {bad}")
        return v

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


# =============================================================================
# Cache Configuration
# =============================================================================


class CacheSettings(BaseModel):
    """Response cache sizing."""

    max_entries: int = Field(
        default=1000,
        ge=1,
        description="Entries kept before least-recently-used eviction",
    )
    default_ttl_minutes: float = Field(
        default=1.0,
        gt=0,
        description="TTL used when a route does not specify one",
    )


# =============================================================================
# Site Configuration
# =============================================================================


class SiteConfig(BaseModel):
    """Settings for one upstream site."""

    name: str = Field(
        ...,
        min_length=1,
        pattern=r"^[a-z0-9_-]+$",
        description="Site identifier used in health records",
    )
    base_url: str = Field(..., description="Root URL of the site")
    cookies: str | None = Field(
        default=None,
        description="Raw cookie string sent with every request (e.g. cf_clearance=...)",
    )
    rps: float | None = Field(default=None, gt=0)
    burst: int | None = Field(default=None, ge=1)
    selector_version: str | None = Field(
        default=None,
        description="Selector set label the site's parser should use",
    )

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {v!r}")
        return v

    @field_validator("cookies")
    @classmethod
    def blank_cookies_are_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @property
    def host(self) -> str:
        """Network authority (hostname[:port]) of the base URL."""
        return urlsplit(self.base_url).netloc


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    sites: list[SiteConfig] = Field(default_factory=list)

    @field_validator("sites")
    @classmethod
    def unique_site_names(cls, v: list[SiteConfig]) -> list[SiteConfig]:
        seen: set[str] = set()
        for site in v:
            if site.name in seen:
                raise ValueError(f"Duplicate site name: {site.name}")
            seen.add(site.name)
        return v

    def get_site(self, name: str) -> SiteConfig | None:
        for site in self.sites:
            if site.name == name:
                return site
        return None
