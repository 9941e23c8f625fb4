"""
Per-site scrape health telemetry.

Tracks last success, last error and the consecutive failure streak for each
site. Readers only ever get frozen snapshots.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def _now_ms() -> int:
    return int(time.time() * 1000)


class LastError(BaseModel):
    """Most recent terminal failure of a site."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    at: int
    status: int | None = None
    message: str
    url: str | None = None


class HealthSnapshot(BaseModel):
    """Point-in-time, read-only view of a site's health."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    site: str
    last_success: int | None = None
    last_error: LastError | None = None
    consecutive_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        """External shape used by status endpoints (camelCase, unset fields omitted)."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass
class HealthRecord:
    """Live, mutable health state. Never handed out directly."""

    site: str
    last_success: int | None = None
    last_error: LastError | None = None
    consecutive_failures: int = 0

    def snapshot(self) -> HealthSnapshot:
        return HealthSnapshot(
            site=self.site,
            last_success=self.last_success,
            last_error=self.last_error,
            consecutive_failures=self.consecutive_failures,
        )


class HealthMetrics:
    """Registry of per-site health records."""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        """Initialize the registry.

        Args:
            clock: Wall clock returning epoch milliseconds
        """
        self._clock = clock
        self._records: dict[str, HealthRecord] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, site: str) -> HealthRecord:
        record = self._records.get(site)
        if record is None:
            record = HealthRecord(site=site)
            self._records[site] = record
        return record

    def record_success(self, site: str) -> None:
        with self._lock:
            record = self._get_or_create(site)
            record.last_success = self._clock()
            record.consecutive_failures = 0

    def record_failure(
        self,
        site: str,
        *,
        message: str,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        with self._lock:
            record = self._get_or_create(site)
            record.last_error = LastError(
                at=self._clock(),
                status=status,
                message=message,
                url=url,
            )
            record.consecutive_failures += 1

    def get(self, site: str) -> HealthSnapshot:
        """Snapshot for one site; unknown sites start with an empty record."""
        with self._lock:
            return self._get_or_create(site).snapshot()

    def get_all(self) -> dict[str, HealthSnapshot]:
        with self._lock:
            return {site: record.snapshot() for site, record in self._records.items()}

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """All sites in the external snapshot shape."""
        return {site: snapshot.to_dict() for site, snapshot in self.get_all().items()}

    def reset(self, site: str | None = None) -> None:
        with self._lock:
            if site:
                self._records.pop(site, None)
            else:
                self._records.clear()
