"""Typed results for refresh cycles, persistence and diagnostics.

Callers inspect these instead of log output to tell "degraded but
recovered" apart from "failed, cache unchanged".
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from tankwatch.models.snapshot import StoreCacheEntry


class Freshness(StrEnum):
    FRESH = "fresh"
    STALE = "stale"
    OUTDATED = "outdated"


class RefreshStatus(StrEnum):
    UPDATED = "updated"
    DEGRADED = "degraded"
    FAILED = "failed"


class RefreshMode(StrEnum):
    FULL = "full"
    INCREMENTAL = "incremental"


class SaveResult(BaseModel):
    """Outcome of persisting a store entry to the backing store."""

    model_config = ConfigDict(frozen=True)

    persisted: bool
    retried: bool = False
    warnings: tuple[str, ...] = ()


class StoreRefreshResult(BaseModel):
    """Outcome of one fetch + analyze + merge cycle for one store.

    ``FAILED`` means the cached entry was left untouched. ``DEGRADED``
    means new data was merged but something (persistence, a tank's
    profile) needs attention; see ``warnings``.
    """

    model_config = ConfigDict(frozen=True)

    store_id: str
    status: RefreshStatus
    mode: RefreshMode | None = None
    tanks_updated: int = 0
    readings_fetched: int = 0
    warnings: tuple[str, ...] = ()
    error: str | None = None
    finished_at: datetime | None = None


class RefreshReport(BaseModel):
    """Results of a refresh request across one or more stores."""

    model_config = ConfigDict(frozen=True)

    results: dict[str, StoreRefreshResult] = Field(default_factory=dict)
    pending: tuple[str, ...] = ()
    skipped: bool = False

    @property
    def failed(self) -> list[str]:
        return [sid for sid, result in self.results.items() if result.status == RefreshStatus.FAILED]

    @property
    def warnings(self) -> list[str]:
        return [warning for result in self.results.values() for warning in result.warnings]


class CacheDiagnostics(BaseModel):
    """Health summary of the tiered store cache."""

    model_config = ConfigDict(frozen=True)

    age_seconds: float | None = None
    size_bytes: int = 0
    entry_count: int = 0
    stale_count: int = 0
    reading_count: int = 0
    persistence_degraded: bool = False


class SnapshotView(BaseModel):
    """A cached store entry plus how fresh it is."""

    model_config = ConfigDict(frozen=True)

    entry: StoreCacheEntry
    freshness: Freshness
    age_seconds: float
