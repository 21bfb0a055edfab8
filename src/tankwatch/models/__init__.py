"""Data models for tankwatch."""

from tankwatch.models._base import TankwatchBaseModel, UtcTimestamp
from tankwatch.models.analytics import Forecast, RateEstimate, TankStatus
from tankwatch.models.profile import TankProfile, default_profile
from tankwatch.models.reading import Reading
from tankwatch.models.results import (
    CacheDiagnostics,
    Freshness,
    RefreshMode,
    RefreshReport,
    RefreshStatus,
    SaveResult,
    SnapshotView,
    StoreRefreshResult,
)
from tankwatch.models.snapshot import StoreCacheEntry, TankSnapshot

__all__ = [
    "CacheDiagnostics",
    "Forecast",
    "Freshness",
    "RateEstimate",
    "Reading",
    "RefreshMode",
    "RefreshReport",
    "RefreshStatus",
    "SaveResult",
    "SnapshotView",
    "StoreCacheEntry",
    "StoreRefreshResult",
    "TankProfile",
    "TankSnapshot",
    "TankStatus",
    "TankwatchBaseModel",
    "UtcTimestamp",
    "default_profile",
]
