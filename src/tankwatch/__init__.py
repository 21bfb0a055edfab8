"""tankwatch - Async fuel tank consumption analytics with a tiered cache."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tankwatch")
except PackageNotFoundError:
    __version__ = "0+local"
from tankwatch._cache import ResultCache, compute_fingerprint
from tankwatch.analytics import (
    analyze_tank,
    classify_status,
    estimate_rate,
    forecast_depletion,
    sanitize_readings,
)
from tankwatch.client import TankMonitor
from tankwatch.config import AnalyticsSettings, TankwatchConfig
from tankwatch.exceptions import (
    TankwatchApiError,
    TankwatchConfigError,
    TankwatchError,
    TankwatchPersistenceError,
    TankwatchTransportError,
)
from tankwatch.models import (
    CacheDiagnostics,
    Forecast,
    Freshness,
    RateEstimate,
    Reading,
    RefreshMode,
    RefreshReport,
    RefreshStatus,
    SaveResult,
    SnapshotView,
    StoreCacheEntry,
    StoreRefreshResult,
    TankProfile,
    TankSnapshot,
    TankStatus,
)
from tankwatch.profiles import ProfileStore, StaticProfileStore
from tankwatch.state.backends import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from tankwatch.state.store import TieredStoreCache
from tankwatch.telemetry import HttpTelemetrySource, TelemetrySource

__all__ = [
    "__version__",
    "AnalyticsSettings",
    "CacheDiagnostics",
    "FileKeyValueStore",
    "Forecast",
    "Freshness",
    "HttpTelemetrySource",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "ProfileStore",
    "RateEstimate",
    "Reading",
    "RefreshMode",
    "RefreshReport",
    "RefreshStatus",
    "ResultCache",
    "SaveResult",
    "SnapshotView",
    "StaticProfileStore",
    "StoreCacheEntry",
    "StoreRefreshResult",
    "TankMonitor",
    "TankProfile",
    "TankSnapshot",
    "TankStatus",
    "TankwatchApiError",
    "TankwatchConfig",
    "TankwatchConfigError",
    "TankwatchError",
    "TankwatchPersistenceError",
    "TankwatchTransportError",
    "TelemetrySource",
    "TieredStoreCache",
    "analyze_tank",
    "classify_status",
    "compute_fingerprint",
    "estimate_rate",
    "forecast_depletion",
    "sanitize_readings",
]
