"""Memoization of per-tank analytics results.

Results are keyed by ``(store_id, tank_id)`` and carry a fingerprint of
the inputs they were computed from. An entry is only reused while it is
young, was computed from the same inputs and is of acceptable quality;
anything else is evicted on lookup.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tankwatch.config import AnalyticsSettings
from tankwatch.models.analytics import Forecast, RateEstimate
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading

_logger = logging.getLogger(__name__)

CacheKey = tuple[str, int]

HIGH_QUALITY = 0.7


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _rounded(value: float | None) -> float | None:
    return None if value is None else round(value, 1)


def compute_fingerprint(
    readings: Sequence[Reading],
    profile: TankProfile,
    *,
    latest: Reading | None = None,
    window: int = 100,
) -> str:
    """Hash of the inputs an analytics result depends on.

    Covers the last ``window`` sanitized readings (levels and volumes
    rounded to 0.1 so sensor jitter does not churn the cache), the
    profile fields the algorithms read, and the latest level/volume.
    """
    tail = readings[-window:] if window > 0 else readings
    material = {
        "readings": [
            [r.timestamp.isoformat(), _rounded(r.level_inches), _rounded(r.volume_gallons)] for r in tail
        ],
        "profile": [
            profile.capacity_gallons,
            profile.critical_level_inches,
            profile.warning_level_inches,
            profile.business_open_hour,
            profile.business_close_hour,
            profile.max_height_inches,
            profile.timezone,
        ],
        "latest": (
            [_rounded(latest.level_inches), _rounded(latest.volume_gallons)] if latest is not None else None
        ),
    }
    encoded = json.dumps(material, separators=(",", ":"), sort_keys=True)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CachedAnalysis:
    """A memoized rate estimate and forecast for one tank."""

    store_id: str
    tank_id: int
    fingerprint: str
    rate: RateEstimate
    forecast: Forecast
    cached_at: datetime

    @property
    def key(self) -> CacheKey:
        return (self.store_id, self.tank_id)


@dataclass(frozen=True)
class ResultCacheStats:
    size: int
    capacity: int
    valid: int
    high_quality: int
    hits: int
    misses: int
    evictions: int
    average_age_seconds: float
    average_quality: float

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ResultCache:
    """Bounded, validity-checked cache of analytics results.

    Parameters
    ----------
    ttl : float
        Seconds an entry stays reusable.
    capacity : int
        Maximum number of entries. When exceeded, the lowest-quality
        entries (oldest first among equals) are evicted.
    min_quality : float
        Entries whose rate quality is below this are never reused.
    settings : AnalyticsSettings or None
        Supplies the physical rate band an entry's rate must lie in.
    clock : callable
        Returns the current tz-aware time.
    """

    def __init__(
        self,
        *,
        ttl: float = 4 * 3600,
        capacity: int = 500,
        min_quality: float = 0.3,
        settings: AnalyticsSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ttl = timedelta(seconds=ttl)
        self._capacity = capacity
        self._min_quality = min_quality
        self._settings = settings or AnalyticsSettings()
        self._clock = clock
        self._entries: dict[CacheKey, CachedAnalysis] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def is_valid(self, entry: CachedAnalysis, fingerprint: str, *, now: datetime | None = None) -> bool:
        """Whether ``entry`` may be reused for inputs hashing to ``fingerprint``."""
        now = now or self._clock()
        if now - entry.cached_at >= self._ttl:
            return False
        if entry.fingerprint != fingerprint:
            return False
        rate = entry.rate.rate_per_hour
        if not self._settings.min_rate <= rate <= self._settings.max_rate:
            return False
        return entry.rate.quality_score >= self._min_quality

    def get(self, store_id: str, tank_id: int, fingerprint: str) -> CachedAnalysis | None:
        """Return the cached result, evicting it if it is no longer valid."""
        key = (store_id, tank_id)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if not self.is_valid(entry, fingerprint):
            _logger.debug("Result cache entry for store %s tank %s is no longer valid", store_id, tank_id)
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry

    def put(
        self,
        store_id: str,
        tank_id: int,
        fingerprint: str,
        rate: RateEstimate,
        forecast: Forecast,
    ) -> CachedAnalysis:
        entry = CachedAnalysis(
            store_id=store_id,
            tank_id=tank_id,
            fingerprint=fingerprint,
            rate=rate,
            forecast=forecast,
            cached_at=self._clock(),
        )
        self._entries[entry.key] = entry
        self._enforce_capacity()
        return entry

    def _enforce_capacity(self) -> None:
        overflow = len(self._entries) - self._capacity
        if overflow <= 0:
            return
        victims = sorted(
            self._entries.values(),
            key=lambda entry: (entry.rate.quality_score, entry.cached_at),
        )[:overflow]
        for entry in victims:
            del self._entries[entry.key]
        self._evictions += len(victims)
        _logger.debug("Result cache over capacity, evicted %d entries", len(victims))

    def invalidate(self, store_id: str, tank_id: int | None = None) -> int:
        """Drop entries for one store (or one tank of it). Returns the count."""
        keys = [key for key in self._entries if key[0] == store_id and (tank_id is None or key[1] == tank_id)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def purge_expired(self) -> int:
        now = self._clock()
        keys = [key for key, entry in self._entries.items() if now - entry.cached_at >= self._ttl]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> ResultCacheStats:
        """Counters plus a summary of the current entries.

        ``valid`` counts entries that would still be reused for their own
        fingerprint; ``high_quality`` counts those scoring ``HIGH_QUALITY``
        or more.
        """
        now = self._clock()
        entries = list(self._entries.values())
        valid = [entry for entry in entries if self.is_valid(entry, entry.fingerprint, now=now)]
        qualities = [entry.rate.quality_score for entry in entries]
        ages = [(now - entry.cached_at).total_seconds() for entry in entries]
        return ResultCacheStats(
            size=len(entries),
            capacity=self._capacity,
            valid=len(valid),
            high_quality=sum(1 for entry in valid if entry.rate.quality_score >= HIGH_QUALITY),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            average_age_seconds=round(sum(ages) / len(ages), 1) if ages else 0.0,
            average_quality=round(sum(qualities) / len(qualities), 4) if qualities else 0.0,
        )
