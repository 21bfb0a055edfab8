"""Per-tank analytics: sanitize, estimate, forecast, memoize."""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Iterable
from datetime import datetime

from tankwatch._cache import ResultCache, compute_fingerprint
from tankwatch.analytics.forecast import forecast_depletion
from tankwatch.analytics.rate import estimate_rate
from tankwatch.analytics.sanitizer import SanitizeStats, sanitize_readings
from tankwatch.config import AnalyticsSettings
from tankwatch.models.analytics import Forecast, RateEstimate
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class TankAnalysis:
    tank_id: int
    latest: Reading | None
    rate: RateEstimate
    forecast: Forecast | None
    capacity_percentage: float | None
    stats: SanitizeStats = dataclasses.field(default_factory=SanitizeStats)
    cache_hit: bool = False


def latest_reading(readings: Iterable[Reading]) -> Reading | None:
    """Newest reading that carries a finite level."""
    best: Reading | None = None
    for reading in readings:
        level = reading.level_inches
        if level is None or not math.isfinite(level):
            continue
        if best is None or reading.timestamp > best.timestamp:
            best = reading
    return best


def capacity_percentage(reading: Reading | None, profile: TankProfile) -> float | None:
    if reading is None or reading.volume_gallons is None or not math.isfinite(reading.volume_gallons):
        return None
    percentage = reading.volume_gallons / profile.capacity_gallons * 100.0
    return round(min(100.0, max(0.0, percentage)), 1)


def analyze_tank(
    readings: Iterable[Reading],
    profile: TankProfile,
    *,
    now: datetime,
    settings: AnalyticsSettings | None = None,
    result_cache: ResultCache | None = None,
) -> TankAnalysis:
    """Run the full analytics chain for one tank.

    The forecast is computed from the newest reading with a level; a tank
    with no such reading gets a rate but no forecast. When a result cache
    is given, an entry computed from identical inputs is reused instead of
    recomputing the rate and forecast.
    """
    settings = settings or AnalyticsSettings()
    readings = list(readings)
    latest = latest_reading(readings)
    sanitized = sanitize_readings(readings, profile, now=now, settings=settings)
    fingerprint = compute_fingerprint(
        sanitized.readings,
        profile,
        latest=latest,
        window=settings.fingerprint_window,
    )

    if result_cache is not None:
        cached = result_cache.get(profile.store_id, profile.tank_id, fingerprint)
        if cached is not None:
            _logger.debug("Store %s tank %s: reusing cached analytics", profile.store_id, profile.tank_id)
            return TankAnalysis(
                tank_id=profile.tank_id,
                latest=latest,
                rate=cached.rate,
                forecast=cached.forecast,
                capacity_percentage=capacity_percentage(latest, profile),
                stats=sanitized.stats,
                cache_hit=True,
            )

    rate = estimate_rate(sanitized.readings, profile, now=now, settings=settings, fingerprint=fingerprint)
    forecast: Forecast | None = None
    if latest is not None and latest.level_inches is not None:
        forecast = forecast_depletion(latest.level_inches, rate, profile, now=now, settings=settings)
        if result_cache is not None:
            result_cache.put(profile.store_id, profile.tank_id, fingerprint, rate, forecast)

    return TankAnalysis(
        tank_id=profile.tank_id,
        latest=latest,
        rate=rate,
        forecast=forecast,
        capacity_percentage=capacity_percentage(latest, profile),
        stats=sanitized.stats,
    )


def reforecast_tank(
    readings: Iterable[Reading],
    profile: TankProfile,
    rate: RateEstimate,
    *,
    now: datetime,
    settings: AnalyticsSettings | None = None,
) -> TankAnalysis:
    """Forecast from the newest reading while keeping an already known rate.

    Used between full pulls: the retained window is shorter than the
    estimation window, so the rate from the last full pull is kept and
    only the latest level and forecast move.
    """
    latest = latest_reading(readings)
    forecast: Forecast | None = None
    if latest is not None and latest.level_inches is not None:
        forecast = forecast_depletion(latest.level_inches, rate, profile, now=now, settings=settings)
    return TankAnalysis(
        tank_id=profile.tank_id,
        latest=latest,
        rate=rate,
        forecast=forecast,
        capacity_percentage=capacity_percentage(latest, profile),
    )
