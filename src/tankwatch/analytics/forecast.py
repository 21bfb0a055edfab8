"""Depletion forecasting that only consumes during business hours."""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime, timedelta

from tankwatch.analytics._hours import is_business_hour, next_business_open, until_next_hour
from tankwatch.analytics.status import classify_status
from tankwatch.config import AnalyticsSettings
from tankwatch.models.analytics import Forecast, RateEstimate
from tankwatch.models.profile import TankProfile

_logger = logging.getLogger(__name__)


def hours_to_critical(level_inches: float, rate_per_hour: float, profile: TankProfile) -> float:
    """Business hours of consumption left before the critical level."""
    if level_inches <= profile.critical_level_inches:
        return 0.0
    if not math.isfinite(rate_per_hour) or rate_per_hour <= 0:
        return math.inf
    return (level_inches - profile.critical_level_inches) / rate_per_hour


def predict_business_time(
    start: datetime,
    business_hours: float,
    profile: TankProfile,
    *,
    horizon_hours: int,
) -> datetime | None:
    """Walk forward from ``start`` spending ``business_hours`` only while open.

    Time is advanced one local clock hour at a time; closed hours are
    skipped without spending. The walk stops after ``horizon_hours`` steps
    and returns ``None`` if the hours were not used up by then. A landing
    instant outside business hours (e.g. exactly at closing) is moved to
    the next opening.
    """
    if not math.isfinite(business_hours):
        return None
    current = start.astimezone(UTC)
    remaining = max(0.0, business_hours)
    steps = 0
    while remaining > 0:
        if steps >= horizon_hours:
            return None
        steps += 1
        step = until_next_hour(current, profile)
        if is_business_hour(current, profile):
            available = step.total_seconds() / 3600.0
            if remaining <= available:
                current += timedelta(hours=remaining)
                remaining = 0.0
                break
            remaining -= available
        current += step
    if not is_business_hour(current, profile):
        current = next_business_open(current, profile)
    return current


def forecast_depletion(
    level_inches: float,
    estimate: RateEstimate,
    profile: TankProfile,
    *,
    now: datetime,
    settings: AnalyticsSettings | None = None,
) -> Forecast:
    """Forecast when the tank reaches its critical level.

    A tank already at or below critical gets ``hours_to_critical == 0`` and
    ``predicted_critical_at == now`` regardless of rate.
    """
    settings = settings or AnalyticsSettings()
    hours = hours_to_critical(level_inches, estimate.rate_per_hour, profile)

    if hours == 0:
        predicted: datetime | None = now
    else:
        predicted = predict_business_time(now, hours, profile, horizon_hours=settings.forecast_horizon_hours)
        if predicted is None:
            _logger.debug(
                "Store %s tank %s: %.1f business hours is beyond the forecast horizon",
                profile.store_id,
                profile.tank_id,
                hours,
            )

    return Forecast(
        hours_to_critical=round(hours, 3) if math.isfinite(hours) else hours,
        predicted_critical_at=predicted,
        status=classify_status(level_inches, hours, profile),
        computed_at=now,
    )
