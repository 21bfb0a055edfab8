"""Consumption rate estimation with hour-of-week segmentation."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import datetime

from tankwatch.analytics._hours import HOURS_PER_WEEK, business_hours_between, hour_of_week
from tankwatch.config import AnalyticsSettings
from tankwatch.models.analytics import RateEstimate
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading

_logger = logging.getLogger(__name__)


class _Bucket:
    __slots__ = ("rates", "hours")

    def __init__(self) -> None:
        self.rates: list[float] = []
        self.hours = 0.0

    def mean(self) -> float:
        return sum(self.rates) / len(self.rates)


def default_estimate(
    tank_id: int,
    *,
    now: datetime,
    settings: AnalyticsSettings,
    sample_count: int = 0,
    fingerprint: str = "",
) -> RateEstimate:
    """The conservative fallback used whenever the data cannot support an estimate."""
    return RateEstimate(
        tank_id=tank_id,
        rate_per_hour=settings.default_rate,
        sample_count=sample_count,
        quality_score=0.0,
        computed_at=now,
        input_fingerprint=fingerprint,
        is_default=True,
    )


def quality_score(sample_count: int, span_hours: float, rate: float, settings: AnalyticsSettings) -> float:
    """Confidence in an estimate, in ``[0, 1]``.

    Weighted mix of sample count vs. ``sample_target``, covered span vs.
    ``span_target_hours``, and whether the rate lies in the typical band.
    """
    w_count, w_span, w_plausible = settings.quality_weights
    count_credit = min(1.0, sample_count / settings.sample_target)
    span_credit = min(1.0, max(0.0, span_hours) / settings.span_target_hours)
    plausible_credit = 1.0 if settings.typical_rate_low <= rate <= settings.typical_rate_high else 0.0
    score = (w_count * count_credit + w_span * span_credit + w_plausible * plausible_credit) / (
        w_count + w_span + w_plausible
    )
    return round(min(1.0, max(0.0, score)), 4)


def _bucketize(readings: Sequence[Reading], profile: TankProfile, settings: AnalyticsSettings) -> list[_Bucket | None]:
    buckets: list[_Bucket | None] = [None] * HOURS_PER_WEEK
    for previous, current in zip(readings, readings[1:]):
        if previous.level_inches is None or current.level_inches is None:
            continue
        drop = previous.level_inches - current.level_inches
        if drop <= 0:
            continue
        wall_hours = (current.timestamp - previous.timestamp).total_seconds() / 3600.0
        if wall_hours <= 0 or wall_hours > settings.max_delta_hours:
            continue
        # Closed hours between the two readings contributed no consumption
        elapsed = business_hours_between(previous.timestamp, current.timestamp, profile)
        if elapsed <= 0:
            continue
        step_rate = drop / elapsed
        if step_rate > settings.max_step_rate:
            continue
        index = hour_of_week(current.timestamp, profile)
        bucket = buckets[index]
        if bucket is None:
            bucket = buckets[index] = _Bucket()
        bucket.rates.append(step_rate)
        bucket.hours += elapsed
    return buckets


def estimate_rate(
    readings: Sequence[Reading],
    profile: TankProfile,
    *,
    now: datetime,
    settings: AnalyticsSettings | None = None,
    fingerprint: str = "",
) -> RateEstimate:
    """Estimate a tank's drain rate in inches per hour.

    ``readings`` must already be sanitized and sorted. Consecutive-reading
    drains are bucketed by the hour of week of the later reading; each
    bucket contributes its mean rate weighted by the business hours it
    observed, so sparsely observed hours of the week count for less.

    The result is clamped to ``[min_rate, max_rate]``. Fewer than
    ``min_readings`` readings, or no usable drain at all, yields the
    default rate with a quality score of 0.
    """
    settings = settings or AnalyticsSettings()
    sample_count = len(readings)

    if sample_count < settings.min_readings:
        _logger.debug(
            "Store %s tank %s: %d readings is below minimum %d, using default rate",
            profile.store_id,
            profile.tank_id,
            sample_count,
            settings.min_readings,
        )
        return default_estimate(
            profile.tank_id, now=now, settings=settings, sample_count=sample_count, fingerprint=fingerprint
        )

    buckets = [bucket for bucket in _bucketize(readings, profile, settings) if bucket is not None]
    if not buckets:
        _logger.debug("Store %s tank %s: no draining intervals, using default rate", profile.store_id, profile.tank_id)
        return default_estimate(
            profile.tank_id, now=now, settings=settings, sample_count=sample_count, fingerprint=fingerprint
        )

    total_hours = sum(bucket.hours for bucket in buckets)
    raw_rate = sum(bucket.mean() * bucket.hours for bucket in buckets) / total_hours
    if not math.isfinite(raw_rate):
        return default_estimate(
            profile.tank_id, now=now, settings=settings, sample_count=sample_count, fingerprint=fingerprint
        )

    rate = max(settings.min_rate, min(settings.max_rate, raw_rate))
    if rate != raw_rate:
        _logger.debug(
            "Store %s tank %s: rate %.4f in/hr clamped to %.4f",
            profile.store_id,
            profile.tank_id,
            raw_rate,
            rate,
        )

    span_hours = (readings[-1].timestamp - readings[0].timestamp).total_seconds() / 3600.0
    estimate = RateEstimate(
        tank_id=profile.tank_id,
        rate_per_hour=rate,
        sample_count=sample_count,
        quality_score=quality_score(sample_count, span_hours, rate, settings),
        computed_at=now,
        input_fingerprint=fingerprint,
        span_hours=round(span_hours, 3),
        bucket_count=len(buckets),
    )
    _logger.debug(
        "Store %s tank %s: %.3f in/hr from %d readings across %d hour-of-week buckets (quality %.2f)",
        profile.store_id,
        profile.tank_id,
        estimate.rate_per_hour,
        sample_count,
        estimate.bucket_count,
        estimate.quality_score,
    )
    return estimate
