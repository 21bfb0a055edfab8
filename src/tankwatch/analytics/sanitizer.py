"""Reading log sanitizer.

Turns a raw reading log for one tank into the subset that reflects
consumption: recent, inside business hours, physically plausible, and
with refueling deliveries removed.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from tankwatch.analytics._hours import is_business_hour
from tankwatch.config import AnalyticsSettings
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SanitizeStats:
    """How many readings were dropped, per reason."""

    total: int = 0
    duplicates: int = 0
    outside_window: int = 0
    outside_business_hours: int = 0
    invalid_level: int = 0
    deliveries: int = 0

    @property
    def dropped(self) -> int:
        return (
            self.duplicates
            + self.outside_window
            + self.outside_business_hours
            + self.invalid_level
            + self.deliveries
        )

    @property
    def kept(self) -> int:
        return self.total - self.dropped


@dataclasses.dataclass(frozen=True)
class SanitizedLog:
    readings: tuple[Reading, ...]
    stats: SanitizeStats

    def __len__(self) -> int:
        return len(self.readings)


def _valid_level(reading: Reading, profile: TankProfile) -> bool:
    level = reading.level_inches
    if level is None or not math.isfinite(level):
        return False
    return 0 < level <= profile.max_height_inches


def is_delivery(previous: Reading, current: Reading, settings: AnalyticsSettings) -> bool:
    """A sharp level increase shortly after the previous reading."""
    assert previous.level_inches is not None and current.level_inches is not None  # noqa: S101
    jump = current.level_inches - previous.level_inches
    elapsed_hours = (current.timestamp - previous.timestamp).total_seconds() / 3600.0
    return jump >= settings.delivery_jump_inches and 0 <= elapsed_hours <= settings.delivery_window_hours


def sanitize_readings(
    readings: Iterable[Reading],
    profile: TankProfile,
    *,
    now: datetime,
    settings: AnalyticsSettings | None = None,
) -> SanitizedLog:
    """Filter a tank's reading log down to consumption-relevant readings.

    Steps, in order:

    1. drop duplicate timestamps, readings older than ``window_days`` or in
       the future, and readings outside business hours;
    2. drop readings whose level is missing, non-finite, ``<= 0`` or above
       the profile's ``max_height_inches``;
    3. walk the rest in timestamp order and drop every reading that rose by
       at least ``delivery_jump_inches`` within ``delivery_window_hours`` of
       the reading before it.

    Each delivery is compared against the reading immediately before it, so
    readings after a delivery (now at the refilled level) are kept.
    """
    settings = settings or AnalyticsSettings()
    window_start = now - timedelta(days=settings.window_days)

    ordered = sorted(readings, key=lambda r: r.timestamp)
    total = len(ordered)

    duplicates = outside_window = outside_hours = invalid = 0
    seen: set[datetime] = set()
    candidates: list[Reading] = []
    for reading in ordered:
        if reading.timestamp in seen:
            duplicates += 1
            continue
        seen.add(reading.timestamp)
        if reading.timestamp < window_start or reading.timestamp > now:
            outside_window += 1
            continue
        if not is_business_hour(reading.timestamp, profile):
            outside_hours += 1
            continue
        if not _valid_level(reading, profile):
            invalid += 1
            continue
        candidates.append(reading)

    kept: list[Reading] = candidates[:1]
    deliveries = 0
    for previous, current in zip(candidates, candidates[1:]):
        if is_delivery(previous, current, settings):
            deliveries += 1
            _logger.debug(
                "Delivery detected for store %s tank %s at %s: %+.1f in",
                profile.store_id,
                profile.tank_id,
                current.timestamp.isoformat(),
                (current.level_inches or 0.0) - (previous.level_inches or 0.0),
            )
            continue
        kept.append(current)

    stats = SanitizeStats(
        total=total,
        duplicates=duplicates,
        outside_window=outside_window,
        outside_business_hours=outside_hours,
        invalid_level=invalid,
        deliveries=deliveries,
    )
    if stats.dropped:
        _logger.debug(
            "Sanitized store %s tank %s: kept %d of %d readings (%s)",
            profile.store_id,
            profile.tank_id,
            stats.kept,
            total,
            stats,
        )
    return SanitizedLog(readings=tuple(kept), stats=stats)
