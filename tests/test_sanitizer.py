from __future__ import annotations

from datetime import UTC, datetime, timedelta

from tankwatch.analytics.sanitizer import is_delivery, sanitize_readings
from tankwatch.config import AnalyticsSettings
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading

# Monday
_MONDAY = datetime(2026, 3, 2, tzinfo=UTC)


def _reading(moment: datetime, level: float | None) -> Reading:
    return Reading(store_id="S1", tank_id=1, timestamp=moment, level_inches=level)


def _profile(**overrides: object) -> TankProfile:
    return TankProfile.model_validate({"store_id": "S1", "tank_id": 1, **overrides})


def test_isolated_delivery_spike_is_the_only_reading_dropped() -> None:
    levels = [50.0, 49.8, 49.6, 60.0, 59.8, 59.6]
    readings = [_reading(_MONDAY + timedelta(hours=8 + i), level) for i, level in enumerate(levels)]

    result = sanitize_readings(readings, _profile(), now=_MONDAY + timedelta(hours=15))

    assert [r.level_inches for r in result.readings] == [50.0, 49.8, 49.6, 59.8, 59.6]
    assert result.stats.deliveries == 1
    assert result.stats.dropped == 1
    assert len(result) == 5


def test_slow_increase_is_not_a_delivery() -> None:
    readings = [
        _reading(_MONDAY + timedelta(hours=6), 40.0),
        _reading(_MONDAY + timedelta(hours=11), 50.0),
    ]

    result = sanitize_readings(readings, _profile(), now=_MONDAY + timedelta(hours=12))

    assert len(result) == 2
    assert result.stats.deliveries == 0


def test_small_quick_increase_is_not_a_delivery() -> None:
    settings = AnalyticsSettings()
    previous = _reading(_MONDAY + timedelta(hours=8), 40.0)
    current = _reading(_MONDAY + timedelta(hours=9), 47.0)

    assert is_delivery(previous, current, settings) is False
    assert is_delivery(previous, _reading(current.timestamp, 48.0), settings) is True


def test_drops_are_counted_per_reason() -> None:
    now = _MONDAY + timedelta(hours=20)
    readings = [
        _reading(_MONDAY + timedelta(hours=8), 50.0),
        _reading(_MONDAY + timedelta(hours=8), 50.0),  # duplicate
        _reading(_MONDAY + timedelta(hours=3), 50.2),  # closed
        _reading(_MONDAY - timedelta(days=30), 80.0),  # too old
        _reading(now + timedelta(hours=1), 49.0),  # future
        _reading(_MONDAY + timedelta(hours=9), 0.0),
        _reading(_MONDAY + timedelta(hours=10), 250.0),
        _reading(_MONDAY + timedelta(hours=11), None),
        _reading(_MONDAY + timedelta(hours=12), 49.0),
    ]

    result = sanitize_readings(readings, _profile(), now=now)

    stats = result.stats
    assert stats.total == 9
    assert stats.duplicates == 1
    assert stats.outside_business_hours == 1
    assert stats.outside_window == 2
    assert stats.invalid_level == 3
    assert stats.kept == 2
    assert [r.level_inches for r in result.readings] == [50.0, 49.0]


def test_output_is_sorted_even_when_input_is_not() -> None:
    readings = [
        _reading(_MONDAY + timedelta(hours=10), 49.0),
        _reading(_MONDAY + timedelta(hours=8), 50.0),
        _reading(_MONDAY + timedelta(hours=9), 49.5),
    ]

    result = sanitize_readings(readings, _profile(), now=_MONDAY + timedelta(hours=12))

    assert [r.timestamp.hour for r in result.readings] == [8, 9, 10]


def test_business_hours_follow_the_profile_timezone() -> None:
    # 11:00 UTC is 06:00 in New York (EST), before a 07:00 opening.
    profile = _profile(timezone="America/New_York", business_open_hour=7)
    readings = [
        _reading(_MONDAY + timedelta(hours=11), 50.0),
        _reading(_MONDAY + timedelta(hours=12), 49.8),
    ]

    result = sanitize_readings(readings, profile, now=_MONDAY + timedelta(hours=14))

    assert [r.timestamp.hour for r in result.readings] == [12]
    assert result.stats.outside_business_hours == 1


def test_delivery_threshold_is_configurable() -> None:
    readings = [
        _reading(_MONDAY + timedelta(hours=8), 40.0),
        _reading(_MONDAY + timedelta(hours=9), 45.0),
    ]
    settings = AnalyticsSettings(delivery_jump_inches=4.0)

    result = sanitize_readings(readings, _profile(), now=_MONDAY + timedelta(hours=10), settings=settings)

    assert result.stats.deliveries == 1
