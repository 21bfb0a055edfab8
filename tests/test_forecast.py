from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tankwatch.analytics._hours import business_hours_between, is_business_hour, next_business_open
from tankwatch.analytics.forecast import forecast_depletion
from tankwatch.analytics.status import classify_status
from tankwatch.models.analytics import RateEstimate, TankStatus
from tankwatch.models.profile import TankProfile

_MONDAY_8AM = datetime(2026, 3, 2, 8, tzinfo=UTC)


def _profile(**overrides: object) -> TankProfile:
    return TankProfile.model_validate({"store_id": "S1", "tank_id": 1, **overrides})


def _rate(value: float) -> RateEstimate:
    return RateEstimate(tank_id=1, rate_per_hour=value, quality_score=0.9, computed_at=_MONDAY_8AM)


def test_stable_drain_forecast_lands_inside_a_later_business_window() -> None:
    forecast = forecast_depletion(25.0, _rate(0.2), _profile(), now=_MONDAY_8AM)

    assert forecast.hours_to_critical == pytest.approx(75.0)
    # Mon 15h + Tue 18h + Wed 18h + Thu 18h = 69h, then 6h into Friday.
    expected = datetime(2026, 3, 6, 11, tzinfo=UTC)
    assert forecast.predicted_critical_at is not None
    assert abs(forecast.predicted_critical_at - expected) < timedelta(seconds=1)
    assert forecast.status == TankStatus.NORMAL


def test_level_at_or_below_critical_is_due_now() -> None:
    for rate in (0.01, 0.5, 2.0):
        forecast = forecast_depletion(10.0, _rate(rate), _profile(), now=_MONDAY_8AM)

        assert forecast.hours_to_critical == 0
        assert forecast.predicted_critical_at == _MONDAY_8AM
        assert forecast.status == TankStatus.CRITICAL


def test_landing_exactly_at_close_snaps_to_next_opening() -> None:
    # 15 business hours from Monday 08:00 ends at 23:00, which is closed.
    forecast = forecast_depletion(13.75, _rate(0.25), _profile(), now=_MONDAY_8AM)

    assert forecast.predicted_critical_at == datetime(2026, 3, 3, 5, tzinfo=UTC)


def test_starting_outside_business_hours_waits_for_opening() -> None:
    night = datetime(2026, 3, 2, 1, 30, tzinfo=UTC)

    forecast = forecast_depletion(10.5, _rate(0.25), _profile(), now=night)

    assert forecast.predicted_critical_at == datetime(2026, 3, 2, 7, tzinfo=UTC)


@pytest.mark.parametrize("level", [10.1, 12.0, 17.3, 33.3, 58.0, 91.7, 150.0])
@pytest.mark.parametrize("start_minute", [0, 17, 59])
def test_prediction_never_lands_on_a_closed_hour(level: float, start_minute: int) -> None:
    profile = _profile(business_open_hour=6, business_close_hour=21)
    now = datetime(2026, 3, 2, 19, start_minute, tzinfo=UTC)

    forecast = forecast_depletion(level, _rate(0.3), profile, now=now)

    assert forecast.predicted_critical_at is not None
    assert is_business_hour(forecast.predicted_critical_at, profile)
    consumed = business_hours_between(now, forecast.predicted_critical_at, profile)
    assert consumed == pytest.approx(forecast.hours_to_critical, abs=1e-3)


def test_prediction_beyond_horizon_is_none() -> None:
    forecast = forecast_depletion(200.0, _rate(0.01), _profile(), now=_MONDAY_8AM)

    assert forecast.hours_to_critical == pytest.approx(19_000.0)
    assert forecast.predicted_critical_at is None
    assert forecast.status == TankStatus.NORMAL


def test_business_hours_are_local_to_the_profile_timezone() -> None:
    profile = _profile(timezone="America/New_York")
    # 12:00 UTC is 07:00 EST; one business hour later is 08:00 EST.
    now = datetime(2026, 3, 2, 12, tzinfo=UTC)

    forecast = forecast_depletion(10.25, _rate(0.25), profile, now=now)

    assert forecast.predicted_critical_at == datetime(2026, 3, 2, 13, tzinfo=UTC)


def test_next_business_open() -> None:
    profile = _profile()

    assert next_business_open(datetime(2026, 3, 2, 3, tzinfo=UTC), profile) == datetime(2026, 3, 2, 5, tzinfo=UTC)
    assert next_business_open(datetime(2026, 3, 2, 23, 30, tzinfo=UTC), profile) == datetime(
        2026, 3, 3, 5, tzinfo=UTC
    )
    inside = datetime(2026, 3, 2, 12, 15, tzinfo=UTC)
    assert next_business_open(inside, profile) == inside


@pytest.mark.parametrize(
    ("level", "hours", "expected"),
    [
        (5.0, 100.0, TankStatus.CRITICAL),
        (10.0, 0.0, TankStatus.CRITICAL),
        (30.0, 10.0, TankStatus.CRITICAL),
        (15.0, 100.0, TankStatus.WARNING),
        (20.0, 100.0, TankStatus.WARNING),
        (30.0, 30.0, TankStatus.WARNING),
        (30.0, 24.0, TankStatus.WARNING),
        (30.0, 48.0, TankStatus.NORMAL),
        (30.0, None, TankStatus.NORMAL),
        (30.0, float("inf"), TankStatus.NORMAL),
    ],
)
def test_classify_status(level: float, hours: float | None, expected: TankStatus) -> None:
    assert classify_status(level, hours, _profile()) == expected
