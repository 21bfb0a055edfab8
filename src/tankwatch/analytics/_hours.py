"""Business-hours arithmetic on tz-aware datetimes.

All inputs are absolute (tz-aware) instants; the profile's zone decides
which wall-clock hour an instant falls in.
"""

from __future__ import annotations

from datetime import UTC, datetime, time, timedelta

from tankwatch.models.profile import TankProfile

HOURS_PER_WEEK = 168


def is_business_hour(moment: datetime, profile: TankProfile) -> bool:
    hour = moment.astimezone(profile.zone).hour
    return profile.business_open_hour <= hour < profile.business_close_hour


def hour_of_week(moment: datetime, profile: TankProfile) -> int:
    """Index in ``[0, 167]``: local day of week (Sunday = 0) * 24 + local hour."""
    local = moment.astimezone(profile.zone)
    return (local.isoweekday() % 7) * 24 + local.hour


def _day_window(day: datetime, profile: TankProfile) -> tuple[datetime, datetime]:
    zone = profile.zone
    midnight = datetime.combine(day.date(), time(0), tzinfo=zone)
    opens = datetime.combine(day.date(), time(profile.business_open_hour), tzinfo=zone)
    # close_hour may be 24, i.e. next midnight
    closes = midnight + timedelta(hours=profile.business_close_hour)
    return opens, closes


def business_hours_between(start: datetime, end: datetime, profile: TankProfile) -> float:
    """Hours of ``[start, end)`` that fall inside business hours."""
    if end <= start:
        return 0.0
    total = 0.0
    day = start.astimezone(profile.zone)
    last_date = end.astimezone(profile.zone).date()
    while day.date() <= last_date:
        opens, closes = _day_window(day, profile)
        lo = max(start, opens)
        hi = min(end, closes)
        if hi > lo:
            total += (hi - lo).total_seconds() / 3600.0
        day = datetime.combine(day.date() + timedelta(days=1), time(0), tzinfo=profile.zone)
    return total


def next_business_open(moment: datetime, profile: TankProfile) -> datetime:
    """First business-open instant at or after ``moment`` (returned in UTC)."""
    local = moment.astimezone(profile.zone)
    if is_business_hour(local, profile):
        return moment.astimezone(UTC)
    day = local.date()
    if local.hour >= profile.business_close_hour:
        day += timedelta(days=1)
    opens = datetime.combine(day, time(profile.business_open_hour), tzinfo=profile.zone)
    return opens.astimezone(UTC)


def until_next_hour(moment: datetime, profile: TankProfile) -> timedelta:
    """Time left until the next local top-of-hour."""
    local = moment.astimezone(profile.zone)
    into_hour = timedelta(minutes=local.minute, seconds=local.second, microseconds=local.microsecond)
    return timedelta(hours=1) - into_hour
