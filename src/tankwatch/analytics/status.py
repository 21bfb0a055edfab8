"""Tank status classification."""

from __future__ import annotations

from tankwatch.models.analytics import TankStatus
from tankwatch.models.profile import TankProfile

CRITICAL_HORIZON_HOURS = 24.0
WARNING_HORIZON_HOURS = 48.0


def classify_status(level_inches: float, hours_to_critical: float | None, profile: TankProfile) -> TankStatus:
    """Map the current level and time-to-critical onto a status.

    ``hours_to_critical`` of ``None`` means "no prediction" and only the
    level thresholds apply.
    """
    hours = hours_to_critical if hours_to_critical is not None else float("inf")
    if level_inches <= profile.critical_level_inches or 0 < hours < CRITICAL_HORIZON_HOURS:
        return TankStatus.CRITICAL
    if level_inches <= profile.warning_level_inches or 0 < hours < WARNING_HORIZON_HOURS:
        return TankStatus.WARNING
    return TankStatus.NORMAL
