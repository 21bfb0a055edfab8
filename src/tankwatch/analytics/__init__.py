"""Consumption analytics.

Pure functions from readings + profile to rate estimates, forecasts and
status. Nothing in this package performs I/O or raises on bad data;
insufficient or malformed input degrades to conservative defaults.
"""

from tankwatch.analytics.forecast import forecast_depletion
from tankwatch.analytics.pipeline import TankAnalysis, analyze_tank
from tankwatch.analytics.rate import default_estimate, estimate_rate
from tankwatch.analytics.sanitizer import SanitizedLog, SanitizeStats, sanitize_readings
from tankwatch.analytics.status import classify_status

__all__ = [
    "SanitizeStats",
    "SanitizedLog",
    "TankAnalysis",
    "analyze_tank",
    "classify_status",
    "default_estimate",
    "estimate_rate",
    "forecast_depletion",
    "sanitize_readings",
]
