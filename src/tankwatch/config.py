"""Monitor configuration for tankwatch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from tankwatch.exceptions import TankwatchConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class AnalyticsSettings:
    """Tunables for sanitization, rate estimation and forecasting.

    The delivery detector and the rate clamp are empirical; none of these
    values is claimed to be optimal, which is why they live here rather
    than in the algorithms.

    Parameters
    ----------
    window_days : int
        Only readings newer than this are used for rate estimation.
    delivery_jump_inches : float
        A level increase of at least this many inches ...
    delivery_window_hours : float
        ... within this many hours of the previous reading is a delivery.
    min_readings : int
        Fewer sanitized readings than this fall back to ``default_rate``.
    default_rate : float
        Conservative inches/hour used whenever there is not enough data.
    min_rate, max_rate : float
        Physical band the final rate is clamped to.
    max_step_rate : float
        Individual reading-to-reading drains faster than this are ignored.
    max_delta_hours : float
        Reading pairs further apart than this are not used as a delta.
    typical_rate_low, typical_rate_high : float
        Sub-band of "plausible" rates that earns the plausibility credit
        in the quality score.
    sample_target : int
        Sanitized reading count that earns full sample credit.
    span_target_hours : float
        Time span that earns full coverage credit.
    quality_weights : tuple of float
        Weights for (sample count, time span, plausibility).
    forecast_horizon_hours : int
        Safety cap on the business-hours walk of the forecaster.
    fingerprint_window : int
        Number of most recent sanitized readings hashed into a fingerprint.
    """

    window_days: int = 28
    delivery_jump_inches: float = 8.0
    delivery_window_hours: float = 4.0
    min_readings: int = 5
    default_rate: float = 0.1
    min_rate: float = 0.01
    max_rate: float = 2.0
    max_step_rate: float = 3.0
    max_delta_hours: float = 24.0
    typical_rate_low: float = 0.02
    typical_rate_high: float = 1.0
    sample_target: int = 100
    span_target_hours: float = 168.0
    quality_weights: tuple[float, float, float] = (0.4, 0.4, 0.2)
    forecast_horizon_hours: int = 24 * 366
    fingerprint_window: int = 100

    def __post_init__(self) -> None:
        if self.window_days <= 0:
            raise TankwatchConfigError(f"window_days must be positive, got {self.window_days}")
        if self.delivery_jump_inches <= 0 or self.delivery_window_hours <= 0:
            raise TankwatchConfigError("delivery thresholds must be positive")
        if self.min_readings < 2:
            raise TankwatchConfigError(f"min_readings must be at least 2, got {self.min_readings}")
        if not 0 < self.min_rate < self.max_rate:
            raise TankwatchConfigError(f"invalid rate band [{self.min_rate}, {self.max_rate}]")
        if not self.min_rate <= self.default_rate <= self.max_rate:
            raise TankwatchConfigError(
                f"default_rate {self.default_rate} outside rate band [{self.min_rate}, {self.max_rate}]"
            )
        if len(self.quality_weights) != 3 or any(w < 0 for w in self.quality_weights):
            raise TankwatchConfigError("quality_weights must be three non-negative numbers")
        if sum(self.quality_weights) <= 0:
            raise TankwatchConfigError("quality_weights must not all be zero")
        if self.forecast_horizon_hours <= 0 or self.fingerprint_window <= 0:
            raise TankwatchConfigError("forecast_horizon_hours and fingerprint_window must be positive")


@dataclasses.dataclass(frozen=True)
class TankwatchConfig:
    """Monitor configuration.

    Parameters
    ----------
    base_url : str
        Telemetry server base URL.
    api_key : str or None
        Sent as a bearer token when set.
    request_timeout : float
        Per-request timeout in seconds.
    max_attempts : int
        Attempts per upstream fetch before the fetch is failed for the cycle.
    retry_base_delay : float
        First backoff delay in seconds; doubles on each retry.
    poll_interval : float
        Seconds between background refresh timer fires.
    staleness_threshold : float
        Cached store entries older than this (seconds) are refreshed.
    full_refresh_interval : float
        A store whose last full historical pull is older than this gets a
        full re-pull instead of an incremental one.
    incremental_window_hours : int
        Hours-bounded window requested on incremental refreshes.
    retention_days : int
        Historical window retained per tank in the store cache.
    max_entry_age_days : int
        Whole store entries older than this (from creation) are dropped.
    result_cache_ttl : float
        Seconds a memoized analytics result stays valid.
    result_cache_capacity : int
        Maximum number of memoized analytics results.
    result_cache_min_quality : float
        Results below this quality score are never reused.
    cache_dir : str or None
        Directory for the file-backed snapshot store. ``None`` keeps the
        snapshots in memory only.
    auto_configure_profiles : bool
        Give tanks without a configured profile a default profile instead
        of skipping them.
    analytics : AnalyticsSettings
        Algorithm tunables.
    """

    base_url: str = "http://localhost:8000"
    api_key: str | None = None
    request_timeout: float = 120.0
    max_attempts: int = 3
    retry_base_delay: float = 3.0
    poll_interval: float = 30.0
    staleness_threshold: float = 5 * 60
    full_refresh_interval: float = 30 * 60
    incremental_window_hours: int = 2
    retention_days: int = 5
    max_entry_age_days: int = 5
    result_cache_ttl: float = 4 * 3600
    result_cache_capacity: int = 500
    result_cache_min_quality: float = 0.3
    cache_dir: str | None = None
    auto_configure_profiles: bool = True
    analytics: AnalyticsSettings = dataclasses.field(default_factory=AnalyticsSettings)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise TankwatchConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.request_timeout <= 0:
            raise TankwatchConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.retention_days <= 0 or self.max_entry_age_days <= 0:
            raise TankwatchConfigError("retention_days and max_entry_age_days must be positive")
        if self.result_cache_capacity <= 0:
            raise TankwatchConfigError("result_cache_capacity must be positive")

    @classmethod
    def from_env(cls, **overrides: Any) -> TankwatchConfig:
        """Create configuration from environment variables.

        Reads ``TANKWATCH_BASE_URL``, ``TANKWATCH_API_KEY`` and the other
        ``TANKWATCH_*`` variables listed below. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TankwatchConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TANKWATCH_BASE_URL": "base_url",
            "TANKWATCH_API_KEY": "api_key",
            "TANKWATCH_CACHE_DIR": "cache_dir",
        }
        _ENV_FLOAT_MAP = {
            "TANKWATCH_REQUEST_TIMEOUT": "request_timeout",
            "TANKWATCH_RETRY_BASE_DELAY": "retry_base_delay",
            "TANKWATCH_POLL_INTERVAL": "poll_interval",
            "TANKWATCH_STALENESS_THRESHOLD": "staleness_threshold",
            "TANKWATCH_FULL_REFRESH_INTERVAL": "full_refresh_interval",
            "TANKWATCH_RESULT_CACHE_TTL": "result_cache_ttl",
            "TANKWATCH_RESULT_CACHE_MIN_QUALITY": "result_cache_min_quality",
        }
        _ENV_INT_MAP = {
            "TANKWATCH_MAX_ATTEMPTS": "max_attempts",
            "TANKWATCH_INCREMENTAL_WINDOW_HOURS": "incremental_window_hours",
            "TANKWATCH_RETENTION_DAYS": "retention_days",
            "TANKWATCH_MAX_ENTRY_AGE_DAYS": "max_entry_age_days",
            "TANKWATCH_RESULT_CACHE_CAPACITY": "result_cache_capacity",
        }

        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_STR_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = val
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise TankwatchConfigError(f"Invalid numeric TANKWATCH_* environment value: {exc}") from exc

        if "auto_configure_profiles" not in overrides:
            config_kwargs["auto_configure_profiles"] = _env_bool(env.get("TANKWATCH_AUTO_CONFIGURE_PROFILES"), True)

        # Analytics tunables can be passed as a dict or a ready AnalyticsSettings
        analytics_overrides = overrides.pop("analytics", None)
        if isinstance(analytics_overrides, dict):
            config_kwargs["analytics"] = AnalyticsSettings(**analytics_overrides)
        elif isinstance(analytics_overrides, AnalyticsSettings):
            config_kwargs["analytics"] = analytics_overrides

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
