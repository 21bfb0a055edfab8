"""Derived analytics models: rate estimates, forecasts and status."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TankStatus(StrEnum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class RateEstimate(BaseModel):
    """Consumption rate (inches/hour) derived from sanitized readings.

    ``quality_score`` is 0 whenever ``is_default`` is true.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tank_id: int
    rate_per_hour: float
    sample_count: int = 0
    quality_score: float = Field(default=0.0, ge=0.0, le=1.0)
    computed_at: datetime
    input_fingerprint: str = ""
    span_hours: float = 0.0
    bucket_count: int = 0
    is_default: bool = False


class Forecast(BaseModel):
    """When a tank reaches its critical level, and its resulting status.

    ``predicted_critical_at`` is ``None`` when the prediction falls beyond
    the forecast horizon.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", ser_json_inf_nan="constants")

    hours_to_critical: float
    predicted_critical_at: datetime | None = None
    status: TankStatus
    computed_at: datetime
