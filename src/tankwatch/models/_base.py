"""Base model and shared field types for tankwatch models.

Every model that is parsed from upstream payloads inherits from
:class:`TankwatchBaseModel` which provides:

* frozen instances, so cached snapshots cannot be mutated in place.
* A ``model_validator(mode="before")`` that strips telemetry sentinel
  values (``""``, ``"--"``, NaN) so the field default is used.
* ``populate_by_name`` so models round-trip through their own JSON dump
  even when fields declare upstream aliases.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator

from tankwatch.ingestion.normalize import parse_timestamp

# Sentinel strings the telemetry server uses for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})


def _coerce_utc(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"not a valid timestamp: {value!r}")
    return parsed


UtcTimestamp = Annotated[datetime, BeforeValidator(_coerce_utc)]
"""Annotated type that coerces ISO strings or epoch numbers to tz-aware UTC datetimes."""


class TankwatchBaseModel(BaseModel):
    """Base for models validated from telemetry or configuration payloads."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_sentinels(cls, values: Any) -> Any:
        """Drop sentinel values so field defaults apply."""
        if not isinstance(values, dict):
            return values
        return TankwatchBaseModel._clean_dict(values)
