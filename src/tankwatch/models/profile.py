"""Tank profile (configuration) model."""

from __future__ import annotations

import functools
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator, model_validator

from tankwatch.models._base import TankwatchBaseModel

DEFAULT_OPEN_HOUR = 5
DEFAULT_CLOSE_HOUR = 23
DEFAULT_CAPACITY_GALLONS = 10_000.0
DEFAULT_CRITICAL_LEVEL_INCHES = 10.0
DEFAULT_WARNING_LEVEL_INCHES = 20.0
DEFAULT_MAX_HEIGHT_INCHES = 200.0


@functools.lru_cache(maxsize=64)
def get_zone(name: str) -> ZoneInfo:
    """Return (and memoize) the :class:`ZoneInfo` for an IANA name."""
    return ZoneInfo(name)


class TankProfile(TankwatchBaseModel):
    """Externally supplied configuration for one tank.

    Business hours are a half-open interval ``[open_hour, close_hour)`` on
    the 24h wall clock of ``timezone``; consumption only happens inside it.
    """

    store_id: str = Field(validation_alias=AliasChoices("store_id", "store_name"))
    tank_id: int
    capacity_gallons: float = Field(
        default=DEFAULT_CAPACITY_GALLONS,
        gt=0,
        validation_alias=AliasChoices("capacity_gallons", "max_capacity_gallons"),
    )
    critical_level_inches: float = Field(
        default=DEFAULT_CRITICAL_LEVEL_INCHES,
        gt=0,
        validation_alias=AliasChoices("critical_level_inches", "critical_height_inches"),
    )
    warning_level_inches: float = Field(
        default=DEFAULT_WARNING_LEVEL_INCHES,
        gt=0,
        validation_alias=AliasChoices("warning_level_inches", "warning_height_inches"),
    )
    business_open_hour: int = Field(
        default=DEFAULT_OPEN_HOUR,
        ge=0,
        le=23,
        validation_alias=AliasChoices("business_open_hour", "open_hour"),
    )
    business_close_hour: int = Field(
        default=DEFAULT_CLOSE_HOUR,
        ge=1,
        le=24,
        validation_alias=AliasChoices("business_close_hour", "close_hour"),
    )
    max_height_inches: float = Field(default=DEFAULT_MAX_HEIGHT_INCHES, gt=0)
    timezone: str = "UTC"
    tank_name: str | None = None
    product: str | None = Field(default=None, validation_alias=AliasChoices("product", "product_type"))

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            get_zone(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @model_validator(mode="after")
    def _validate_business_hours(self) -> TankProfile:
        if self.business_open_hour >= self.business_close_hour:
            raise ValueError(
                f"business_open_hour ({self.business_open_hour}) must be before "
                f"business_close_hour ({self.business_close_hour})"
            )
        return self

    @property
    def zone(self) -> ZoneInfo:
        return get_zone(self.timezone)

    @property
    def display_name(self) -> str:
        return self.tank_name or f"Tank {self.tank_id}"


def default_profile(store_id: str, tank_id: int, *, product: str | None = None) -> TankProfile:
    """Profile given to a tank discovered upstream with no configuration."""
    return TankProfile(store_id=store_id, tank_id=tank_id, product=product)
