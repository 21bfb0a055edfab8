"""Tank reading model."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator

from tankwatch.ingestion.normalize import safe_str
from tankwatch.models._base import TankwatchBaseModel, UtcTimestamp


class Reading(TankwatchBaseModel):
    """One timestamped tank measurement.

    Readings are immutable once recorded. Two readings with the same
    store, tank and timestamp are the same reading.

    Parameters
    ----------
    store_id : str
        Retail site identifier (``store_name`` upstream).
    tank_id : int
        Tank number within the store.
    timestamp : datetime
        Measurement time, normalized to UTC.
    level_inches : float or None
        Product height in inches (``height`` upstream).
    volume_gallons : float or None
        Gross volume in gallons.
    tc_volume_gallons : float or None
        Temperature-compensated volume in gallons.
    ullage_gallons : float or None
        Remaining fillable volume in gallons.
    temperature : float or None
        Product temperature.
    water_inches : float or None
        Water bottom height in inches.
    product : str or None
        Product name (e.g. ``"UNLEADED"``).
    """

    store_id: str = Field(validation_alias=AliasChoices("store_id", "store_name", "storeId", "store"))
    tank_id: int = Field(validation_alias=AliasChoices("tank_id", "tankId", "tank"))
    timestamp: UtcTimestamp = Field(validation_alias=AliasChoices("timestamp", "recorded_at", "time"))
    level_inches: float | None = Field(default=None, validation_alias=AliasChoices("level_inches", "height", "level"))
    volume_gallons: float | None = Field(default=None, validation_alias=AliasChoices("volume_gallons", "volume"))
    tc_volume_gallons: float | None = Field(
        default=None, validation_alias=AliasChoices("tc_volume_gallons", "tc_volume", "tcVolume")
    )
    ullage_gallons: float | None = Field(default=None, validation_alias=AliasChoices("ullage_gallons", "ullage"))
    temperature: float | None = Field(default=None, validation_alias=AliasChoices("temperature", "temp"))
    water_inches: float | None = Field(default=None, validation_alias=AliasChoices("water_inches", "water"))
    product: str | None = None

    @field_validator("store_id")
    @classmethod
    def _normalize_store_id(cls, value: str) -> str:
        store_id = value.strip()
        if not store_id:
            raise ValueError("store_id must be non-empty")
        return store_id

    @field_validator("product", mode="before")
    @classmethod
    def _coerce_product(cls, value: object) -> str | None:
        return safe_str(value)

    @property
    def dedup_key(self) -> tuple[int, float]:
        """Identity of the reading within one store."""
        return (self.tank_id, self.timestamp.timestamp())
