"""Cached per-store snapshot models.

These are the values owned by :class:`tankwatch.state.store.TieredStoreCache`.
They are frozen; the cache replaces them wholesale on every merge.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tankwatch.models.analytics import Forecast, RateEstimate
from tankwatch.models.reading import Reading


class TankSnapshot(BaseModel):
    """Latest reading, retained history and analytics for one tank."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tank_id: int
    tank_name: str | None = None
    product: str | None = None
    latest: Reading | None = None
    history: tuple[Reading, ...] = ()
    rate: RateEstimate | None = None
    forecast: Forecast | None = None
    capacity_percentage: float | None = None


class StoreCacheEntry(BaseModel):
    """Everything cached for one store.

    ``created_at`` is set on the first successful fetch and never moves;
    whole-entry expiry is measured from it. ``last_refreshed_at`` moves on
    every merge.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    store_id: str
    tanks: dict[int, TankSnapshot] = Field(default_factory=dict)
    created_at: datetime
    last_refreshed_at: datetime
    last_full_refresh_at: datetime | None = None

    @property
    def reading_count(self) -> int:
        return sum(len(tank.history) for tank in self.tanks.values())
