"""Normalized store updates.

A refresh cycle turns fetched readings and their analytics into a
:class:`StoreUpdate`. Only the state/store layer is allowed to merge it
into the cached entry.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tankwatch.models.results import RefreshMode
from tankwatch.models.snapshot import TankSnapshot


class StoreUpdate(BaseModel):
    """Freshly computed per-tank snapshots for one store.

    ``tanks`` carries only the readings fetched in this cycle as
    ``history``; retained history lives in the cache and is unioned in on
    merge.
    """

    model_config = ConfigDict(frozen=True)

    store_id: str = Field(..., description="Store identifier")
    tanks: dict[int, TankSnapshot] = Field(default_factory=dict)
    mode: RefreshMode = RefreshMode.FULL
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("store_id")
    @classmethod
    def _normalize_store_id(cls, value: str) -> str:
        store_id = value.strip()
        if not store_id:
            raise ValueError("store_id must be non-empty")
        return store_id

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
