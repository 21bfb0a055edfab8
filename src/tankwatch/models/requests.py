"""Pydantic request models for client entrypoints.

These models provide a consistent "validate → normalize → execute" flow.
They are used internally by :class:`tankwatch.client.TankMonitor`.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class StoreRequest(BaseModel):
    """Request naming one store."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    store_id: str

    @field_validator("store_id")
    @classmethod
    def _store_id_non_empty(cls, value: str) -> str:
        store_id = value.strip()
        if not store_id:
            raise ValueError("store_id must be non-empty")
        return store_id


class ReadingWindow(BaseModel):
    """How far back to fetch readings: exactly one of ``hours`` or ``days``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    hours: int | None = Field(default=None, ge=1)
    days: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _exactly_one(self) -> ReadingWindow:
        if (self.hours is None) == (self.days is None):
            raise ValueError("exactly one of hours or days must be set")
        return self

    @property
    def query(self) -> dict[str, str]:
        if self.hours is not None:
            return {"hours": str(self.hours)}
        return {"days": str(self.days)}

    def as_days(self) -> ReadingWindow:
        """The smallest days-bounded window covering this one."""
        if self.days is not None:
            return self
        assert self.hours is not None  # noqa: S101
        return ReadingWindow(days=max(1, math.ceil(self.hours / 24)))
