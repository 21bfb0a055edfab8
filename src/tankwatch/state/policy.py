"""Deterministic store-cache merge and staleness policy.

Pure functions only: no I/O, no clock. :class:`~tankwatch.state.store.TieredStoreCache`
supplies ``now`` and the configured windows.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from tankwatch.models.reading import Reading
from tankwatch.models.results import Freshness, RefreshMode
from tankwatch.models.snapshot import StoreCacheEntry, TankSnapshot
from tankwatch.state.events import StoreUpdate

FRESH_SECONDS = 5 * 60
STALE_SECONDS = 30 * 60


def is_expired(now: datetime, created_at: datetime, max_age: timedelta) -> bool:
    """Whole-entry expiry, measured from creation regardless of refreshes."""
    return now - created_at > max_age


def needs_refresh(entry: StoreCacheEntry | None, now: datetime, threshold: timedelta) -> bool:
    if entry is None:
        return True
    return now - entry.last_refreshed_at > threshold


def refresh_mode(entry: StoreCacheEntry | None, now: datetime, full_interval: timedelta) -> RefreshMode:
    """Full re-pull unless a recent full pull lets us fetch only the tail."""
    if entry is None or entry.last_full_refresh_at is None:
        return RefreshMode.FULL
    if now - entry.last_full_refresh_at > full_interval:
        return RefreshMode.FULL
    return RefreshMode.INCREMENTAL


def freshness(age_seconds: float) -> Freshness:
    if age_seconds < FRESH_SECONDS:
        return Freshness.FRESH
    if age_seconds < STALE_SECONDS:
        return Freshness.STALE
    return Freshness.OUTDATED


def merge_history(
    existing: Iterable[Reading],
    fresh: Iterable[Reading],
    *,
    cutoff: datetime | None = None,
) -> tuple[Reading, ...]:
    """Union two reading windows.

    Readings are deduplicated by ``(tank_id, timestamp)``; on a duplicate
    the already-retained reading wins. Readings older than ``cutoff`` are
    pruned and the result is sorted by timestamp.
    """
    merged: dict[tuple[int, float], Reading] = {}
    for reading in existing:
        merged.setdefault(reading.dedup_key, reading)
    for reading in fresh:
        merged.setdefault(reading.dedup_key, reading)
    kept = (r for r in merged.values() if cutoff is None or r.timestamp >= cutoff)
    return tuple(sorted(kept, key=lambda r: (r.timestamp, r.tank_id)))


def merge_tank(existing: TankSnapshot | None, fresh: TankSnapshot, *, cutoff: datetime) -> TankSnapshot:
    """Combine a cached tank snapshot with a freshly computed one.

    History is unioned; latest reading, rate, forecast and capacity come
    from the fresh computation. A fresh snapshot missing one of those
    (e.g. no reading with a level this cycle) keeps the cached value.
    """
    if existing is None:
        return fresh.model_copy(update={"history": merge_history((), fresh.history, cutoff=cutoff)})
    return TankSnapshot(
        tank_id=fresh.tank_id,
        tank_name=fresh.tank_name or existing.tank_name,
        product=fresh.product or existing.product,
        latest=fresh.latest if fresh.latest is not None else existing.latest,
        history=merge_history(existing.history, fresh.history, cutoff=cutoff),
        rate=fresh.rate if fresh.rate is not None else existing.rate,
        forecast=fresh.forecast if fresh.forecast is not None else existing.forecast,
        capacity_percentage=(
            fresh.capacity_percentage if fresh.capacity_percentage is not None else existing.capacity_percentage
        ),
    )


def merge_store_entry(
    existing: StoreCacheEntry | None,
    update: StoreUpdate,
    *,
    now: datetime,
    retention: timedelta,
) -> StoreCacheEntry:
    """Fold a store update into the cached entry.

    Tanks missing from the update keep their retained history (pruned to
    the retention window); a refresh that omits data is not evidence of
    deletion.
    """
    cutoff = now - retention
    tanks: dict[int, TankSnapshot] = {}

    if existing is not None:
        for tank_id, snapshot in existing.tanks.items():
            if tank_id not in update.tanks:
                tanks[tank_id] = snapshot.model_copy(
                    update={"history": merge_history(snapshot.history, (), cutoff=cutoff)}
                )

    for tank_id, fresh in update.tanks.items():
        previous = existing.tanks.get(tank_id) if existing is not None else None
        tanks[tank_id] = merge_tank(previous, fresh, cutoff=cutoff)

    last_full = existing.last_full_refresh_at if existing is not None else None
    if update.mode == RefreshMode.FULL:
        last_full = now

    return StoreCacheEntry(
        store_id=update.store_id,
        tanks=dict(sorted(tanks.items())),
        created_at=existing.created_at if existing is not None else now,
        last_refreshed_at=now,
        last_full_refresh_at=last_full,
    )
