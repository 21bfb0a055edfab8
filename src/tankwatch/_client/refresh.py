"""Internal refresh cycle for :class:`tankwatch.client.TankMonitor`.

These functions keep `client.py` small without changing the public API.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from tankwatch.analytics.pipeline import analyze_tank, reforecast_tank
from tankwatch.exceptions import TankwatchError
from tankwatch.models.reading import Reading
from tankwatch.models.requests import ReadingWindow, StoreRequest
from tankwatch.models.results import RefreshMode, RefreshStatus, StoreRefreshResult
from tankwatch.models.snapshot import StoreCacheEntry, TankSnapshot
from tankwatch.state.events import StoreUpdate
from tankwatch.state.policy import merge_history
from tankwatch.telemetry import TelemetrySource

if TYPE_CHECKING:
    from tankwatch.client import TankMonitor

_logger = logging.getLogger(__name__)


def window_for(monitor: TankMonitor, mode: RefreshMode) -> ReadingWindow:
    """Incremental pulls fetch the recent tail; full pulls cover the estimation window."""
    config = monitor.config
    if mode == RefreshMode.INCREMENTAL:
        return ReadingWindow(hours=config.incremental_window_hours)
    return ReadingWindow(days=max(config.retention_days, config.analytics.window_days))


async def fetch_with_fallback(source: TelemetrySource, store_id: str, window: ReadingWindow) -> Sequence[Reading]:
    """Fetch readings, retrying an hours-bounded window as a days-bounded one."""
    if window.hours is None:
        return await source.get_store_readings(store_id, window)
    try:
        return await source.get_store_readings(store_id, window)
    except TankwatchError as exc:
        fallback = window.as_days()
        _logger.debug(
            "Store %s: %d-hour fetch failed (%s), falling back to %d days",
            store_id,
            window.hours,
            exc,
            fallback.days,
        )
        return await source.get_store_readings(store_id, fallback)


def _group_by_tank(store_id: str, readings: Iterable[Reading]) -> dict[int, list[Reading]]:
    grouped: dict[int, list[Reading]] = defaultdict(list)
    for reading in readings:
        if reading.store_id != store_id:
            continue
        grouped[reading.tank_id].append(reading)
    return grouped


def build_update(
    monitor: TankMonitor,
    store_id: str,
    readings: Iterable[Reading],
    existing: StoreCacheEntry | None,
    mode: RefreshMode,
) -> tuple[StoreUpdate, list[str]]:
    """Analyze fetched readings (plus retained history) into a store update.

    A full pull estimates the rate over everything fetched. An incremental
    pull keeps the rate of the last full pull and only re-forecasts from
    the newest reading. Tanks without a profile are skipped with a warning.
    """
    now = monitor.now()
    settings = monitor.config.analytics
    warnings: list[str] = []
    tanks: dict[int, TankSnapshot] = {}

    for tank_id, fresh in sorted(_group_by_tank(store_id, readings).items()):
        product = next((r.product for r in reversed(fresh) if r.product), None)
        profile = monitor.profiles.get_tank_profile(store_id, tank_id, product=product)
        if profile is None:
            warnings.append(f"store {store_id} tank {tank_id}: no tank profile configured, skipped")
            continue

        previous = existing.tanks.get(tank_id) if existing is not None else None
        retained = previous.history if previous is not None else ()
        readings_for_tank = merge_history(retained, fresh)
        if mode == RefreshMode.INCREMENTAL and previous is not None and previous.rate is not None:
            analysis = reforecast_tank(readings_for_tank, profile, previous.rate, now=now, settings=settings)
        else:
            analysis = analyze_tank(
                readings_for_tank,
                profile,
                now=now,
                settings=settings,
                result_cache=monitor.result_cache,
            )
        tanks[tank_id] = TankSnapshot(
            tank_id=tank_id,
            tank_name=profile.tank_name,
            product=profile.product or product,
            latest=analysis.latest,
            history=merge_history((), fresh),
            rate=analysis.rate,
            forecast=analysis.forecast,
            capacity_percentage=analysis.capacity_percentage,
        )

    return StoreUpdate(store_id=store_id, tanks=tanks, mode=mode, observed_at=now), warnings


async def refresh_store(monitor: TankMonitor, store_id: str, *, force: bool = False) -> StoreRefreshResult:
    """Fetch, analyze and merge one store.

    Never raises for upstream or persistence trouble: a failed fetch
    returns ``FAILED`` and leaves the cached entry untouched; a merged
    entry that could not be persisted cleanly returns ``DEGRADED``.
    """
    request = StoreRequest(store_id=store_id)
    cache = monitor.cache
    existing = cache.get(request.store_id)
    mode = RefreshMode.FULL if force else cache.refresh_mode(existing)
    window = window_for(monitor, mode)

    try:
        readings = await fetch_with_fallback(monitor.source, request.store_id, window)
        update, warnings = build_update(monitor, request.store_id, readings, existing, mode)
    except Exception as exc:
        _logger.warning("Refresh of store %s failed: %s", request.store_id, exc, exc_info=True)
        return StoreRefreshResult(
            store_id=request.store_id,
            status=RefreshStatus.FAILED,
            mode=mode,
            error=f"{type(exc).__name__}: {exc}",
            finished_at=monitor.now(),
        )

    _entry, saved = cache.apply(update)
    warnings.extend(saved.warnings)
    status = RefreshStatus.DEGRADED if warnings else RefreshStatus.UPDATED
    _logger.debug(
        "Store %s refreshed (%s): %d readings, %d tanks, status %s",
        request.store_id,
        mode,
        len(readings),
        len(update.tanks),
        status,
    )
    return StoreRefreshResult(
        store_id=request.store_id,
        status=status,
        mode=mode,
        tanks_updated=len(update.tanks),
        readings_fetched=len(readings),
        warnings=tuple(warnings),
        finished_at=monitor.now(),
    )
