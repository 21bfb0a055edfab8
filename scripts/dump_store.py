#!/usr/bin/env python3
"""Refresh stores from a telemetry server and dump their cached snapshots.

Runs one forced refresh cycle through :class:`tankwatch.TankMonitor` and
prints every tank's latest reading, rate estimate and forecast, plus the
cache diagnostics.

Usage
-----
Set environment variables and run::

    export TANKWATCH_BASE_URL="https://tanks.example.com"
    python scripts/dump_store.py --store "Store 12"

Options::

    --store NAME         Only refresh this store (repeatable; default: all visible)
    --profiles FILE      JSON file with tank profiles / visible stores
    --cache-dir DIR      Persist snapshots under DIR
    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from tankwatch import (  # noqa: E402
    SnapshotView,
    StaticProfileStore,
    TankMonitor,
    TankwatchConfig,
    TankwatchError,
)

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}"


def _fmt(value: Any, suffix: str = "") -> str:
    if value is None:
        return "--"
    if isinstance(value, float):
        return f"{value:.2f}{suffix}"
    return f"{value}{suffix}"


def _render_view(view: SnapshotView) -> list[str]:
    entry = view.entry
    out = [
        _section(f"STORE {entry.store_id}"),
        f"  freshness: {view.freshness} ({view.age_seconds:.0f}s old)",
        f"  last full refresh: {_fmt(entry.last_full_refresh_at)}",
    ]
    for tank in entry.tanks.values():
        latest = tank.latest
        rate = tank.rate
        forecast = tank.forecast
        out.append(f"\n  -- Tank {tank.tank_id} {tank.tank_name or ''} ({tank.product or 'unknown product'})")
        out.append(f"     level:      {_fmt(latest.level_inches if latest else None, ' in')}")
        out.append(f"     volume:     {_fmt(latest.volume_gallons if latest else None, ' gal')}")
        out.append(f"     capacity:   {_fmt(tank.capacity_percentage, ' %')}")
        out.append(f"     history:    {len(tank.history)} readings")
        if rate is not None:
            label = " (default)" if rate.is_default else ""
            out.append(f"     rate:       {rate.rate_per_hour:.3f} in/hr{label}, quality {rate.quality_score:.2f}")
        if forecast is not None:
            out.append(
                f"     forecast:   {forecast.status}, {_fmt(forecast.hours_to_critical, ' h')} to critical, "
                f"at {_fmt(forecast.predicted_critical_at)}"
            )
    return out


# ── main ─────────────────────────────────────────────────────


async def main() -> int:
    parser = argparse.ArgumentParser(
        description="Refresh tank stores and dump the cached snapshots",
    )
    parser.add_argument("--store", action="append", dest="stores", help="Only refresh this store (repeatable)")
    parser.add_argument("--profiles", help="JSON file with tank profiles and visible stores")
    parser.add_argument("--cache-dir", help="Persist snapshots under this directory")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    overrides: dict[str, Any] = {}
    if args.cache_dir:
        overrides["cache_dir"] = args.cache_dir

    try:
        config = TankwatchConfig.from_env(**overrides)
        profiles = (
            StaticProfileStore.from_json_file(args.profiles, auto_configure=config.auto_configure_profiles)
            if args.profiles
            else StaticProfileStore(auto_configure=config.auto_configure_profiles)
        )
    except TankwatchError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    async with TankMonitor(config, profiles=profiles) as monitor:
        if args.stores:
            reports = [await monitor.refresh(store) for store in args.stores]
        else:
            reports = [await monitor.refresh()]
            await monitor.wait_background()

        store_ids = args.stores or monitor.cache.store_ids()
        views = [view for view in (monitor.get_cached_snapshot(sid) for sid in store_ids) if view is not None]
        diagnostics = monitor.get_cache_diagnostics()

    failed = [sid for report in reports for sid in report.failed]
    warnings = [warning for report in reports for warning in report.warnings]

    if args.json_mode:
        payload = json.dumps(
            {
                "stores": [view.model_dump(mode="json") for view in views],
                "diagnostics": diagnostics.model_dump(mode="json"),
                "failed": failed,
                "warnings": warnings,
            },
            indent=2,
            ensure_ascii=False,
        )
    else:
        out: list[str] = []
        for view in views:
            out.extend(_render_view(view))
        out.append(_section("CACHE"))
        out.append(f"  {diagnostics.entry_count} stores, {diagnostics.reading_count} readings, ")
        out[-1] += f"{diagnostics.size_bytes} bytes, {diagnostics.stale_count} stale"
        if diagnostics.persistence_degraded:
            out.append("  persistence degraded: serving from memory")
        for warning in warnings:
            out.append(f"  warning: {warning}")
        for sid in failed:
            out.append(f"  FAILED: {sid}")
        payload = "\n".join(out)

    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Output written to {args.output}", file=sys.stderr)
    else:
        print(payload)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
