from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from tankwatch.client import TankMonitor
from tankwatch.config import TankwatchConfig
from tankwatch.exceptions import TankwatchApiError, TankwatchError, TankwatchPersistenceError, TankwatchTransportError
from tankwatch.models.profile import TankProfile
from tankwatch.models.reading import Reading
from tankwatch.models.requests import ReadingWindow
from tankwatch.models.results import Freshness, RefreshMode, RefreshStatus
from tankwatch.profiles import StaticProfileStore
from tankwatch.state.backends import KeyValueStore, MemoryKeyValueStore

# Monday noon; by default history starts five days earlier (Wednesday noon).
_T0 = datetime(2026, 3, 9, 12, tzinfo=UTC)


@dataclass
class _Clock:
    now: datetime = _T0

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class FakeTelemetry:
    """Hourly readings while open (05:00-23:00 UTC), draining 0.2 in/hr."""

    clock: _Clock
    listed: list[str] = field(default_factory=lambda: ["A", "B"])
    tanks: tuple[int, ...] = (1,)
    failing: set[str] = field(default_factory=set)
    history_days: int = 5
    list_fails: bool = False
    list_errors: list[Exception] = field(default_factory=list)
    reject_hours: bool = False
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    entered: asyncio.Event = field(default_factory=asyncio.Event)
    calls: list[tuple[str, ReadingWindow]] = field(default_factory=list)

    async def list_stores(self) -> list[str]:
        if self.list_errors:
            raise self.list_errors.pop(0)
        if self.list_fails:
            raise TankwatchTransportError("listing unavailable", status_code=503, endpoint="/dashboard/stores")
        return list(self.listed)

    async def get_store_readings(self, store_id: str, window: ReadingWindow) -> Sequence[Reading]:
        self.calls.append((store_id, window))
        # Each gate holds only the first fetch of its store
        gate = self.gates.pop(store_id, None)
        if gate is not None:
            self.entered.set()
            await gate.wait()
        if store_id in self.failing:
            raise TankwatchTransportError("connection reset", endpoint=f"/dashboard/stores/{store_id}")
        if self.reject_hours and window.hours is not None:
            raise TankwatchApiError("hours window not supported", endpoint=f"/dashboard/stores/{store_id}")
        span = timedelta(hours=window.hours) if window.hours is not None else timedelta(days=window.days or 0)
        return self._readings(store_id, since=self.clock.now - span)

    def _readings(self, store_id: str, *, since: datetime) -> list[Reading]:
        readings: list[Reading] = []
        level = 100.0
        moment = _T0 - timedelta(days=self.history_days)
        while moment <= self.clock.now:
            if 5 <= moment.hour < 23:
                if moment >= since:
                    readings.extend(
                        Reading(
                            store_id=store_id,
                            tank_id=tank_id,
                            timestamp=moment,
                            level_inches=level,
                            volume_gallons=level * 50,
                        )
                        for tank_id in self.tanks
                    )
                level -= 0.2
            moment += timedelta(hours=1)
        return readings


@dataclass
class BlockingSleep:
    """Records poll delays; blocks until cancelled after `block_after` returns."""

    block_after: int = 0
    delays: list[float] = field(default_factory=list)
    slept: asyncio.Event = field(default_factory=asyncio.Event)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if len(self.delays) <= self.block_after:
            return
        self.slept.set()
        await asyncio.Event().wait()


class BrokenBackend(MemoryKeyValueStore):
    def set(self, key: str, value: bytes) -> None:
        raise TankwatchPersistenceError("read-only file system", key=key)


class UnreachableBackend(MemoryKeyValueStore):
    def set(self, key: str, value: bytes) -> None:
        raise ConnectionError("backing store unreachable")


def _monitor(
    fake: FakeTelemetry,
    *,
    profiles: StaticProfileStore | None = None,
    backend: KeyValueStore | None = None,
    sleep: BlockingSleep | None = None,
) -> TankMonitor:
    return TankMonitor(
        TankwatchConfig(),
        profiles=profiles if profiles is not None else StaticProfileStore(visible_stores=["A", "B"]),
        source=fake,
        backend=backend if backend is not None else MemoryKeyValueStore(),
        clock=fake.clock,
        sleep=sleep if sleep is not None else BlockingSleep(),
    )


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_first_refresh_populates_snapshot_with_analytics() -> None:
    fake = FakeTelemetry(_Clock())

    async with _monitor(fake) as monitor:
        assert monitor.get_cached_snapshot("A") is None

        report = await monitor.refresh("A")
        view = monitor.get_cached_snapshot("A")

    result = report.results["A"]
    assert result.status == RefreshStatus.UPDATED
    assert result.mode == RefreshMode.FULL
    assert result.readings_fetched == 91
    assert fake.calls == [("A", ReadingWindow(days=28))]

    assert view is not None
    assert view.freshness == Freshness.FRESH
    tank = view.entry.tanks[1]
    assert len(tank.history) == 91
    assert tank.latest is not None
    assert tank.latest.timestamp == _T0
    assert tank.latest.level_inches == pytest.approx(82.0)
    assert tank.capacity_percentage == pytest.approx(41.0)
    assert tank.rate is not None
    assert tank.rate.is_default is False
    assert tank.rate.rate_per_hour == pytest.approx(0.2, rel=1e-6)
    assert tank.forecast is not None
    assert tank.forecast.hours_to_critical == pytest.approx(360.0, rel=1e-3)
    assert view.entry.last_full_refresh_at == _T0


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_refresh_stale_only_fetches_stale_stores() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock)

    async with _monitor(fake) as monitor:
        await monitor.refresh("A")
        clock.advance(minutes=8)
        await monitor.refresh("B")
        clock.advance(minutes=2)
        fake.calls.clear()

        report = await monitor.refresh_stale()

        view_a = monitor.get_cached_snapshot("A")
        view_b = monitor.get_cached_snapshot("B")

    assert fake.calls == [("A", ReadingWindow(hours=2))]
    assert list(report.results) == ["A"]
    assert report.results["A"].mode == RefreshMode.INCREMENTAL
    assert report.results["A"].status == RefreshStatus.UPDATED

    assert view_a is not None and view_b is not None
    assert view_a.entry.last_refreshed_at == clock.now
    assert view_a.entry.created_at == _T0
    assert view_a.entry.last_full_refresh_at == _T0
    # Wednesday 12:00 has aged out of the five-day retention window
    assert len(view_a.entry.tanks[1].history) == 90
    assert view_b.age_seconds == pytest.approx(120.0)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_concurrent_stale_refresh_is_skipped() -> None:
    gate = asyncio.Event()
    fake = FakeTelemetry(_Clock(), gates={"A": gate})

    async with _monitor(fake, profiles=StaticProfileStore(visible_stores=["A"])) as monitor:
        first = asyncio.create_task(monitor.refresh_stale())
        await asyncio.wait_for(fake.entered.wait(), timeout=1)

        second = await monitor.refresh_stale()

        gate.set()
        report = await first

    assert second.skipped is True
    assert second.results == {}
    assert report.skipped is False
    assert report.results["A"].status == RefreshStatus.UPDATED
    assert [store_id for store_id, _ in fake.calls] == ["A"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_failed_refresh_leaves_cache_untouched() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock)

    async with _monitor(fake) as monitor:
        await monitor.refresh("A")
        before = monitor.get_cached_snapshot("A")

        fake.failing.add("A")
        clock.advance(minutes=10)
        report = await monitor.refresh("A")
        after = monitor.get_cached_snapshot("A")

    result = report.results["A"]
    assert result.status == RefreshStatus.FAILED
    assert result.error is not None
    assert "TankwatchTransportError" in result.error
    assert report.failed == ["A"]

    assert before is not None and after is not None
    assert after.entry == before.entry
    assert after.age_seconds == pytest.approx(600.0)
    assert after.freshness == Freshness.STALE


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_refresh_all_covers_upstream_stores_except_hidden() -> None:
    fake = FakeTelemetry(_Clock(), listed=["A", "B", "C"])
    profiles = StaticProfileStore(hidden_stores=["C"])

    async with _monitor(fake, profiles=profiles) as monitor:
        report = await monitor.refresh()
        background = await monitor.wait_background()
        cached = monitor.cache.store_ids()
        diagnostics = monitor.get_cache_diagnostics()

    assert set(report.results) | set(report.pending) == {"A", "B"}
    assert len(report.results) >= 1
    assert len(report.results) + len(background) >= 2
    assert cached == ["A", "B"]
    assert {store_id for store_id, _ in fake.calls} == {"A", "B"}
    assert diagnostics.entry_count == 2
    assert diagnostics.reading_count == 182
    assert diagnostics.persistence_degraded is False


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_store_listing_failure_falls_back_to_cached_stores() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock)

    async with _monitor(fake, profiles=StaticProfileStore()) as monitor:
        await monitor.refresh("A")
        fake.list_fails = True
        clock.advance(minutes=10)
        fake.calls.clear()

        report = await monitor.refresh_stale()

    assert list(report.results) == ["A"]
    assert [store_id for store_id, _ in fake.calls] == ["A"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_tank_without_profile_degrades_refresh() -> None:
    fake = FakeTelemetry(_Clock(), tanks=(1, 2))
    profiles = StaticProfileStore(
        [TankProfile(store_id="A", tank_id=1, tank_name="Regular")],
        auto_configure=False,
    )

    async with _monitor(fake, profiles=profiles) as monitor:
        report = await monitor.refresh_stale()
        view = monitor.get_cached_snapshot("A")

    result = report.results["A"]
    assert result.status == RefreshStatus.DEGRADED
    assert result.tanks_updated == 1
    assert any("tank 2" in warning for warning in result.warnings)
    assert view is not None
    assert list(view.entry.tanks) == [1]
    assert view.entry.tanks[1].tank_name == "Regular"


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_incremental_window_falls_back_to_days() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock, reject_hours=True)

    async with _monitor(fake, profiles=StaticProfileStore(visible_stores=["A"])) as monitor:
        await monitor.refresh("A")
        clock.advance(minutes=10)
        fake.calls.clear()

        report = await monitor.refresh_stale()

    assert fake.calls == [("A", ReadingWindow(hours=2)), ("A", ReadingWindow(days=1))]
    assert report.results["A"].status == RefreshStatus.UPDATED
    assert report.results["A"].mode == RefreshMode.INCREMENTAL


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_restart_serves_persisted_snapshot_without_fetching() -> None:
    clock = _Clock()
    backend = MemoryKeyValueStore()

    async with _monitor(FakeTelemetry(clock), backend=backend) as monitor:
        await monitor.refresh("A")

    clock.advance(minutes=1)
    restarted_fake = FakeTelemetry(clock)
    async with _monitor(restarted_fake, backend=backend) as monitor:
        view = monitor.get_cached_snapshot("A")

    assert restarted_fake.calls == []
    assert view is not None
    assert view.freshness == Freshness.FRESH
    assert view.entry.tanks[1].latest is not None
    assert view.entry.tanks[1].latest.level_inches == pytest.approx(82.0)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_persistence_failure_keeps_serving_from_memory() -> None:
    fake = FakeTelemetry(_Clock())

    async with _monitor(fake, backend=BrokenBackend()) as monitor:
        report = await monitor.refresh("A")
        view = monitor.get_cached_snapshot("A")
        diagnostics = monitor.get_cache_diagnostics()

    result = report.results["A"]
    assert result.status == RefreshStatus.DEGRADED
    assert any("serving from memory" in warning for warning in result.warnings)
    assert view is not None
    assert view.entry.tanks[1].rate is not None
    assert diagnostics.persistence_degraded is True


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_poll_loop_refreshes_then_sleeps_until_stopped() -> None:
    fake = FakeTelemetry(_Clock())
    sleep = BlockingSleep()

    async with _monitor(fake, sleep=sleep) as monitor:
        monitor.start()
        await asyncio.wait_for(sleep.slept.wait(), timeout=1)
        cached = monitor.cache.store_ids()
        await monitor.stop()

    assert cached == ["A", "B"]
    assert sleep.delays == [30.0]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_full_pull_feeds_whole_estimation_window_to_analytics() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock, history_days=12)

    async with _monitor(fake, profiles=StaticProfileStore(visible_stores=["A"])) as monitor:
        report = await monitor.refresh("A")
        full = monitor.get_cached_snapshot("A")

        clock.advance(minutes=10)
        await monitor.refresh_stale()
        incremental = monitor.get_cached_snapshot("A")

    assert fake.calls[0] == ("A", ReadingWindow(days=28))
    assert report.results["A"].readings_fetched == 217

    assert full is not None
    tank = full.entry.tanks[1]
    # Stored history stays pruned to retention
    assert len(tank.history) == 91
    assert tank.history[0].timestamp == _T0 - timedelta(days=5)
    # Readings up to twelve days old still reach the estimator
    assert tank.rate is not None
    assert tank.rate.sample_count == 217
    assert tank.rate.span_hours == pytest.approx(288.0)
    assert tank.rate.quality_score == pytest.approx(1.0)
    assert tank.latest is not None
    assert tank.latest.level_inches == pytest.approx(56.8)

    assert incremental is not None
    kept = incremental.entry.tanks[1]
    assert kept.rate is not None
    assert kept.rate.sample_count == 217
    assert kept.forecast is not None
    assert kept.forecast.computed_at == clock.now


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_unreachable_backend_degrades_refresh() -> None:
    fake = FakeTelemetry(_Clock())

    async with _monitor(fake, backend=UnreachableBackend()) as monitor:
        report = await monitor.refresh("A")
        view = monitor.get_cached_snapshot("A")
        diagnostics = monitor.get_cache_diagnostics()

    result = report.results["A"]
    assert result.status == RefreshStatus.DEGRADED
    assert any("serving from memory" in warning for warning in result.warnings)
    assert any("ConnectionError" in warning for warning in result.warnings)
    assert view is not None
    assert view.entry.tanks[1].latest is not None
    assert diagnostics.persistence_degraded is True


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_poll_loop_survives_unexpected_cycle_error() -> None:
    fake = FakeTelemetry(_Clock(), list_errors=[RuntimeError("listing crashed")])
    sleep = BlockingSleep(block_after=1)

    async with _monitor(fake, profiles=StaticProfileStore(), sleep=sleep) as monitor:
        monitor.start()
        await asyncio.wait_for(sleep.slept.wait(), timeout=1)
        cached = monitor.cache.store_ids()
        await monitor.stop()

    assert sleep.delays == [30.0, 30.0]
    assert cached == ["A", "B"]


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_manual_refresh_during_stale_refresh_keeps_history_union() -> None:
    clock = _Clock()
    fake = FakeTelemetry(clock)

    async with _monitor(fake, profiles=StaticProfileStore(visible_stores=["A"])) as monitor:
        await monitor.refresh("A")
        clock.advance(minutes=10)
        gate = asyncio.Event()
        fake.gates["A"] = gate

        stale = asyncio.create_task(monitor.refresh_stale())
        await asyncio.wait_for(fake.entered.wait(), timeout=1)

        clock.now = _T0 + timedelta(minutes=70)
        manual = await monitor.refresh("A")

        clock.now = _T0 + timedelta(minutes=130)
        gate.set()
        background = await stale
        view = monitor.get_cached_snapshot("A")

    assert manual.results["A"].mode == RefreshMode.FULL
    assert manual.results["A"].status == RefreshStatus.UPDATED
    assert background.results["A"].mode == RefreshMode.INCREMENTAL
    assert background.results["A"].status == RefreshStatus.UPDATED

    assert view is not None
    expected = fake._readings("A", since=clock.now - timedelta(days=5))
    history = view.entry.tanks[1].history
    assert [r.timestamp for r in history] == [r.timestamp for r in expected]
    assert len(history) == 90
    assert history[-1].timestamp == _T0 + timedelta(hours=2)
    assert view.entry.last_refreshed_at == _T0 + timedelta(minutes=130)
    assert view.entry.last_full_refresh_at == _T0 + timedelta(minutes=70)


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_refresh_all_waits_past_failures_for_first_merge() -> None:
    gate = asyncio.Event()
    fake = FakeTelemetry(_Clock(), failing={"A"}, gates={"B": gate})

    async with _monitor(fake) as monitor:
        task = asyncio.create_task(monitor.refresh())
        await asyncio.wait_for(fake.entered.wait(), timeout=1)
        for _ in range(5):
            await asyncio.sleep(0)
        waiting = not task.done()

        gate.set()
        report = await task

    assert waiting is True
    assert report.results["A"].status == RefreshStatus.FAILED
    assert report.results["B"].status == RefreshStatus.UPDATED
    assert report.pending == ()


def test_source_requires_context_manager() -> None:
    monitor = TankMonitor(TankwatchConfig())

    with pytest.raises(TankwatchError):
        _ = monitor.source
