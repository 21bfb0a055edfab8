"""High-level async monitor: instant cached reads, background refresh."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import aiohttp

from tankwatch._api._common import Sleep
from tankwatch._cache import ResultCache
from tankwatch._client.refresh import refresh_store
from tankwatch._transport import HttpTransport
from tankwatch.config import TankwatchConfig
from tankwatch.exceptions import TankwatchError
from tankwatch.models.requests import StoreRequest
from tankwatch.models.results import (
    CacheDiagnostics,
    RefreshReport,
    RefreshStatus,
    SnapshotView,
    StoreRefreshResult,
)
from tankwatch.profiles import ProfileStore, StaticProfileStore
from tankwatch.state.backends import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from tankwatch.state.store import TieredStoreCache
from tankwatch.telemetry import HttpTelemetrySource, TelemetrySource

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TankMonitor:
    """Async monitor for fuel tank consumption.

    Reads are served from the tiered store cache without touching the
    network; refreshes fetch, analyze and merge in the background.

    Usage::

        async with TankMonitor(config, profiles=profiles) as monitor:
            await monitor.refresh("store-12")
            view = monitor.get_cached_snapshot("store-12")
    """

    def __init__(
        self,
        config: TankwatchConfig | None = None,
        *,
        profiles: ProfileStore | None = None,
        source: TelemetrySource | None = None,
        backend: KeyValueStore | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config or TankwatchConfig()
        self._clock = clock
        self._sleep = sleep
        self._external_session = session is not None
        self._http_session = session
        self._external_source = source is not None
        self._source = source
        self._profiles: ProfileStore = profiles or StaticProfileStore(
            auto_configure=self._config.auto_configure_profiles
        )

        if backend is None:
            backend = FileKeyValueStore(self._config.cache_dir) if self._config.cache_dir else MemoryKeyValueStore()
        self._cache = TieredStoreCache(
            backend,
            staleness_threshold=timedelta(seconds=self._config.staleness_threshold),
            retention=timedelta(days=self._config.retention_days),
            max_entry_age=timedelta(days=self._config.max_entry_age_days),
            full_refresh_interval=timedelta(seconds=self._config.full_refresh_interval),
            clock=clock,
        )
        self._result_cache = ResultCache(
            ttl=self._config.result_cache_ttl,
            capacity=self._config.result_cache_capacity,
            min_quality=self._config.result_cache_min_quality,
            settings=self._config.analytics,
            clock=clock,
        )

        self._refresh_lock = asyncio.Lock()
        self._background: set[asyncio.Task[StoreRefreshResult]] = set()
        self._poll_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TankMonitor:
        if self._source is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = HttpTransport(self._config, self._http_session)
            self._source = HttpTelemetrySource(
                transport,
                max_attempts=self._config.max_attempts,
                retry_base_delay=self._config.retry_base_delay,
                sleep=self._sleep,
            )
        self._cache.load_all()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_source:
            self._source = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def config(self) -> TankwatchConfig:
        return self._config

    @property
    def cache(self) -> TieredStoreCache:
        return self._cache

    @property
    def result_cache(self) -> ResultCache:
        return self._result_cache

    @property
    def profiles(self) -> ProfileStore:
        return self._profiles

    @property
    def source(self) -> TelemetrySource:
        if self._source is None:
            raise TankwatchError("Monitor not initialized. Use 'async with TankMonitor(...) as monitor:'")
        return self._source

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    def get_cached_snapshot(self, store_id: str) -> SnapshotView | None:
        """Instant read of the cached entry plus its freshness.

        ``None`` only when no refresh for this store has ever succeeded
        (or its entry has expired).
        """
        return self._cache.view(StoreRequest(store_id=store_id).store_id)

    def get_cache_diagnostics(self) -> CacheDiagnostics:
        return self._cache.diagnostics()

    async def target_store_ids(self) -> list[str]:
        """Stores refresh cycles should cover.

        The configured visible-store list wins; when it is empty every
        store upstream lists is visible except hidden ones. If the listing
        itself fails, the already-cached stores are used.
        """
        visible = self._profiles.list_visible_stores()
        if visible:
            return visible
        try:
            upstream = await self.source.list_stores()
        except TankwatchError as exc:
            _logger.warning("Store listing failed, refreshing cached stores only: %s", exc)
            return self._cache.store_ids()
        return [store_id for store_id in upstream if not self._profiles.is_hidden(store_id)]

    async def refresh(self, store_id: str | None = None) -> RefreshReport:
        """Force a refresh now.

        Memoized analytics for the affected stores are dropped first. For
        one store this returns when its merge is done. For all stores it
        returns once the first store has merged (or every store failed);
        the rest keep running in the background and are listed in
        ``pending`` (see :meth:`wait_background`).
        """
        if store_id is not None:
            request = StoreRequest(store_id=store_id)
            self._result_cache.invalidate(request.store_id)
            result = await refresh_store(self, request.store_id, force=True)
            return RefreshReport(results={request.store_id: result})

        store_ids = await self.target_store_ids()
        if not store_ids:
            return RefreshReport()
        for sid in store_ids:
            self._result_cache.invalidate(sid)

        tasks = {
            asyncio.create_task(refresh_store(self, sid, force=True), name=f"tankwatch-refresh-{sid}"): sid
            for sid in store_ids
        }
        for task in tasks:
            self._track(task)
        results: dict[str, StoreRefreshResult] = {}
        pending: set[asyncio.Task[StoreRefreshResult]] = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                results[tasks[task]] = task.result()
            if any(result.status != RefreshStatus.FAILED for result in results.values()):
                break
        return RefreshReport(
            results=results,
            pending=tuple(sid for task, sid in tasks.items() if task in pending),
        )

    async def refresh_stale(self) -> RefreshReport:
        """Refresh only stores whose cached entry is missing or stale.

        A call that finds another stale refresh still running does nothing
        and returns a report with ``skipped=True``.
        """
        if self._refresh_lock.locked():
            _logger.debug("Stale refresh already in progress, skipping")
            return RefreshReport(skipped=True)
        async with self._refresh_lock:
            stale = self._cache.stale_store_ids(await self.target_store_ids())
            if not stale:
                return RefreshReport()
            _logger.debug("Refreshing %d stale store(s): %s", len(stale), ", ".join(stale))
            results = await asyncio.gather(*(refresh_store(self, sid) for sid in stale))
            return RefreshReport(results={result.store_id: result for result in results})

    def _track(self, task: asyncio.Task[StoreRefreshResult]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_background(self) -> list[StoreRefreshResult]:
        """Wait for refreshes left running by :meth:`refresh`."""
        results: list[StoreRefreshResult] = []
        while self._background:
            batch = list(self._background)
            self._background.difference_update(batch)
            results.extend(await asyncio.gather(*batch))
        return results

    # ------------------------------------------------------------------
    # Background polling
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while True:
            try:
                report = await self.refresh_stale()
                if report.failed:
                    _logger.warning("Background refresh failed for: %s", ", ".join(report.failed))
            except Exception:
                _logger.warning("Background refresh cycle failed", exc_info=True)
            await self._sleep(self._config.poll_interval)

    def start(self) -> None:
        """Start refreshing stale stores every ``poll_interval`` seconds."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.create_task(self._poll_loop(), name="tankwatch-poll")

    async def stop(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
