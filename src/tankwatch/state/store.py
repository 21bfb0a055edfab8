"""Tiered store cache.

Memory is the first tier and always authoritative; the key-value backend
is the second tier and lets a restarted process answer instantly from the
last persisted snapshots. This is the only component allowed to merge
store updates or touch the backend.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from typing import TypeVar
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from tankwatch.exceptions import TankwatchPersistenceError
from tankwatch.models.results import CacheDiagnostics, RefreshMode, SaveResult, SnapshotView
from tankwatch.models.snapshot import StoreCacheEntry
from tankwatch.state.backends import KeyValueStore, MemoryKeyValueStore
from tankwatch.state.events import StoreUpdate
from tankwatch.state.policy import freshness, is_expired, merge_store_entry, needs_refresh, refresh_mode

_logger = logging.getLogger(__name__)

_INDEX_SUFFIX = "__index__"

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _encode(entry: StoreCacheEntry) -> bytes:
    return entry.model_dump_json().encode("utf-8")


class TieredStoreCache:
    """Per-store snapshots with staleness tracking and persistence fallback.

    Parameters
    ----------
    backend : KeyValueStore or None
        Persistence tier. Defaults to a process-local memory store.
    staleness_threshold : timedelta
        Entries refreshed longer ago than this need a refresh.
    retention : timedelta
        History window kept per tank.
    max_entry_age : timedelta
        Entries created longer ago than this are treated as absent.
    full_refresh_interval : timedelta
        Entries whose last full pull is older than this get a full pull.
    key_prefix : str
        Namespace for backend keys.
    clock : callable
        Returns the current tz-aware time.
    """

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        *,
        staleness_threshold: timedelta = timedelta(minutes=5),
        retention: timedelta = timedelta(days=5),
        max_entry_age: timedelta = timedelta(days=5),
        full_refresh_interval: timedelta = timedelta(minutes=30),
        key_prefix: str = "tankwatch:store:",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend: KeyValueStore = backend if backend is not None else MemoryKeyValueStore()
        self._staleness_threshold = staleness_threshold
        self._retention = retention
        self._max_entry_age = max_entry_age
        self._full_refresh_interval = full_refresh_interval
        self._prefix = key_prefix
        self._clock = clock
        self._entries: dict[str, StoreCacheEntry] = {}
        self._last_saved_at: datetime | None = None
        self._degraded = False

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    @property
    def persistence_degraded(self) -> bool:
        return self._degraded

    def _key(self, store_id: str) -> str:
        return f"{self._prefix}{store_id}"

    @property
    def _index_key(self) -> str:
        return f"{self._prefix}{_INDEX_SUFFIX}"

    # ------------------------------------------------------------------
    # Backend access
    # ------------------------------------------------------------------

    def _guarded(self, operation: str, key: str, call: Callable[[], T]) -> T:
        """Run a backend call; whatever it raises surfaces as a persistence error."""
        try:
            return call()
        except TankwatchPersistenceError:
            raise
        except Exception as exc:
            raise TankwatchPersistenceError(
                f"Backend {operation} of {key} failed: {type(exc).__name__}: {exc}",
                key=key,
            ) from exc

    def _backend_get(self, key: str) -> bytes | None:
        return self._guarded("read", key, lambda: self._backend.get(key))

    def _backend_set(self, key: str, value: bytes) -> None:
        self._guarded("write", key, lambda: self._backend.set(key, value))

    def _backend_delete(self, key: str) -> None:
        self._guarded("delete", key, lambda: self._backend.delete(key))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read_backend(self, store_id: str) -> StoreCacheEntry | None:
        key = self._key(store_id)
        try:
            raw = self._backend_get(key)
        except TankwatchPersistenceError as exc:
            _logger.warning("Could not read cached entry for store %s: %s", store_id, exc)
            return None
        if raw is None:
            return None
        try:
            return StoreCacheEntry.model_validate_json(raw)
        except (ValidationError, ValueError):
            _logger.warning("Discarding undecodable cached entry for store %s", store_id, exc_info=True)
            self._delete_key(key)
            return None

    def _delete_key(self, key: str) -> None:
        try:
            self._backend_delete(key)
        except TankwatchPersistenceError as exc:
            _logger.debug("Failed to delete %s: %s", key, exc)

    def get(self, store_id: str) -> StoreCacheEntry | None:
        """Return the cached entry, or ``None`` if absent or expired.

        Memory is consulted first, then the backend. An expired entry is
        dropped from both tiers so the next refresh is a full one.
        """
        entry = self._entries.get(store_id)
        if entry is None:
            entry = self._read_backend(store_id)
            if entry is None:
                return None
            self._entries[store_id] = entry

        if is_expired(self._clock(), entry.created_at, self._max_entry_age):
            _logger.debug("Cached entry for store %s exceeded its maximum age", store_id)
            self._entries.pop(store_id, None)
            self._delete_key(self._key(store_id))
            return None
        return entry

    def view(self, store_id: str) -> SnapshotView | None:
        """The cached entry together with a freshness indicator."""
        entry = self.get(store_id)
        if entry is None:
            return None
        age = max(0.0, (self._clock() - entry.last_refreshed_at).total_seconds())
        return SnapshotView(entry=entry, freshness=freshness(age), age_seconds=age)

    def store_ids(self) -> list[str]:
        return sorted(self._entries)

    def needs_refresh(self, entry: StoreCacheEntry | None) -> bool:
        return needs_refresh(entry, self._clock(), self._staleness_threshold)

    def refresh_mode(self, entry: StoreCacheEntry | None) -> RefreshMode:
        return refresh_mode(entry, self._clock(), self._full_refresh_interval)

    def stale_store_ids(self, store_ids: Iterable[str] | None = None) -> list[str]:
        """Stores (of ``store_ids``, default all cached) that need a refresh."""
        candidates = list(store_ids) if store_ids is not None else self.store_ids()
        return [store_id for store_id in candidates if self.needs_refresh(self.get(store_id))]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def merge(self, update: StoreUpdate) -> StoreCacheEntry:
        """Merge ``update`` into the in-memory entry and return the result."""
        existing = self.get(update.store_id)
        merged = merge_store_entry(existing, update, now=self._clock(), retention=self._retention)
        self._entries[update.store_id] = merged
        _logger.debug(
            "Merged %s update for store %s: %d tanks, %d retained readings",
            update.mode,
            update.store_id,
            len(merged.tanks),
            merged.reading_count,
        )
        return merged

    def apply(self, update: StoreUpdate) -> tuple[StoreCacheEntry, SaveResult]:
        """Merge and persist in one step."""
        merged = self.merge(update)
        return merged, self.save(merged)

    def _write(self, entry: StoreCacheEntry) -> None:
        self._backend_set(self._key(entry.store_id), _encode(entry))
        index = json.dumps(sorted(set(self._entries) | {entry.store_id})).encode("utf-8")
        self._backend_set(self._index_key, index)

    def _clear_backend(self, store_ids: Iterable[str]) -> None:
        for store_id in set(store_ids) | set(self._read_index()):
            self._delete_key(self._key(store_id))
        self._delete_key(self._index_key)

    def save(self, entry: StoreCacheEntry) -> SaveResult:
        """Persist ``entry``; memory stays authoritative if that fails.

        A failed write clears the backend once and retries. After a
        successful retry the other in-memory entries are re-persisted on a
        best-effort basis. A second failure is reported in the result
        rather than raised.
        """
        self._entries[entry.store_id] = entry
        try:
            self._write(entry)
        except TankwatchPersistenceError as first:
            _logger.warning("Persisting store %s failed, clearing backend and retrying: %s", entry.store_id, first)
            self._clear_backend(self._entries)
            try:
                self._write(entry)
            except TankwatchPersistenceError as second:
                self._degraded = True
                message = f"store {entry.store_id}: persistence failed after retry ({second}); serving from memory"
                _logger.warning(message)
                return SaveResult(persisted=False, retried=True, warnings=(message,))
            self._repersist_others(entry.store_id)
            self._mark_saved()
            return SaveResult(
                persisted=True,
                retried=True,
                warnings=(f"store {entry.store_id}: backend was cleared after a write failure ({first})",),
            )
        self._mark_saved()
        return SaveResult(persisted=True)

    def _repersist_others(self, store_id: str) -> None:
        for other_id, other in self._entries.items():
            if other_id == store_id:
                continue
            try:
                self._backend_set(self._key(other_id), _encode(other))
            except TankwatchPersistenceError as exc:
                _logger.debug("Could not re-persist store %s: %s", other_id, exc)

    def _mark_saved(self) -> None:
        self._degraded = False
        self._last_saved_at = self._clock()

    def invalidate(self, store_id: str) -> None:
        """Forget one store in both tiers."""
        self._entries.pop(store_id, None)
        self._delete_key(self._key(store_id))
        try:
            self._backend_set(self._index_key, json.dumps(sorted(self._entries)).encode("utf-8"))
        except TankwatchPersistenceError as exc:
            _logger.debug("Could not rewrite cache index: %s", exc)

    def clear(self) -> None:
        self._clear_backend(self._entries)
        self._entries.clear()
        self._last_saved_at = None

    def _read_index(self) -> list[str]:
        try:
            raw = self._backend_get(self._index_key)
        except TankwatchPersistenceError as exc:
            _logger.warning("Could not read cache index: %s", exc)
            return []
        if raw is None:
            return []
        try:
            decoded = json.loads(raw)
        except ValueError:
            _logger.warning("Discarding undecodable cache index")
            return []
        if not isinstance(decoded, list):
            return []
        return [str(item) for item in decoded]

    def load_all(self) -> list[str]:
        """Load every indexed entry from the backend into memory.

        Returns the store ids that were loaded (expired and undecodable
        entries are dropped on the way).
        """
        loaded: list[str] = []
        for store_id in self._read_index():
            if self.get(store_id) is not None:
                loaded.append(store_id)
        _logger.debug("Loaded %d cached store entries from backend", len(loaded))
        return loaded

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def diagnostics(self) -> CacheDiagnostics:
        now = self._clock()
        entries = list(self._entries.values())
        return CacheDiagnostics(
            age_seconds=(now - self._last_saved_at).total_seconds() if self._last_saved_at is not None else None,
            size_bytes=sum(len(_encode(entry)) for entry in entries),
            entry_count=len(entries),
            stale_count=sum(1 for entry in entries if needs_refresh(entry, now, self._staleness_threshold)),
            reading_count=sum(entry.reading_count for entry in entries),
            persistence_degraded=self._degraded,
        )
