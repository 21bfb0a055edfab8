"""Key-value backends for the tiered store cache."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote

from tankwatch.exceptions import TankwatchPersistenceError

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Structural interface for the persistence backend.

    Any store that can get, set and delete byte values by string key
    satisfies it; implementations raise
    :class:`~tankwatch.exceptions.TankwatchPersistenceError` on failure.
    """

    def get(self, key: str) -> bytes | None:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Process-local backend; nothing survives a restart."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileKeyValueStore:
    """One file per key under ``directory``.

    Keys are percent-encoded into file names. Writes go to a temporary
    file in the same directory and are moved into place, so a crash never
    leaves a half-written value behind.
    """

    _SUFFIX = ".json"

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}{self._SUFFIX}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise TankwatchPersistenceError(f"Failed to read {path}: {exc}", key=key) from exc

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-", suffix=self._SUFFIX)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise TankwatchPersistenceError(f"Failed to write {path}: {exc}", key=key) from exc
        _logger.debug("Wrote %d bytes to %s", len(value), path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise TankwatchPersistenceError(f"Failed to delete {path}: {exc}", key=key) from exc

    def keys(self) -> list[str]:
        if not self._directory.is_dir():
            return []
        return sorted(
            unquote(path.name[: -len(self._SUFFIX)])
            for path in self._directory.glob(f"*{self._SUFFIX}")
            if not path.name.startswith(".tmp-")
        )
