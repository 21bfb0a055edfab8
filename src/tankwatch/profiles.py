"""Configuration store: tank profiles and the visible-store list."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from tankwatch.exceptions import TankwatchConfigError
from tankwatch.models.profile import TankProfile, default_profile

_logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    """Structural interface of the configuration store."""

    def get_tank_profile(self, store_id: str, tank_id: int, *, product: str | None = None) -> TankProfile | None:
        ...

    def list_visible_stores(self) -> list[str]:
        ...

    def is_hidden(self, store_id: str) -> bool:
        ...


class StaticProfileStore:
    """In-memory profile store built from already-validated profiles.

    Parameters
    ----------
    profiles : iterable of TankProfile
        Configured tanks.
    visible_stores : iterable of str or None
        Explicit list of stores to monitor. ``None`` means every store
        with a configured profile.
    hidden_stores : iterable of str
        Stores the operator has hidden; never visible.
    auto_configure : bool
        Hand out :func:`default_profile` for tanks with no configuration
        instead of ``None``.
    """

    def __init__(
        self,
        profiles: Iterable[TankProfile] = (),
        *,
        visible_stores: Iterable[str] | None = None,
        hidden_stores: Iterable[str] = (),
        auto_configure: bool = True,
    ) -> None:
        self._profiles: dict[tuple[str, int], TankProfile] = {}
        for profile in profiles:
            key = (profile.store_id, profile.tank_id)
            if key in self._profiles:
                raise TankwatchConfigError(f"duplicate profile for store {key[0]} tank {key[1]}")
            self._profiles[key] = profile
        self._visible = list(dict.fromkeys(visible_stores)) if visible_stores is not None else None
        self._hidden = frozenset(hidden_stores)
        self._auto_configure = auto_configure
        self._auto_configured: dict[tuple[str, int], TankProfile] = {}

    @classmethod
    def from_dicts(
        cls,
        profiles: Iterable[Mapping[str, Any]],
        **kwargs: Any,
    ) -> StaticProfileStore:
        """Validate raw profile mappings; invalid ones fail the whole load."""
        validated: list[TankProfile] = []
        for index, raw in enumerate(profiles):
            try:
                validated.append(TankProfile.model_validate(raw))
            except ValidationError as exc:
                raise TankwatchConfigError(f"invalid tank profile #{index}: {exc}") from exc
        return cls(validated, **kwargs)

    @classmethod
    def from_json_file(cls, path: str | Path, **kwargs: Any) -> StaticProfileStore:
        """Load ``{"profiles": [...], "visible_stores": [...], "hidden_stores": [...]}``.

        A bare JSON list is treated as the profile list. Keyword arguments
        override values from the file.
        """
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise TankwatchConfigError(f"cannot read tank profiles from {path}: {exc}") from exc
        if isinstance(document, list):
            document = {"profiles": document}
        if not isinstance(document, dict):
            raise TankwatchConfigError(f"tank profile file {path} must hold an object or a list")
        kwargs.setdefault("visible_stores", document.get("visible_stores"))
        kwargs.setdefault("hidden_stores", document.get("hidden_stores") or ())
        return cls.from_dicts(document.get("profiles") or [], **kwargs)

    @property
    def auto_configured(self) -> frozenset[tuple[str, int]]:
        """Tanks that were handed a default profile so far."""
        return frozenset(self._auto_configured)

    def get_tank_profile(self, store_id: str, tank_id: int, *, product: str | None = None) -> TankProfile | None:
        profile = self._profiles.get((store_id, tank_id))
        if profile is not None:
            return profile
        if not self._auto_configure:
            return None
        profile = self._auto_configured.get((store_id, tank_id))
        if profile is None:
            _logger.info("Auto-configuring default profile for store %s tank %s", store_id, tank_id)
            profile = default_profile(store_id, tank_id, product=product)
            self._auto_configured[(store_id, tank_id)] = profile
        return profile

    def list_visible_stores(self) -> list[str]:
        """Stores to monitor; empty means "whatever upstream lists"."""
        if self._visible is not None:
            candidates = self._visible
        else:
            candidates = list(dict.fromkeys(store_id for store_id, _ in self._profiles))
        return [store_id for store_id in candidates if store_id not in self._hidden]

    def is_hidden(self, store_id: str) -> bool:
        return store_id in self._hidden
