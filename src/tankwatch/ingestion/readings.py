"""Turn upstream reading payloads into validated :class:`Reading` models."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from tankwatch.exceptions import TankwatchApiError
from tankwatch.models.reading import Reading

_logger = logging.getLogger(__name__)

# Keys under which a store payload may nest its reading list.
_LIST_KEYS = ("readings", "logs", "data", "items")


@dataclasses.dataclass(frozen=True)
class ParsedReadings:
    readings: tuple[Reading, ...]
    skipped: int = 0


def _tank_items(tank: Mapping[str, Any]) -> list[Any]:
    """Readings of one entry in a ``{"tanks": [...]}`` payload."""
    items: list[Any] = []
    tank_fields = {key: tank[key] for key in ("tank_id", "tank", "tankId", "product") if key in tank}
    for key in ("logs", "readings", "history"):
        nested = tank.get(key)
        if isinstance(nested, list):
            items.extend(nested)
    latest = tank.get("latest_reading") or tank.get("latest")
    if isinstance(latest, Mapping):
        items.append(latest)
    # Readings nested under a tank may omit the tank id
    return [{**tank_fields, **item} if isinstance(item, Mapping) else item for item in items]


def _extract_items(payload: Any, *, endpoint: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, Mapping):
        raise TankwatchApiError(f"Unexpected readings payload type {type(payload).__name__}", endpoint=endpoint)
    for key in _LIST_KEYS:
        nested = payload.get(key)
        if isinstance(nested, list):
            return nested
    tanks = payload.get("tanks")
    if isinstance(tanks, list):
        items: list[Any] = []
        for tank in tanks:
            if isinstance(tank, Mapping):
                items.extend(_tank_items(tank))
        return items
    raise TankwatchApiError(
        f"Readings payload has none of {', '.join((*_LIST_KEYS, 'tanks'))}",
        endpoint=endpoint,
    )


def parse_readings(payload: Any, store_id: str, *, endpoint: str = "") -> ParsedReadings:
    """Validate every reading in ``payload``.

    Accepts a bare list, a mapping with a reading list under one of the
    usual keys, or a ``{"tanks": [{"logs": [...], "latest_reading": {...}}]}``
    shape. Items that fail validation are skipped and counted; a payload
    that is not one of those shapes raises :class:`TankwatchApiError`.
    """
    items = _extract_items(payload, endpoint=endpoint)
    readings: list[Reading] = []
    skipped = 0
    for item in items:
        if not isinstance(item, Mapping):
            skipped += 1
            continue
        data = dict(item)
        if not any(key in data for key in ("store_id", "store_name", "storeId", "store")):
            data["store_id"] = store_id
        try:
            readings.append(Reading.model_validate(data))
        except ValidationError as exc:
            skipped += 1
            _logger.debug("Skipping malformed reading for store %s: %s", store_id, exc.errors()[:1])
    if skipped:
        _logger.debug("Store %s: skipped %d of %d reading items", store_id, skipped, len(items))
    return ParsedReadings(readings=tuple(readings), skipped=skipped)


def parse_store_ids(payload: Any, *, endpoint: str = "") -> list[str]:
    """Extract store ids from a store listing.

    Items may be plain ids or objects carrying ``store_id``/``store_name``/``id``.
    """
    if isinstance(payload, Mapping):
        payload = payload.get("stores", payload.get("data"))
    if not isinstance(payload, list):
        raise TankwatchApiError("Store listing is not a list", endpoint=endpoint)
    store_ids: list[str] = []
    for item in payload:
        value: Any = item
        if isinstance(item, Mapping):
            value = item.get("store_id") or item.get("store_name") or item.get("id")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            text = str(value).strip()
            if text and text not in store_ids:
                store_ids.append(text)
    return store_ids
