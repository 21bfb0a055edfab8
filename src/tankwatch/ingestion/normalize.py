"""Normalization helpers.

Centralizes defensive parsing and placeholder handling.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO string or epoch number (seconds or ms) to a UTC datetime.

    Naive datetimes and offset-less ISO strings are taken to be UTC.
    Returns ``None`` for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if not math.isfinite(ts) or ts <= 0:
            return None
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    if isinstance(value, str):
        text = value.strip()
        numeric = safe_float(text)
        if numeric is not None:
            return parse_timestamp(numeric)
        # fromisoformat() on 3.11 accepts a trailing "Z"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None
