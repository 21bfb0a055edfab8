"""Telemetry source: where readings come from."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from tankwatch._api._common import Sleep, with_retries
from tankwatch._api.stores import fetch_store_ids, fetch_store_readings
from tankwatch._transport import Transport
from tankwatch.models.reading import Reading
from tankwatch.models.requests import ReadingWindow

_logger = logging.getLogger(__name__)


class TelemetrySource(Protocol):
    """Structural interface of the upstream reading source.

    Implementations raise :class:`~tankwatch.exceptions.TankwatchError`
    subclasses on failure; the refresh cycle turns those into per-store
    results.
    """

    async def list_stores(self) -> list[str]:
        ...

    async def get_store_readings(self, store_id: str, window: ReadingWindow) -> Sequence[Reading]:
        ...


class HttpTelemetrySource:
    """Telemetry server client with bounded retry and exponential backoff."""

    def __init__(
        self,
        transport: Transport,
        *,
        max_attempts: int = 3,
        retry_base_delay: float = 3.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep

    async def list_stores(self) -> list[str]:
        return await with_retries(
            lambda: fetch_store_ids(self._transport),
            max_attempts=self._max_attempts,
            base_delay=self._retry_base_delay,
            sleep=self._sleep,
            description="store listing",
        )

    async def get_store_readings(self, store_id: str, window: ReadingWindow) -> Sequence[Reading]:
        parsed = await with_retries(
            lambda: fetch_store_readings(self._transport, store_id, window),
            max_attempts=self._max_attempts,
            base_delay=self._retry_base_delay,
            sleep=self._sleep,
            description=f"readings for store {store_id}",
        )
        if parsed.skipped:
            _logger.debug("Store %s: %d malformed reading(s) skipped", store_id, parsed.skipped)
        return parsed.readings
