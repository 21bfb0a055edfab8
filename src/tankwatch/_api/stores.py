"""Store listing and reading endpoints."""

from __future__ import annotations

from urllib.parse import quote

from tankwatch._constants import STORE_READINGS_ENDPOINT, STORES_ENDPOINT
from tankwatch._transport import Transport
from tankwatch.ingestion.readings import ParsedReadings, parse_readings, parse_store_ids
from tankwatch.models.requests import ReadingWindow


async def fetch_store_ids(transport: Transport) -> list[str]:
    """Fetch the ids of every store the telemetry server knows."""
    payload = await transport.get_json(STORES_ENDPOINT)
    return parse_store_ids(payload, endpoint=STORES_ENDPOINT)


async def fetch_store_readings(transport: Transport, store_id: str, window: ReadingWindow) -> ParsedReadings:
    """Fetch one store's readings for an hours- or days-bounded window."""
    endpoint = STORE_READINGS_ENDPOINT.format(store_id=quote(store_id, safe=""))
    payload = await transport.get_json(endpoint, window.query)
    return parse_readings(payload, store_id, endpoint=endpoint)
