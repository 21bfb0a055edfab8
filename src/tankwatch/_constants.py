"""Shared constants for tankwatch."""

USER_AGENT = "tankwatch/0.4 (+aiohttp)"

STORES_ENDPOINT = "/dashboard/stores"
STORE_READINGS_ENDPOINT = "/dashboard/stores/{store_id}"
