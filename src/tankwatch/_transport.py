"""HTTP transport for the telemetry server."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from tankwatch._constants import USER_AGENT
from tankwatch.config import TankwatchConfig
from tankwatch.exceptions import TankwatchTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport with a per-request timeout."""

    def __init__(self, config: TankwatchConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "cache-control": "no-cache",
            "user-agent": USER_AGENT,
        }
        if self._config.api_key:
            headers["authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def get_json(self, endpoint: str, params: Mapping[str, str] | None = None) -> Any:
        """GET ``endpoint`` and decode the JSON body.

        Network errors, timeouts, non-2xx responses and undecodable bodies
        all raise :class:`TankwatchTransportError`; ``status_code`` is set
        only when the server answered.
        """
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        _logger.debug("GET %s %s", url, dict(params or {}))

        try:
            async with self._http.get(url, params=params, headers=self._headers(), timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise TankwatchTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except TankwatchTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise TankwatchTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise TankwatchTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TankwatchTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
