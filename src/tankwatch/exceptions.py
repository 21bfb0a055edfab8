"""Custom exception hierarchy for tankwatch."""

from __future__ import annotations


class TankwatchError(Exception):
    """Base exception for all tankwatch errors."""


class TankwatchConfigError(TankwatchError):
    """Invalid or missing configuration (settings or tank profiles)."""


class TankwatchTransportError(TankwatchError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class TankwatchApiError(TankwatchError):
    """Telemetry source returned well-formed JSON with an unexpected shape."""

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)


class TankwatchPersistenceError(TankwatchError):
    """Backing key-value store rejected a read or write.

    The tiered cache never lets this escape a refresh cycle; it is
    converted into a warning on the refresh result and the in-memory
    snapshot stays authoritative.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)
