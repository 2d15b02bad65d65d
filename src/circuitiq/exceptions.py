"""Custom exception hierarchy for circuitiq."""

from __future__ import annotations


class CircuitIQError(Exception):
    """Base exception for all circuitiq errors."""


class CircuitIQConfigError(CircuitIQError):
    """Invalid or missing configuration."""


class CircuitIQTransportError(CircuitIQError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

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


class CircuitIQApiError(CircuitIQError):
    """Server answered but the payload could not be used (unexpected shape, invalid data)."""

    def __init__(
        self,
        message: str,
        *,
        endpoint: str = "",
    ) -> None:
        self.endpoint = endpoint
        super().__init__(message)


class CircuitIQPushError(CircuitIQError):
    """WebSocket push channel could not be opened."""
