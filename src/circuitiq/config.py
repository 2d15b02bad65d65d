"""Client configuration for circuitiq."""

from __future__ import annotations

import dataclasses
import os
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit, urlunsplit

from circuitiq.exceptions import CircuitIQConfigError

if TYPE_CHECKING:
    from circuitiq.preferences import KeyValueStore

DEFAULT_SERVER_URL = "http://localhost:3000"
DEFAULT_DEVICE_TYPE = "circuitiq"
DEFAULT_STATE_AFFECTING_COMMANDS: frozenset[str] = frozenset({"status", "test", "diagnostics"})


def _env_float(value: str | None, name: str) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise CircuitIQConfigError(f"{name} must be a number, got {value!r}") from exc


def derive_push_url(server_url: str) -> str:
    """Map an HTTP(S) server URL to its WebSocket endpoint.

    ``http://host:3000`` becomes ``ws://host:3000/ws``.  A URL that
    already uses ``ws``/``wss`` is returned unchanged.
    """
    parts = urlsplit(server_url)
    if parts.scheme in ("ws", "wss"):
        return server_url
    scheme = {"http": "ws", "https": "wss"}.get(parts.scheme, parts.scheme)
    path = parts.path.rstrip("/") + "/ws"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


@dataclasses.dataclass(frozen=True)
class CircuitIQConfig:
    """Client configuration.

    Parameters
    ----------
    server_url : str
        Base URL of the CircuitIQ REST API.
    push_url : str or None
        WebSocket URL.  Derived from ``server_url`` when omitted.
    device_type : str
        Only devices of this type are kept in the catalog.
    max_data_points : int
        Capacity of each chart history series.
    relay_settle_delay : float
        Seconds to wait after a relay/state command before the
        confirmation refresh.
    mock_data_settle_delay : float
        Seconds to wait after generating mock data before refreshing.
    state_affecting_commands : frozenset of str
        Command names followed by a confirmation refresh.
    request_timeout : float
        Total HTTP request timeout in seconds.  ``0`` disables it.
    ws_heartbeat : float
        WebSocket ping interval in seconds.  ``0`` disables it.
    api_token : str or None
        Optional bearer token sent with every HTTP request.
    """

    server_url: str = DEFAULT_SERVER_URL
    push_url: str | None = None
    device_type: str = DEFAULT_DEVICE_TYPE
    max_data_points: int = 100
    relay_settle_delay: float = 0.5
    mock_data_settle_delay: float = 0.3
    state_affecting_commands: frozenset[str] = DEFAULT_STATE_AFFECTING_COMMANDS
    request_timeout: float = 10.0
    ws_heartbeat: float = 30.0
    api_token: str | None = None

    def __post_init__(self) -> None:
        if not self.server_url.strip():
            raise CircuitIQConfigError("server_url must be non-empty")
        if self.max_data_points < 1:
            raise CircuitIQConfigError(f"max_data_points must be >= 1, got {self.max_data_points}")
        for name in ("relay_settle_delay", "mock_data_settle_delay", "request_timeout", "ws_heartbeat"):
            if getattr(self, name) < 0:
                raise CircuitIQConfigError(f"{name} must be >= 0")
        # Normalise trailing slashes once so URL joins stay simple.
        object.__setattr__(self, "server_url", self.server_url.strip().rstrip("/"))
        if not isinstance(self.state_affecting_commands, frozenset):
            object.__setattr__(self, "state_affecting_commands", frozenset(self.state_affecting_commands))

    @property
    def resolved_push_url(self) -> str:
        return self.push_url or derive_push_url(self.server_url)

    @classmethod
    def from_env(cls, **overrides: Any) -> CircuitIQConfig:
        """Create configuration from ``CIRCUITIQ_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "CIRCUITIQ_SERVER_URL": "server_url",
            "CIRCUITIQ_PUSH_URL": "push_url",
            "CIRCUITIQ_DEVICE_TYPE": "device_type",
            "CIRCUITIQ_API_TOKEN": "api_token",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        max_points_env = env.get("CIRCUITIQ_MAX_DATA_POINTS")
        if max_points_env is not None and "max_data_points" not in overrides:
            try:
                config_kwargs["max_data_points"] = int(max_points_env)
            except ValueError as exc:
                raise CircuitIQConfigError(
                    f"CIRCUITIQ_MAX_DATA_POINTS must be an integer, got {max_points_env!r}"
                ) from exc

        _ENV_FLOAT_MAP = {
            "CIRCUITIQ_RELAY_SETTLE_DELAY": "relay_settle_delay",
            "CIRCUITIQ_MOCK_DATA_SETTLE_DELAY": "mock_data_settle_delay",
            "CIRCUITIQ_REQUEST_TIMEOUT": "request_timeout",
            "CIRCUITIQ_WS_HEARTBEAT": "ws_heartbeat",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            parsed = _env_float(env.get(env_key), env_key)
            if parsed is not None and field_name not in overrides:
                config_kwargs[field_name] = parsed

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

    @classmethod
    def from_preferences(cls, store: KeyValueStore, **overrides: Any) -> CircuitIQConfig:
        """Create configuration from persisted session preferences.

        Only the server URL is persisted; everything else comes from
        defaults or *overrides*.
        """
        from circuitiq.preferences import SessionPreferences

        config_kwargs: dict[str, Any] = {}
        server_url = SessionPreferences(store).server_url
        if server_url:
            config_kwargs["server_url"] = server_url
        config_kwargs.update(overrides)
        return cls(**config_kwargs)
