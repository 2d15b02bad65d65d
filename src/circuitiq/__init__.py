"""circuitiq - Async Python client for CircuitIQ power-monitoring devices."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("circuitiq")
except PackageNotFoundError:
    __version__ = "0+local"
from circuitiq._transport import HttpPullTransport, PullTransport
from circuitiq._websocket import PushTransport, WebSocketPushTransport
from circuitiq.config import CircuitIQConfig
from circuitiq.exceptions import (
    CircuitIQApiError,
    CircuitIQConfigError,
    CircuitIQError,
    CircuitIQPushError,
    CircuitIQTransportError,
)
from circuitiq.history import ChartBuffer, ChartChannel, ChartPoint
from circuitiq.models import (
    ChannelReading,
    DeviceInfo,
    Reading,
    SessionPhase,
    SessionSnapshot,
    Statistics,
)
from circuitiq.preferences import InMemoryStore, KeyValueStore, SessionPreferences
from circuitiq.session import DeviceSession

__all__ = [
    "__version__",
    "ChannelReading",
    "ChartBuffer",
    "ChartChannel",
    "ChartPoint",
    "CircuitIQApiError",
    "CircuitIQConfig",
    "CircuitIQConfigError",
    "CircuitIQError",
    "CircuitIQPushError",
    "CircuitIQTransportError",
    "DeviceInfo",
    "DeviceSession",
    "HttpPullTransport",
    "InMemoryStore",
    "KeyValueStore",
    "PullTransport",
    "PushTransport",
    "Reading",
    "SessionPhase",
    "SessionPreferences",
    "SessionSnapshot",
    "Statistics",
    "WebSocketPushTransport",
]
