"""Data models for CircuitIQ API payloads and session state."""

from circuitiq.models._base import ApiDatetime, ApiTimestamp, CircuitIQBaseModel, parse_timestamp
from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import ChannelReading, Reading
from circuitiq.models.requests import (
    CommandRequest,
    ConfigValue,
    DeviceRequest,
    MockDataRequest,
    RelayRequest,
    SetConfigRequest,
)
from circuitiq.models.snapshot import SessionPhase, SessionSnapshot
from circuitiq.models.statistics import Statistics

__all__ = [
    "ApiDatetime",
    "ApiTimestamp",
    "ChannelReading",
    "CircuitIQBaseModel",
    "CommandRequest",
    "ConfigValue",
    "DeviceInfo",
    "DeviceRequest",
    "MockDataRequest",
    "Reading",
    "RelayRequest",
    "SessionPhase",
    "SessionSnapshot",
    "SetConfigRequest",
    "Statistics",
    "parse_timestamp",
]
