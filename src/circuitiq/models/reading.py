"""Telemetry reading models."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field, field_validator, model_validator

from circuitiq.models._base import _SENTINELS, ApiDatetime, CircuitIQBaseModel, utcnow

_TIMESTAMP_KEYS = ("timestamp", "time", "createdAt")

# Flat per-channel keys some firmware builds send instead of nested
# ``channel1``/``channel2`` objects.
_FLAT_CHANNEL_KEYS: dict[str, tuple[str, str]] = {
    "ch1Current": ("channel1", "current"),
    "ch1Power": ("channel1", "power"),
    "ch1Relay": ("channel1", "relay"),
    "ch2Current": ("channel2", "current"),
    "ch2Power": ("channel2", "power"),
    "ch2Relay": ("channel2", "relay"),
}


def _is_reported(value: Any) -> bool:
    if value is None:
        return False
    return not (isinstance(value, str) and value.strip() in _SENTINELS)


class ChannelReading(CircuitIQBaseModel):
    """Current/power measurement for one metered channel.

    ``relay`` is ``None`` when the device does not report relay state
    alongside the measurement.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {"relayState": "relay", "state": "relay"}

    current: float = 0.0
    """Current in amperes."""
    power: float = 0.0
    """Active power in watts."""
    relay: bool | None = None
    """Relay state (``True`` = closed/on)."""


class Reading(CircuitIQBaseModel):
    """A single immutable telemetry sample for one device.

    Parameters
    ----------
    device_id : str
        Identifier of the device that produced the sample.
    timestamp : datetime
        UTC time of the measurement.  Defaults to *now* when the
        payload carries none; ``timestamp_reported`` is then ``False``
        and the reading never counts as newer than another.
    voltage : float
        Line voltage in volts.
    channel1, channel2 : ChannelReading
        Per-channel current/power.
    total_power : float
        Total power in watts.  Derived from the two channels when the
        payload omits it.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "device_id": "deviceId",
        "ch1": "channel1",
        "ch2": "channel2",
        "time": "timestamp",
        "createdAt": "timestamp",
        "power": "totalPower",
    }

    device_id: str
    timestamp: ApiDatetime = Field(default_factory=utcnow)
    voltage: float = 0.0
    channel1: ChannelReading = Field(default_factory=ChannelReading)
    channel2: ChannelReading = Field(default_factory=ChannelReading)
    total_power: float | None = None
    timestamp_reported: bool = Field(default=False, exclude=True)
    """Whether ``timestamp`` came from the payload rather than parse time."""

    @model_validator(mode="before")
    @classmethod
    def _note_reported_timestamp(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        working = dict(values)
        working.pop("timestamp_reported", None)
        working["timestampReported"] = any(
            _is_reported(working.get(key)) for key in _TIMESTAMP_KEYS
        )
        return working

    @model_validator(mode="before")
    @classmethod
    def _nest_flat_channels(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        if not any(key in values for key in _FLAT_CHANNEL_KEYS):
            return values
        working = dict(values)
        for flat_key, (channel, field_name) in _FLAT_CHANNEL_KEYS.items():
            if flat_key not in working:
                continue
            value = working.pop(flat_key)
            nested = working.get(channel)
            nested = dict(nested) if isinstance(nested, dict) else {}
            nested.setdefault(field_name, value)
            working[channel] = nested
        return working

    @field_validator("device_id", mode="before")
    @classmethod
    def _normalize_device_id(cls, value: Any) -> str:
        device_id = str(value).strip() if value is not None else ""
        if not device_id:
            raise ValueError("device_id must be non-empty")
        return device_id

    @model_validator(mode="after")
    def _derive_total_power(self) -> Reading:
        if self.total_power is None:
            object.__setattr__(self, "total_power", self.channel1.power + self.channel2.power)
        return self

    @property
    def total(self) -> float:
        """Total power as a plain float (never ``None`` after validation)."""
        return self.total_power if self.total_power is not None else 0.0
