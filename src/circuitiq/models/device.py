"""Device catalog model."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import field_validator, model_validator

from circuitiq.models._base import ApiTimestamp, CircuitIQBaseModel
from circuitiq.models.reading import Reading


class DeviceInfo(CircuitIQBaseModel):
    """A device known to the server.

    Fields are mapped from the ``/api/devices`` and
    ``/api/devices/{id}`` responses.  ``current_reading`` is only
    present when the server has a recent sample for the device.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "deviceId": "id",
        "_id": "id",
        "type": "deviceType",
        "name": "label",
        "currentData": "currentReading",
        "latestReading": "currentReading",
        "firmware": "firmwareVersion",
    }

    id: str
    """Device identifier."""
    device_type: str = ""
    """Device type used for catalog filtering."""
    label: str = ""
    """Human-readable label."""
    current_reading: Reading | None = None
    """Most recent sample embedded by the server, if any."""
    status: str | None = None
    """Server-side status string (e.g. ``"online"``)."""
    firmware_version: str | None = None
    location: str | None = None
    last_seen: ApiTimestamp = None

    @model_validator(mode="before")
    @classmethod
    def _scope_embedded_reading(cls, values: Any) -> Any:
        """Stamp the device id onto an embedded reading that lacks one."""
        if not isinstance(values, dict):
            return values
        device_id = values.get("id") or values.get("deviceId") or values.get("_id")
        for key in ("currentReading", "currentData", "latestReading", "current_reading"):
            embedded = values.get(key)
            if isinstance(embedded, dict) and device_id and not (
                embedded.get("deviceId") or embedded.get("device_id")
            ):
                working = dict(values)
                working[key] = {**embedded, "deviceId": device_id}
                return working
        return values

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        device_id = str(value).strip() if value is not None else ""
        if not device_id:
            raise ValueError("id must be non-empty")
        return device_id

    @property
    def display_name(self) -> str:
        return self.label or self.id
