"""Immutable view of a device session for presentation layers."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.models.statistics import Statistics


class SessionPhase(StrEnum):
    UNSELECTED = "unselected"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class SessionSnapshot(BaseModel):
    """Point-in-time copy of everything a :class:`DeviceSession` exposes."""

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase
    selected_device_id: str | None = None
    is_loading: bool = False
    last_error: str | None = None
    is_connected: bool = False
    current_reading: Reading | None = None
    device_info: DeviceInfo | None = None
    devices: tuple[DeviceInfo, ...] = Field(default_factory=tuple)
    statistics: Statistics | None = None
    history_length: int = 0

    @property
    def has_data(self) -> bool:
        """Whether a reading has been received for the selection."""
        return self.current_reading is not None
