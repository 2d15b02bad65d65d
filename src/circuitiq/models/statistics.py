"""Per-device statistics model."""

from __future__ import annotations

from typing import ClassVar

from circuitiq.models._base import ApiTimestamp, CircuitIQBaseModel


class Statistics(CircuitIQBaseModel):
    """Aggregate statistics for one device.

    The server treats this payload as an open-ended aggregate, so only
    the commonly reported fields are typed.  Everything the server sent
    is available in ``raw``.  Numeric fields are ``None`` when absent.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "count": "readingCount",
        "totalReadings": "readingCount",
        "avgPower": "averagePower",
        "avgVoltage": "averageVoltage",
        "energy": "totalEnergy",
    }

    device_id: str | None = None
    reading_count: int | None = None
    average_power: float | None = None
    max_power: float | None = None
    min_power: float | None = None
    average_voltage: float | None = None
    total_energy: float | None = None
    """Accumulated energy in kWh."""
    period_start: ApiTimestamp = None
    period_end: ApiTimestamp = None
