"""Bounded in-memory chart history.

Six series (voltage, per-channel current and power, total power) are
kept in lockstep: every append adds exactly one point to each, and once
the shared capacity is exceeded the oldest point is evicted from each.
Order is insertion order; nothing is sorted, interpolated or
downsampled.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime
from enum import StrEnum
from typing import NamedTuple

from circuitiq.models.reading import Reading


class ChartChannel(StrEnum):
    VOLTAGE = "voltage"
    CH1_CURRENT = "ch1_current"
    CH2_CURRENT = "ch2_current"
    CH1_POWER = "ch1_power"
    CH2_POWER = "ch2_power"
    TOTAL_POWER = "total_power"


class ChartPoint(NamedTuple):
    timestamp: datetime
    value: float


class ChartBuffer:
    """Fixed-capacity sliding window of chart points per channel."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._series: dict[ChartChannel, deque[ChartPoint]] = {channel: deque() for channel in ChartChannel}

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._series[ChartChannel.VOLTAGE])

    def append(
        self,
        timestamp: datetime,
        voltage: float,
        ch1_current: float,
        ch2_current: float,
        ch1_power: float,
        ch2_power: float,
        total_power: float,
    ) -> None:
        """Append one point to every series, evicting the oldest when full."""
        values = {
            ChartChannel.VOLTAGE: voltage,
            ChartChannel.CH1_CURRENT: ch1_current,
            ChartChannel.CH2_CURRENT: ch2_current,
            ChartChannel.CH1_POWER: ch1_power,
            ChartChannel.CH2_POWER: ch2_power,
            ChartChannel.TOTAL_POWER: total_power,
        }
        for channel, value in values.items():
            self._series[channel].append(ChartPoint(timestamp, float(value)))
        if len(self) > self._capacity:
            for series in self._series.values():
                series.popleft()

    def append_reading(self, reading: Reading) -> None:
        self.append(
            reading.timestamp,
            reading.voltage,
            reading.channel1.current,
            reading.channel2.current,
            reading.channel1.power,
            reading.channel2.power,
            reading.total,
        )

    def clear(self) -> None:
        for series in self._series.values():
            series.clear()

    def series(self, channel: ChartChannel | str) -> list[ChartPoint]:
        """Points for *channel*, oldest first."""
        return list(self._series[ChartChannel(channel)])

    def latest(self) -> dict[ChartChannel, ChartPoint] | None:
        """Newest point of every series, or ``None`` when empty."""
        if not len(self):
            return None
        return {channel: series[-1] for channel, series in self._series.items()}

    @property
    def voltage(self) -> list[ChartPoint]:
        return self.series(ChartChannel.VOLTAGE)

    @property
    def ch1_current(self) -> list[ChartPoint]:
        return self.series(ChartChannel.CH1_CURRENT)

    @property
    def ch2_current(self) -> list[ChartPoint]:
        return self.series(ChartChannel.CH2_CURRENT)

    @property
    def ch1_power(self) -> list[ChartPoint]:
        return self.series(ChartChannel.CH1_POWER)

    @property
    def ch2_power(self) -> list[ChartPoint]:
        return self.series(ChartChannel.CH2_POWER)

    @property
    def total_power(self) -> list[ChartPoint]:
        return self.series(ChartChannel.TOTAL_POWER)
