"""Tests for Pydantic model parsing with CircuitIQBaseModel."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.models.requests import CommandRequest, MockDataRequest, RelayRequest, SetConfigRequest
from circuitiq.models.snapshot import SessionPhase, SessionSnapshot
from circuitiq.models.statistics import Statistics


class TestReading:
    def test_nested_channels(self) -> None:
        reading = Reading.model_validate(
            {
                "deviceId": "meter-1",
                "timestamp": "2024-03-01T12:00:00Z",
                "voltage": 230.4,
                "channel1": {"current": 1.2, "power": 276.0, "relayState": True},
                "channel2": {"current": 0.0, "power": 0.0, "relayState": False},
                "totalPower": 276.0,
            }
        )
        assert reading.device_id == "meter-1"
        assert reading.timestamp == datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        assert reading.channel1.relay is True
        assert reading.channel2.relay is False
        assert reading.total == 276.0
        assert reading.raw["voltage"] == 230.4

    def test_flat_channel_keys(self) -> None:
        reading = Reading.model_validate(
            {
                "deviceId": "meter-1",
                "voltage": "229.9",
                "ch1Current": "0.5",
                "ch1Power": 115,
                "ch2Current": 1.0,
                "ch2Power": 230,
            }
        )
        assert reading.voltage == pytest.approx(229.9)
        assert reading.channel1.current == 0.5
        assert reading.channel2.power == 230.0

    def test_total_power_derived_from_channels(self) -> None:
        reading = Reading(device_id="A", channel1={"power": 100.0}, channel2={"power": 50.0})
        assert reading.total_power == 150.0

    def test_epoch_milliseconds_timestamp(self) -> None:
        reading = Reading.model_validate({"deviceId": "A", "createdAt": 1_700_000_000_000})
        assert reading.timestamp == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_sentinels_fall_back_to_defaults(self) -> None:
        reading = Reading.model_validate({"deviceId": "A", "voltage": "--", "totalPower": ""})
        assert reading.voltage == 0.0
        assert reading.total_power == 0.0

    def test_missing_timestamp_defaults_to_now(self) -> None:
        before = datetime.now(UTC)
        reading = Reading(device_id="A")
        assert reading.timestamp >= before
        assert not reading.timestamp_reported

    def test_reported_timestamp_is_flagged(self) -> None:
        assert Reading.model_validate({"deviceId": "A", "time": 1_700_000_000}).timestamp_reported
        assert Reading(device_id="A", timestamp=datetime(2024, 1, 1, tzinfo=UTC)).timestamp_reported
        assert not Reading.model_validate({"deviceId": "A", "timestamp": "--"}).timestamp_reported

    def test_empty_device_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Reading.model_validate({"deviceId": "  ", "voltage": 230})

    def test_is_frozen(self) -> None:
        reading = Reading(device_id="A")
        with pytest.raises(ValidationError):
            reading.voltage = 1.0  # type: ignore[misc]


class TestDeviceInfo:
    def test_aliases_and_embedded_reading(self) -> None:
        info = DeviceInfo.model_validate(
            {
                "deviceId": "meter-1",
                "type": "circuitiq",
                "name": "Kitchen",
                "firmware": "1.4.2",
                "lastSeen": 1_700_000_000,
                "currentData": {"voltage": 231.0, "ch1Power": 10},
            }
        )
        assert info.id == "meter-1"
        assert info.device_type == "circuitiq"
        assert info.display_name == "Kitchen"
        assert info.firmware_version == "1.4.2"
        assert info.last_seen == datetime.fromtimestamp(1_700_000_000, tz=UTC)
        assert info.current_reading is not None
        assert info.current_reading.device_id == "meter-1"
        assert info.current_reading.total == 10.0

    def test_display_name_falls_back_to_id(self) -> None:
        info = DeviceInfo.model_validate({"id": "meter-2"})
        assert info.display_name == "meter-2"
        assert info.current_reading is None

    def test_missing_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DeviceInfo.model_validate({"name": "orphan"})


def test_statistics_aliases() -> None:
    stats = Statistics.model_validate(
        {"deviceId": "A", "count": 42, "avgPower": 120.5, "maxPower": 300, "energy": 1.25, "extra": "kept"}
    )
    assert stats.reading_count == 42
    assert stats.average_power == 120.5
    assert stats.max_power == 300.0
    assert stats.total_energy == 1.25
    assert stats.min_power is None
    assert stats.raw["extra"] == "kept"


class TestRequests:
    def test_relay_channel_bounds(self) -> None:
        assert RelayRequest(device_id="A", turn_on=True, channel=2).channel == 2
        assert RelayRequest(device_id="A", turn_on=True).channel is None
        with pytest.raises(ValidationError):
            RelayRequest(device_id="A", turn_on=True, channel=3)

    def test_command_text(self) -> None:
        assert CommandRequest(device_id="A", name="label", parameters="Kitchen").text == "label Kitchen"
        assert CommandRequest(device_id="A", name="status").text == "status"
        with pytest.raises(ValidationError):
            CommandRequest(device_id="A", name="  ")

    def test_config_value_keeps_type(self) -> None:
        assert SetConfigRequest(device_id="A", parameter="interval", value=5).value == 5
        assert SetConfigRequest(device_id="A", parameter="enabled", value=True).value is True
        assert SetConfigRequest(device_id="A", parameter="label", value="x").value == "x"
        with pytest.raises(ValidationError):
            SetConfigRequest(device_id="A", parameter="", value=1)

    def test_mock_data_count(self) -> None:
        assert MockDataRequest(device_id="A").count == 1
        with pytest.raises(ValidationError):
            MockDataRequest(device_id="A", count=0)

    def test_device_id_required(self) -> None:
        with pytest.raises(ValidationError):
            MockDataRequest(device_id=" ")


def test_snapshot_has_data() -> None:
    snapshot = SessionSnapshot(phase=SessionPhase.READY, current_reading=Reading(device_id="A"))
    assert snapshot.has_data
    assert not SessionSnapshot(phase=SessionPhase.UNSELECTED).has_data
