from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from circuitiq.config import CircuitIQConfig
from circuitiq.exceptions import CircuitIQPushError, CircuitIQTransportError
from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.models.snapshot import SessionPhase
from circuitiq.models.statistics import Statistics
from circuitiq.preferences import KEY_DEVICE_ID, InMemoryStore
from circuitiq.session import DeviceSession

_T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _reading(device_id: str, seconds: int, voltage: float = 230.0) -> Reading:
    return Reading(device_id=device_id, timestamp=_T0 + timedelta(seconds=seconds), voltage=voltage)


def _device(device_id: str, device_type: str = "meter", reading: Reading | None = None) -> DeviceInfo:
    return DeviceInfo(id=device_id, device_type=device_type, current_reading=reading)


class _FakePull:
    """In-memory pull transport; ``gates`` hold a device fetch until released."""

    def __init__(self) -> None:
        self.devices: dict[str, DeviceInfo] = {}
        self.readings: dict[str, list[Reading]] = {}
        self.statistics: dict[str, Statistics] = {}
        self.list_error: Exception | None = None
        self.device_error: Exception | None = None
        self.gates: dict[str, asyncio.Event] = {}
        self.waiting = asyncio.Event()
        self.calls: list[tuple[Any, ...]] = []

    async def list_devices(self) -> list[DeviceInfo]:
        self.calls.append(("list_devices",))
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices.values())

    async def get_device(self, device_id: str) -> DeviceInfo:
        self.calls.append(("get_device", device_id))
        gate = self.gates.get(device_id)
        if gate is not None:
            self.waiting.set()
            await gate.wait()
        if self.device_error is not None:
            raise self.device_error
        try:
            return self.devices[device_id]
        except KeyError:
            raise CircuitIQTransportError("HTTP 404 from /devices", status_code=404) from None

    async def get_readings(self, device_id: str, limit: int = 1) -> list[Reading]:
        self.calls.append(("get_readings", device_id))
        return list(self.readings.get(device_id, []))[:limit]

    async def get_statistics(self, device_id: str) -> Statistics | None:
        self.calls.append(("get_statistics", device_id))
        return self.statistics.get(device_id)


class _FakePush:
    def __init__(self) -> None:
        self.subscribers: list[Any] = []
        self.status_listeners: list[Any] = []
        self.sent: list[tuple[str, str]] = []
        self.connect_error: Exception | None = None
        self.url: str | None = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self, url: str) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.url = url
        self._set_connected(True)

    async def disconnect(self) -> None:
        self._set_connected(False)

    def subscribe(self, callback: Any) -> None:
        self.subscribers.append(callback)

    def unsubscribe(self, callback: Any) -> None:
        self.subscribers.remove(callback)

    def add_status_listener(self, callback: Any) -> None:
        self.status_listeners.append(callback)

    def remove_status_listener(self, callback: Any) -> None:
        self.status_listeners.remove(callback)

    def send_command(self, device_id: str, text: str) -> None:
        self.sent.append((device_id, text))

    def emit(self, reading: Reading) -> None:
        for callback in list(self.subscribers):
            callback(reading)

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        for callback in list(self.status_listeners):
            callback(connected)


def _session(
    pull: _FakePull | None = None,
    push: _FakePush | None = None,
    **kwargs: Any,
) -> tuple[DeviceSession, _FakePull, _FakePush, list[int]]:
    pull = pull or _FakePull()
    push = push or _FakePush()
    config = CircuitIQConfig(device_type="meter", relay_settle_delay=0.0, mock_data_settle_delay=0.0)
    session = DeviceSession(config, pull, push, **kwargs)
    notifications: list[int] = []
    session.add_listener(lambda: notifications.append(1))
    return session, pull, push, notifications


class TestCatalog:
    @pytest.mark.asyncio
    async def test_load_devices_filters_by_type(self) -> None:
        session, pull, _push, notifications = _session()
        pull.devices = {"A": _device("A"), "B": _device("B", "sensor")}

        assert await session.load_devices()

        assert [device.id for device in session.all_devices] == ["A"]
        assert not session.is_loading
        assert session.last_error is None
        assert len(notifications) == 2

    @pytest.mark.asyncio
    async def test_load_devices_failure_recorded(self) -> None:
        session, pull, _push, _ = _session()
        pull.list_error = CircuitIQTransportError("HTTP 503 from /devices", status_code=503)

        assert not await session.load_devices()

        assert session.last_error == "HTTP 503 from /devices"
        assert not session.is_loading
        assert session.all_devices == []


class TestSelection:
    @pytest.mark.asyncio
    async def test_select_loads_device_and_reading(self) -> None:
        session, pull, _push, notifications = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))

        assert await session.select_device("A")

        assert session.phase is SessionPhase.READY
        assert session.selected_device_id == "A"
        assert session.device_info == pull.devices["A"]
        assert session.current_reading == _reading("A", 1)
        assert session.has_data
        assert len(session.voltage_data) == 1
        assert not session.is_loading
        assert len(notifications) == 2

    @pytest.mark.asyncio
    async def test_select_a_then_b_leaves_no_trace_of_a(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        pull.devices["B"] = _device("B")
        pull.statistics["A"] = Statistics(device_id="A", reading_count=3)
        await session.select_device("A")
        await session.load_statistics()
        push.emit(_reading("A", 2))

        await session.select_device("B")

        assert session.selected_device_id == "B"
        assert session.device_info == pull.devices["B"]
        assert session.current_reading is None
        assert session.statistics is None
        assert len(session.history) == 0
        assert all(len(series) == 0 for series in (session.ch1_power_data, session.total_power_data))

    @pytest.mark.asyncio
    async def test_select_with_no_data_is_not_an_error(self) -> None:
        session, pull, _push, _ = _session()
        pull.devices["A"] = _device("A")

        assert await session.select_device("A")

        assert session.phase is SessionPhase.READY
        assert session.current_reading is None
        assert not session.has_data
        assert session.last_error is None
        assert ("get_readings", "A") in pull.calls

    @pytest.mark.asyncio
    async def test_select_failure_keeps_selection(self) -> None:
        session, pull, _push, _ = _session()
        pull.device_error = CircuitIQTransportError("HTTP 500 from /devices/A", status_code=500)

        assert not await session.select_device("A")

        assert session.phase is SessionPhase.ERROR
        assert session.selected_device_id == "A"
        assert session.last_error == "HTTP 500 from /devices/A"
        assert not session.is_loading

    @pytest.mark.asyncio
    async def test_superseded_selection_result_is_dropped(self) -> None:
        session, pull, _push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        pull.devices["B"] = _device("B", reading=_reading("B", 1))
        pull.gates["A"] = asyncio.Event()

        first = asyncio.create_task(session.select_device("A"))
        await pull.waiting.wait()
        assert await session.select_device("B")
        pull.gates["A"].set()

        assert not await first
        assert session.selected_device_id == "B"
        assert session.device_info == pull.devices["B"]
        assert session.current_reading == _reading("B", 1)
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_select_rejects_blank_id(self) -> None:
        session, *_ = _session()
        with pytest.raises(ValueError):
            await session.select_device("  ")

    @pytest.mark.asyncio
    async def test_refresh_requires_selection(self) -> None:
        session, pull, _push, notifications = _session()

        assert not await session.refresh_device()
        assert not await session.load_statistics()

        assert pull.calls == []
        assert notifications == []

    @pytest.mark.asyncio
    async def test_refresh_keeps_selection_and_updates_info(self) -> None:
        session, pull, _push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        await session.select_device("A")
        pull.devices["A"] = _device("A", reading=_reading("A", 5))

        assert await session.refresh_device()

        assert session.phase is SessionPhase.READY
        assert session.current_reading == _reading("A", 5)
        assert len(session.history) == 2


class TestPushPullRace:
    @pytest.mark.asyncio
    async def test_push_during_refresh_wins_over_older_pull(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 10))
        await session.select_device("A")
        pull.gates["A"] = asyncio.Event()

        refresh = asyncio.create_task(session.refresh_device())
        await pull.waiting.wait()
        push.emit(_reading("A", 20, voltage=240.0))
        pull.gates["A"].set()

        assert await refresh
        assert session.current_reading == _reading("A", 20, voltage=240.0)
        assert [point.value for point in session.voltage_data] == [230.0, 240.0]

    @pytest.mark.asyncio
    async def test_undated_pull_does_not_beat_push_during_refresh(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A")
        await session.select_device("A")
        push.emit(Reading.model_validate({"deviceId": "A", "voltage": 999.0}))
        pull.devices["A"] = _device("A", reading=Reading.model_validate({"deviceId": "A", "voltage": 1.0}))
        pull.gates["A"] = asyncio.Event()

        refresh = asyncio.create_task(session.refresh_device())
        await pull.waiting.wait()
        push.emit(Reading.model_validate({"deviceId": "A", "voltage": 888.0}))
        pull.gates["A"].set()

        assert await refresh
        assert session.current_reading is not None
        assert session.current_reading.voltage == 888.0

    @pytest.mark.asyncio
    async def test_routine_refresh_keeps_push_over_undated_pull(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A")
        await session.select_device("A")
        push.emit(_reading("A", 20, voltage=240.0))
        pull.devices["A"] = _device("A", reading=Reading.model_validate({"deviceId": "A", "voltage": 1.0}))

        assert await session.refresh_device()

        assert session.current_reading == _reading("A", 20, voltage=240.0)
        assert len(session.history) == 1

    @pytest.mark.asyncio
    async def test_newer_pull_after_push_is_accepted(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A")
        await session.select_device("A")
        push.emit(_reading("A", 20))
        pull.devices["A"] = _device("A", reading=_reading("A", 30))

        await session.refresh_device()

        assert session.current_reading == _reading("A", 30)

    @pytest.mark.asyncio
    async def test_push_for_other_device_is_ignored(self) -> None:
        session, pull, push, _ = _session()
        pull.devices["A"] = _device("A")
        await session.select_device("A")

        push.emit(_reading("B", 1))

        assert session.current_reading is None
        assert len(session.history) == 0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_clear_data_returns_to_unselected(self) -> None:
        store = InMemoryStore()
        session, pull, _push, _ = _session(preferences=store)
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        await session.select_device("A")
        assert store.get(KEY_DEVICE_ID) == "A"

        session.clear_data()

        assert session.phase is SessionPhase.UNSELECTED
        assert session.selected_device_id is None
        assert session.device_info is None
        assert session.current_reading is None
        assert len(session.history) == 0
        assert KEY_DEVICE_ID not in store

    @pytest.mark.asyncio
    async def test_restore_selection_from_preferences(self) -> None:
        store = InMemoryStore({KEY_DEVICE_ID: "A"})
        session, pull, _push, _ = _session(preferences=store)
        pull.devices["A"] = _device("A")

        assert await session.restore_selection()
        assert session.selected_device_id == "A"

    @pytest.mark.asyncio
    async def test_restore_selection_without_preferences(self) -> None:
        session, *_ = _session()
        assert not await session.restore_selection()

    @pytest.mark.asyncio
    async def test_update_services_keeps_state_and_rebinds_push(self) -> None:
        session, pull, old_push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        await session.select_device("A")

        new_pull = _FakePull()
        new_pull.devices["A"] = _device("A", reading=_reading("A", 9))
        new_push = _FakePush()
        session.update_services(new_pull, new_push)

        assert session.selected_device_id == "A"
        assert len(session.history) == 1
        assert old_push.subscribers == []

        old_push.emit(_reading("A", 5))
        assert session.current_reading == _reading("A", 1)

        new_push.emit(_reading("A", 6))
        assert session.current_reading == _reading("A", 6)

        await session.refresh_device()
        assert ("get_device", "A") in new_pull.calls
        assert session.current_reading == _reading("A", 9)

    @pytest.mark.asyncio
    async def test_connect_push_defaults_to_configured_url(self) -> None:
        session, _pull, push, notifications = _session()

        assert await session.connect_push()

        assert push.url == "ws://localhost:3000/ws"
        assert session.is_connected
        assert notifications == [1]

        await session.disconnect_push()
        assert not session.is_connected

    @pytest.mark.asyncio
    async def test_connect_push_failure_recorded(self) -> None:
        session, _pull, push, _ = _session()
        push.connect_error = CircuitIQPushError("WebSocket connect to ws://x failed")

        assert not await session.connect_push("ws://x")

        assert session.last_error == "WebSocket connect to ws://x failed"
        assert not session.is_connected

    @pytest.mark.asyncio
    async def test_load_statistics(self) -> None:
        session, pull, _push, _ = _session()
        pull.devices["A"] = _device("A")
        pull.statistics["A"] = Statistics(device_id="A", reading_count=7)
        await session.select_device("A")

        assert await session.load_statistics()

        assert session.statistics is not None
        assert session.statistics.reading_count == 7

    @pytest.mark.asyncio
    async def test_snapshot_mirrors_state(self) -> None:
        session, pull, _push, _ = _session()
        pull.devices["A"] = _device("A", reading=_reading("A", 1))
        await session.load_devices()
        await session.select_device("A")

        snapshot = session.snapshot()

        assert snapshot.phase is SessionPhase.READY
        assert snapshot.selected_device_id == "A"
        assert snapshot.current_reading == _reading("A", 1)
        assert [device.id for device in snapshot.devices] == ["A"]
        assert snapshot.history_length == 1
        assert snapshot.has_data

    @pytest.mark.asyncio
    async def test_close_detaches_push_and_listeners(self) -> None:
        session, pull, push, notifications = _session()
        pull.devices["A"] = _device("A")
        await session.select_device("A")
        notifications.clear()

        async with session:
            pass

        assert push.subscribers == []
        push.emit(_reading("A", 1))
        assert notifications == []
