"""Device session: the observable state and command surface for one client."""

from __future__ import annotations

import logging
from typing import Any

from circuitiq._transport import PullTransport
from circuitiq._websocket import PushTransport
from circuitiq.catalog import DeviceCatalog
from circuitiq.commands import CommandExecutor
from circuitiq.config import CircuitIQConfig
from circuitiq.history import ChartBuffer, ChartPoint
from circuitiq.listeners import Listener, Listeners
from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.models.requests import ConfigValue
from circuitiq.models.snapshot import SessionPhase, SessionSnapshot
from circuitiq.models.statistics import Statistics
from circuitiq.preferences import KeyValueStore, SessionPreferences
from circuitiq.reconciler import ReadingReconciler

_logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class DeviceSession:
    """Orchestrates catalog, reconciliation and commands for the selected device.

    Transports are supplied, not owned; :meth:`update_services` swaps
    them without touching the selection or history.  Every logical state
    transition produces exactly one listener notification.

    Usage::

        session = DeviceSession(config, pull, push)
        session.add_listener(render)
        await session.load_devices()
        await session.select_device("meter-1")
        await session.control_relay(1, True)
    """

    def __init__(
        self,
        config: CircuitIQConfig,
        pull: PullTransport,
        push: PushTransport,
        *,
        preferences: KeyValueStore | None = None,
    ) -> None:
        self._config = config
        self._pull = pull
        self._push = push
        self._preferences = SessionPreferences(preferences) if preferences is not None else None
        self._listeners = Listeners()
        self._catalog = DeviceCatalog(config.device_type)
        self._history = ChartBuffer(config.max_data_points)
        self._reconciler = ReadingReconciler(self._catalog, self._history, self._listeners, lambda: self._pull)
        self._commands = CommandExecutor(self)
        self._statistics: Statistics | None = None
        self._is_loading = False
        self._last_error: str | None = None
        self._phase = SessionPhase.UNSELECTED
        self._attach_push(push)

    async def __aenter__(self) -> DeviceSession:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def config(self) -> CircuitIQConfig:
        return self._config

    @property
    def pull(self) -> PullTransport:
        return self._pull

    @property
    def push(self) -> PushTransport:
        return self._push

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def current_reading(self) -> Reading | None:
        return self._reconciler.current_reading

    @property
    def has_data(self) -> bool:
        return self._reconciler.current_reading is not None

    @property
    def device_info(self) -> DeviceInfo | None:
        return self._catalog.selected_info

    @property
    def all_devices(self) -> list[DeviceInfo]:
        return self._catalog.all_devices

    @property
    def statistics(self) -> Statistics | None:
        return self._statistics

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def selected_device_id(self) -> str | None:
        return self._catalog.selected_id

    @property
    def is_connected(self) -> bool:
        return self._push.is_connected

    @property
    def history(self) -> ChartBuffer:
        return self._history

    @property
    def voltage_data(self) -> list[ChartPoint]:
        return self._history.voltage

    @property
    def ch1_current_data(self) -> list[ChartPoint]:
        return self._history.ch1_current

    @property
    def ch2_current_data(self) -> list[ChartPoint]:
        return self._history.ch2_current

    @property
    def ch1_power_data(self) -> list[ChartPoint]:
        return self._history.ch1_power

    @property
    def ch2_power_data(self) -> list[ChartPoint]:
        return self._history.ch2_power

    @property
    def total_power_data(self) -> list[ChartPoint]:
        return self._history.total_power

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self._phase,
            selected_device_id=self.selected_device_id,
            is_loading=self._is_loading,
            last_error=self._last_error,
            is_connected=self.is_connected,
            current_reading=self.current_reading,
            device_info=self.device_info,
            devices=tuple(self.all_devices),
            statistics=self._statistics,
            history_length=len(self._history),
        )

    def add_listener(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Catalog and selection
    # ------------------------------------------------------------------

    async def load_devices(self) -> bool:
        """Fetch the device list, keeping only devices of the configured type."""
        with self._listeners.batch():
            self._is_loading = True
            self._last_error = None
            self._listeners.notify()

        _logger.debug("Loading devices")
        try:
            devices = await self._pull.list_devices()
        except Exception as exc:
            _logger.warning("Loading devices failed: %s", exc)
            with self._listeners.batch():
                self._last_error = _describe(exc)
                self._is_loading = False
                self._listeners.notify()
            return False

        with self._listeners.batch():
            loaded = self._catalog.load(devices)
            self._is_loading = False
            self._listeners.notify()
        _logger.debug("Loaded %d device(s)", len(loaded))
        return True

    async def select_device(self, device_id: str) -> bool:
        """Make *device_id* the selection and load its current state.

        The previous selection's reading, history and statistics are
        discarded immediately.  Returns whether the device info fetch
        succeeded for this selection.
        """
        device_id = device_id.strip()
        if not device_id:
            raise ValueError("device_id must be non-empty")

        _logger.debug("Selecting device %s", device_id)
        with self._listeners.batch():
            self._catalog.select(device_id)
            generation = self._reconciler.reset()
            self._statistics = None
            self._phase = SessionPhase.LOADING
            self._is_loading = True
            self._last_error = None
            self._listeners.notify()
        if self._preferences is not None:
            self._preferences.device_id = device_id

        return await self._load(device_id, generation, track_loading=True)

    async def refresh_device(self) -> bool:
        """Re-fetch the selected device without changing the selection."""
        target = self._target("refresh device")
        if target is None:
            return False
        device_id, generation = target
        _logger.debug("Refreshing device %s", device_id)
        with self._listeners.batch():
            self._phase = SessionPhase.LOADING
            self._last_error = None
            self._listeners.notify()
        return await self._load(device_id, generation, track_loading=False)

    async def restore_selection(self) -> bool:
        """Re-select the device remembered in the injected preferences."""
        if self._preferences is None:
            return False
        device_id = self._preferences.device_id
        if not device_id:
            return False
        _logger.debug("Restoring remembered device %s", device_id)
        return await self.select_device(device_id)

    async def load_statistics(self) -> bool:
        target = self._target("load statistics")
        if target is None:
            return False
        device_id, generation = target
        self._clear_error()
        _logger.debug("Loading statistics for %s", device_id)
        try:
            statistics = await self._pull.get_statistics(device_id)
        except Exception as exc:
            _logger.warning("Loading statistics failed for %s: %s", device_id, exc)
            if self._reconciler.is_current(device_id, generation):
                self._record_error(_describe(exc))
            return False
        if not self._reconciler.is_current(device_id, generation):
            return False
        self._statistics = statistics
        self._listeners.notify()
        return True

    def clear_data(self) -> None:
        """Return to the unselected state, dropping all per-device data."""
        _logger.debug("Clearing all device data")
        with self._listeners.batch():
            self._reconciler.reset()
            self._catalog.clear_selection()
            self._statistics = None
            self._last_error = None
            self._is_loading = False
            self._phase = SessionPhase.UNSELECTED
            self._listeners.notify()
        if self._preferences is not None:
            self._preferences.device_id = None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def control_relay(self, channel: int, turn_on: bool) -> bool:
        return await self._commands.control_relay(channel, turn_on)

    async def control_all_relays(self, turn_on: bool) -> bool:
        return await self._commands.control_relay(None, turn_on)

    async def send_command(self, command: str, parameters: str | None = None) -> bool:
        return await self._commands.send_command(command, parameters)

    async def system_reset(self) -> bool:
        return await self._commands.system_reset()

    async def system_restart(self) -> bool:
        return await self._commands.system_restart()

    async def set_config(self, parameter: str, value: ConfigValue) -> bool:
        return await self._commands.set_config(parameter, value)

    async def generate_mock_data(self, count: int = 1) -> bool:
        return await self._commands.generate_mock_data(count)

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------

    async def connect_push(self, url: str | None = None) -> bool:
        target_url = url or self._config.resolved_push_url
        _logger.debug("Connecting push transport to %s", target_url)
        self._clear_error()
        try:
            await self._push.connect(target_url)
        except Exception as exc:
            _logger.warning("Push connect to %s failed: %s", target_url, exc)
            self._record_error(_describe(exc))
            return False
        return True

    async def disconnect_push(self) -> None:
        _logger.debug("Disconnecting push transport")
        await self._push.disconnect()

    def update_services(self, pull: PullTransport, push: PushTransport) -> None:
        """Point the session at new transports, keeping selection and history."""
        self._pull = pull
        if push is not self._push:
            self._detach_push(self._push)
            self._push = push
            self._attach_push(push)
        self._listeners.notify()

    def close(self) -> None:
        self._detach_push(self._push)
        self._listeners.clear()

    def _attach_push(self, push: PushTransport) -> None:
        push.subscribe(self._on_push_reading)
        push.add_status_listener(self._on_push_status)

    def _detach_push(self, push: PushTransport) -> None:
        push.unsubscribe(self._on_push_reading)
        push.remove_status_listener(self._on_push_status)

    def _on_push_reading(self, reading: Reading) -> None:
        self._reconciler.on_push(reading)

    def _on_push_status(self, connected: bool) -> None:
        _logger.debug("Push transport %s", "connected" if connected else "disconnected")
        self._listeners.notify()

    # ------------------------------------------------------------------
    # Internal helpers (also used by CommandExecutor)
    # ------------------------------------------------------------------

    def _target(self, operation: str) -> tuple[str, int] | None:
        """``(device_id, generation)`` of the selection, or ``None`` if nothing is selected."""
        device_id = self._catalog.selected_id
        if device_id is None:
            _logger.debug("No device selected; ignoring %s", operation)
            return None
        return device_id, self._reconciler.generation

    def _clear_error(self) -> None:
        if self._last_error is not None:
            self._last_error = None
            self._listeners.notify()

    def _record_error(self, message: str) -> None:
        self._last_error = message
        self._listeners.notify()

    async def _load(self, device_id: str, generation: int, *, track_loading: bool) -> bool:
        try:
            result = await self._reconciler.fetch_from_pull(device_id)
        except Exception as exc:
            if not self._reconciler.is_current(device_id, generation):
                return False
            _logger.warning("Loading device %s failed: %s", device_id, exc)
            with self._listeners.batch():
                self._last_error = _describe(exc)
                self._phase = SessionPhase.ERROR
                if track_loading:
                    self._is_loading = False
                self._listeners.notify()
            return False

        if not self._reconciler.is_current(device_id, generation):
            _logger.debug("Selection changed while loading %s; result dropped", device_id)
            return False
        with self._listeners.batch():
            self._reconciler.apply_pull(result)
            self._phase = SessionPhase.READY
            if track_loading:
                self._is_loading = False
            self._listeners.notify()
        return True
