"""Known devices and the current selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from circuitiq.models.device import DeviceInfo

_logger = logging.getLogger(__name__)


class DeviceCatalog:
    """Devices of the supported type, keyed by id, plus the selected id.

    The device list is replaced wholesale on every load; per-device info
    is replaced wholesale on every fetch.
    """

    def __init__(self, device_type: str) -> None:
        self._device_type = device_type
        self._devices: dict[str, DeviceInfo] = {}
        self._selected_id: str | None = None
        self._selected_info: DeviceInfo | None = None

    @property
    def device_type(self) -> str:
        return self._device_type

    @property
    def all_devices(self) -> list[DeviceInfo]:
        return list(self._devices.values())

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def selected_info(self) -> DeviceInfo | None:
        """Latest fetched info for the selected device."""
        return self._selected_info

    def load(self, devices: Iterable[DeviceInfo]) -> list[DeviceInfo]:
        """Replace the catalog with the supported devices from *devices*."""
        loaded: dict[str, DeviceInfo] = {}
        skipped = 0
        for device in devices:
            if device.device_type != self._device_type:
                skipped += 1
                continue
            loaded[device.id] = device
        self._devices = loaded
        if skipped:
            _logger.debug("Skipped %d device(s) not of type %s", skipped, self._device_type)
        return self.all_devices

    def get(self, device_id: str) -> DeviceInfo | None:
        return self._devices.get(device_id)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def select(self, device_id: str) -> None:
        if device_id != self._selected_id:
            self._selected_info = None
        self._selected_id = device_id

    def update_info(self, info: DeviceInfo) -> None:
        """Record freshly fetched info for the selected device."""
        if info.id != self._selected_id:
            return
        self._selected_info = info
        if info.id in self._devices:
            self._devices[info.id] = info

    def clear_selection(self) -> None:
        self._selected_id = None
        self._selected_info = None
