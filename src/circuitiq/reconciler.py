"""Push/pull reconciliation of the authoritative reading.

This is the only component allowed to replace the authoritative reading
or feed the chart history.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from circuitiq._transport import PullTransport
from circuitiq.catalog import DeviceCatalog
from circuitiq.history import ChartBuffer
from circuitiq.listeners import Listeners
from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.policy import ReadingSource, should_accept_pull

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PullResult:
    """Outcome of one pull fetch, applied separately by :meth:`ReadingReconciler.apply_pull`."""

    device_id: str
    info: DeviceInfo
    reading: Reading | None
    generation: int
    push_sequence: int


class ReadingReconciler:
    """Keeps the authoritative reading for the selected device.

    * Push readings for the selected device always replace the held one.
    * Pull readings go through :func:`circuitiq.policy.should_accept_pull`.
    * ``generation`` is bumped by :meth:`reset` on every selection change
      so results fetched for an earlier selection are dropped.
    """

    def __init__(
        self,
        catalog: DeviceCatalog,
        history: ChartBuffer,
        listeners: Listeners,
        pull: Callable[[], PullTransport],
    ) -> None:
        self._catalog = catalog
        self._history = history
        self._listeners = listeners
        self._pull = pull
        self._current: Reading | None = None
        self._source: ReadingSource | None = None
        self._generation = 0
        self._push_sequence = 0

    @property
    def current_reading(self) -> Reading | None:
        return self._current

    @property
    def source(self) -> ReadingSource | None:
        return self._source

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, device_id: str, generation: int) -> bool:
        """Whether *device_id*/*generation* still describe the live selection."""
        return self._catalog.selected_id == device_id and self._generation == generation

    # ------------------------------------------------------------------
    # Push path
    # ------------------------------------------------------------------

    def on_push(self, reading: Reading) -> bool:
        """Apply a push reading if it belongs to the selected device."""
        if reading.device_id != self._catalog.selected_id:
            return False
        self._push_sequence += 1
        self._apply(reading, ReadingSource.PUSH)
        return True

    # ------------------------------------------------------------------
    # Pull path
    # ------------------------------------------------------------------

    async def fetch_from_pull(self, device_id: str) -> PullResult:
        """Fetch device info, falling back to the latest stored reading.

        Failure of the device info fetch propagates.  Failure of the
        fallback fetch is logged and treated as "no reading".
        """
        generation = self._generation
        push_sequence = self._push_sequence
        pull = self._pull()

        info = await pull.get_device(device_id)
        reading = info.current_reading
        if reading is not None:
            _logger.debug("Current reading embedded in device info for %s", device_id)
        elif self.is_current(device_id, generation):
            _logger.debug("No current reading in device info for %s; fetching latest reading", device_id)
            try:
                readings = await pull.get_readings(device_id, limit=1)
            except Exception:
                _logger.debug("Latest reading fetch failed for %s", device_id, exc_info=True)
                readings = []
            if readings:
                reading = readings[0]
            else:
                _logger.debug("No readings stored for %s; waiting for data", device_id)

        if reading is not None and reading.device_id != device_id:
            _logger.debug("Ignoring pulled reading for %s while refreshing %s", reading.device_id, device_id)
            reading = None

        return PullResult(
            device_id=device_id,
            info=info,
            reading=reading,
            generation=generation,
            push_sequence=push_sequence,
        )

    def apply_pull(self, result: PullResult, *, confirmation: bool = False) -> bool:
        """Apply a fetched result.  Returns whether the reading was applied.

        Results from an earlier generation or for a device that is no
        longer selected are discarded entirely.
        """
        if not self.is_current(result.device_id, result.generation):
            _logger.debug("Discarding pull result for %s (selection changed)", result.device_id)
            return False

        with self._listeners.batch():
            self._catalog.update_info(result.info)
            self._listeners.notify()
            if result.reading is None:
                return False
            if not should_accept_pull(
                held=self._current,
                held_source=self._source,
                incoming=result.reading,
                push_arrived_during_fetch=self._push_sequence != result.push_sequence,
                confirmation=confirmation,
            ):
                _logger.debug("Keeping newer push reading for %s over pulled reading", result.device_id)
                return False
            self._apply(result.reading, ReadingSource.PULL)
            return True

    async def refresh_from_pull(self, device_id: str, *, confirmation: bool = False) -> DeviceInfo | None:
        """Fetch and apply in one step.  Returns the fetched info, or ``None`` if discarded."""
        result = await self.fetch_from_pull(device_id)
        if not self.is_current(result.device_id, result.generation):
            return None
        self.apply_pull(result, confirmation=confirmation)
        return result.info

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def discard_reading(self) -> None:
        """Drop the authoritative reading but keep history."""
        if self._current is None:
            return
        self._current = None
        self._source = None
        self._listeners.notify()

    def reset(self) -> int:
        """Forget the reading and history and start a new generation."""
        self._current = None
        self._source = None
        self._history.clear()
        self._generation += 1
        self._listeners.notify()
        return self._generation

    def _apply(self, reading: Reading, source: ReadingSource) -> None:
        self._current = reading
        self._source = source
        self._history.append_reading(reading)
        self._listeners.notify()
