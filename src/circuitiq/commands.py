"""Command execution with confirmation-by-refresh.

Every mutating operation follows the same shape: write over the pull
transport, optionally echo over the push transport, then (for commands
with an observable effect) wait a settle delay and refresh the device
the command was issued for.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from circuitiq._transport import PullTransport
from circuitiq.models.requests import (
    CommandRequest,
    ConfigValue,
    MockDataRequest,
    RelayRequest,
    SetConfigRequest,
)

if TYPE_CHECKING:
    from circuitiq.session import DeviceSession

_logger = logging.getLogger(__name__)


class CommandExecutor:
    """Issues commands for the session's selected device.

    All methods return ``False`` without side effects when no device is
    selected.  Transport exceptions are logged, recorded as the session's
    ``last_error`` and reported as ``False``; they never propagate.
    Invalid arguments raise :class:`pydantic.ValidationError`.
    """

    def __init__(self, session: DeviceSession) -> None:
        self._session = session

    async def control_relay(self, channel: int | None, turn_on: bool) -> bool:
        """Switch one relay channel, or every relay when *channel* is ``None``."""
        target = self._session._target("control relay")
        if target is None:
            return False
        device_id, generation = target
        request = RelayRequest(device_id=device_id, turn_on=turn_on, channel=channel)
        scope = f"channel {request.channel}" if request.channel is not None else "all channels"
        _logger.debug("Relay %s -> %s for %s", scope, "ON" if request.turn_on else "OFF", device_id)

        success = await self._write(
            f"relay {scope}",
            device_id,
            generation,
            lambda pull: pull.set_relay(request.device_id, request.turn_on, channel=request.channel),
        )
        if success:
            await self._confirm(device_id, generation, self._session.config.relay_settle_delay)
        return success

    async def send_command(self, name: str, parameters: str | None = None) -> bool:
        """Send a named device command, echoing it over the push channel."""
        target = self._session._target("send command")
        if target is None:
            return False
        device_id, generation = target
        request = CommandRequest(device_id=device_id, name=name, parameters=parameters)
        _logger.debug("Sending command %r to %s", request.text, device_id)

        success = await self._write(
            f"command {request.name!r}",
            device_id,
            generation,
            lambda pull: pull.send_command(request.device_id, request.name, parameters=request.parameters),
        )
        if not success:
            return False

        try:
            self._session.push.send_command(device_id, request.text)
        except Exception:
            _logger.debug("Push echo of command %r failed", request.text, exc_info=True)

        if request.name in self._session.config.state_affecting_commands:
            await self._confirm(device_id, generation, self._session.config.relay_settle_delay)
        return True

    async def system_reset(self) -> bool:
        return await self._system("reset", lambda pull, device_id: pull.system_reset(device_id))

    async def system_restart(self) -> bool:
        return await self._system("restart", lambda pull, device_id: pull.system_restart(device_id))

    async def set_config(self, parameter: str, value: ConfigValue) -> bool:
        target = self._session._target("set config")
        if target is None:
            return False
        device_id, generation = target
        request = SetConfigRequest(device_id=device_id, parameter=parameter, value=value)
        _logger.debug("Setting config %s=%r for %s", request.parameter, request.value, device_id)
        return await self._write(
            f"config {request.parameter!r}",
            device_id,
            generation,
            lambda pull: pull.set_config(request.device_id, request.parameter, request.value),
        )

    async def generate_mock_data(self, count: int = 1) -> bool:
        target = self._session._target("generate mock data")
        if target is None:
            return False
        device_id, generation = target
        request = MockDataRequest(device_id=device_id, count=count)
        _logger.debug("Generating %d mock reading(s) for %s", request.count, device_id)

        success = await self._write(
            "mock data generation",
            device_id,
            generation,
            lambda pull: pull.generate_mock_data(request.device_id, count=request.count),
        )
        if success:
            await self._confirm(device_id, generation, self._session.config.mock_data_settle_delay)
        return success

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _system(
        self,
        action: str,
        call: Callable[[PullTransport, str], Awaitable[bool]],
    ) -> bool:
        target = self._session._target(f"system {action}")
        if target is None:
            return False
        device_id, generation = target
        _logger.debug("Executing system %s for %s", action, device_id)
        success = await self._write(
            f"system {action}", device_id, generation, lambda pull: call(pull, device_id)
        )
        if success and self._session._reconciler.is_current(device_id, generation):
            # The device is going down; a refresh now would race the reboot.
            self._session._reconciler.discard_reading()
        return success

    async def _write(
        self,
        description: str,
        device_id: str,
        generation: int,
        call: Callable[[PullTransport], Awaitable[bool]],
    ) -> bool:
        """Run one write.  Failures are recorded only while *device_id* is still selected."""
        session = self._session
        session._clear_error()
        try:
            success = bool(await call(session.pull))
        except Exception as exc:
            _logger.warning("%s failed for %s: %s", description.capitalize(), device_id, exc)
            self._record_failure(device_id, generation, str(exc) or type(exc).__name__)
            return False
        if not success:
            _logger.warning("%s rejected for %s", description.capitalize(), device_id)
            self._record_failure(device_id, generation, f"{description.capitalize()} was rejected by the server")
        return success

    def _record_failure(self, device_id: str, generation: int, message: str) -> None:
        if not self._session._reconciler.is_current(device_id, generation):
            _logger.debug("Selection changed; not recording error for %s", device_id)
            return
        self._session._record_error(message)

    async def _confirm(self, device_id: str, generation: int, delay: float) -> None:
        """Wait *delay* seconds then refresh *device_id* if it is still selected."""
        if delay > 0:
            await asyncio.sleep(delay)
        reconciler = self._session._reconciler
        if not reconciler.is_current(device_id, generation):
            _logger.debug("Skipping confirmation refresh for %s (selection changed)", device_id)
            return
        try:
            await reconciler.refresh_from_pull(device_id, confirmation=True)
        except Exception:
            _logger.debug("Confirmation refresh failed for %s", device_id, exc_info=True)
