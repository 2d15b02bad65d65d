"""Push transport: WebSocket runtime that delivers readings to subscribers."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol

import aiohttp

from circuitiq._redact import redact_url
from circuitiq.config import CircuitIQConfig
from circuitiq.exceptions import CircuitIQError, CircuitIQPushError
from circuitiq.models.reading import Reading

_logger = logging.getLogger(__name__)

ReadingCallback = Callable[[Reading], None]
StatusCallback = Callable[[bool], None]

# Message types that carry a telemetry sample.
_READING_TYPES = frozenset({"reading", "data", "devicedata", "device_data", "update", "telemetry"})
_MEASUREMENT_KEYS = ("voltage", "channel1", "channel2", "ch1Current", "ch1Power")


class PushTransport(Protocol):
    """Structural interface for the asynchronous push channel."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self, url: str) -> None: ...

    async def disconnect(self) -> None: ...

    def subscribe(self, callback: ReadingCallback) -> None: ...

    def unsubscribe(self, callback: ReadingCallback) -> None: ...

    def add_status_listener(self, callback: StatusCallback) -> None: ...

    def remove_status_listener(self, callback: StatusCallback) -> None: ...

    def send_command(self, device_id: str, text: str) -> None:
        """Fire-and-forget command echo; delivery is not confirmed."""
        ...


def decode_push_reading(message: dict[str, Any]) -> Reading | None:
    """Extract a :class:`Reading` from a decoded push message.

    Supported shapes::

        {"type": "reading", "deviceId": "A", "data": {...}}
        {"deviceId": "A", "voltage": 230.1, ...}

    Returns ``None`` for messages that carry no reading (acks, pings,
    command echoes).
    """
    msg_type = str(message.get("type") or message.get("event") or "").strip().lower()
    if msg_type and msg_type not in _READING_TYPES:
        return None

    nested = message.get("data")
    data: dict[str, Any] = nested if isinstance(nested, dict) else message
    if not msg_type and not any(key in data for key in _MEASUREMENT_KEYS):
        return None

    device_id = data.get("deviceId") or data.get("device_id") or message.get("deviceId") or message.get("device_id")
    if not device_id:
        return None
    payload = {key: value for key, value in data.items() if key not in ("type", "event")}
    payload["deviceId"] = device_id
    return Reading.model_validate(payload)


def parse_push_message(text: str) -> Reading | None:
    """Decode a text frame into a :class:`Reading` (or ``None``)."""
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise CircuitIQError("Push payload decoded to non-object JSON")
    return decode_push_reading(parsed)


class WebSocketPushTransport:
    """aiohttp WebSocket runtime that emits parsed readings on the running loop.

    Connection is explicit (:meth:`connect` / :meth:`disconnect`);
    reconnect policy is left to the caller.
    """

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        heartbeat: float | None = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._external_session = session is not None
        self._http = session
        self._heartbeat = heartbeat if heartbeat else None
        self._logger = logger or _logger
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._subscribers: list[ReadingCallback] = []
        self._status_listeners: list[StatusCallback] = []
        self._pending_sends: set[asyncio.Task[None]] = set()
        self._connected = False
        self._url: str | None = None

    @classmethod
    def from_config(
        cls,
        config: CircuitIQConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> WebSocketPushTransport:
        return cls(session=session, heartbeat=config.ws_heartbeat)

    @property
    def is_connected(self) -> bool:
        """Whether the WebSocket is currently open."""
        return self._connected

    @property
    def url(self) -> str | None:
        return self._url

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: ReadingCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ReadingCallback) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(callback)

    def add_status_listener(self, callback: StatusCallback) -> None:
        if callback not in self._status_listeners:
            self._status_listeners.append(callback)

    def remove_status_listener(self, callback: StatusCallback) -> None:
        with contextlib.suppress(ValueError):
            self._status_listeners.remove(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str) -> None:
        """Open the WebSocket, replacing any existing connection."""
        await self.disconnect()
        if self._http is None:
            self._http = aiohttp.ClientSession()
            self._external_session = False
        self._logger.debug("WebSocket connect requested url=%s", redact_url(url))
        try:
            ws = await self._http.ws_connect(url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise CircuitIQPushError(f"WebSocket connect to {redact_url(url)} failed: {exc}") from exc

        self._ws = ws
        self._url = url
        self._set_connected(True)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(ws))
        self._logger.debug("WebSocket connected url=%s", redact_url(url))

    async def disconnect(self) -> None:
        """Close the WebSocket if open.  Safe to call repeatedly."""
        reader = self._reader
        self._reader = None
        ws = self._ws
        self._ws = None

        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        for task in list(self._pending_sends):
            task.cancel()
        self._pending_sends.clear()
        if ws is not None and not ws.closed:
            self._logger.debug("WebSocket disconnect requested")
            await ws.close()

        self._set_connected(False)
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.debug("WebSocket error: %s", ws.exception())
                    break
        finally:
            if self._ws is ws:
                self._ws = None
                self._logger.debug("WebSocket closed by peer url=%s", redact_url(self._url or ""))
                self._set_connected(False)

    # ------------------------------------------------------------------
    # Inbound / outbound
    # ------------------------------------------------------------------

    def handle_text(self, text: str) -> None:
        """Parse one text frame and dispatch a reading to subscribers."""
        try:
            reading = parse_push_message(text)
        except Exception:
            self._logger.debug("Push payload parse failure", exc_info=True)
            return
        if reading is None:
            return
        self._logger.debug("Push reading device=%s ts=%s", reading.device_id, reading.timestamp)
        for callback in list(self._subscribers):
            try:
                callback(reading)
            except Exception:
                self._logger.debug("Push subscriber %r failed", callback, exc_info=True)

    def send_command(self, device_id: str, text: str) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            self._logger.debug("Push channel closed; dropping command %r for %s", text, device_id)
            return
        message = {"type": "command", "deviceId": device_id, "command": text}
        task = asyncio.get_running_loop().create_task(ws.send_json(message))
        self._pending_sends.add(task)
        task.add_done_callback(self._on_send_done)

    def _on_send_done(self, task: asyncio.Task[None]) -> None:
        self._pending_sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self._logger.debug("Push command send failed", exc_info=task.exception())

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        for callback in list(self._status_listeners):
            try:
                callback(connected)
            except Exception:
                self._logger.debug("Push status listener %r failed", callback, exc_info=True)
