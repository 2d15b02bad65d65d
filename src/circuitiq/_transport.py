"""Pull transport: the request/response side of the CircuitIQ API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol, TypeVar

import aiohttp
from pydantic import BaseModel, ValidationError

from circuitiq._redact import redact_for_log, redact_url
from circuitiq.config import CircuitIQConfig
from circuitiq.exceptions import CircuitIQApiError, CircuitIQTransportError
from circuitiq.models.device import DeviceInfo
from circuitiq.models.reading import Reading
from circuitiq.models.requests import ConfigValue
from circuitiq.models.statistics import Statistics

_logger = logging.getLogger(__name__)

_API_PREFIX = "/api"

TModel = TypeVar("TModel", bound=BaseModel)


class PullTransport(Protocol):
    """Structural interface the session uses to fetch state and issue commands.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpPullTransport`) concrete.
    """

    async def list_devices(self) -> list[DeviceInfo]: ...

    async def get_device(self, device_id: str) -> DeviceInfo: ...

    async def get_readings(self, device_id: str, limit: int = 1) -> list[Reading]:
        """Newest-first readings; ``limit=1`` yields the single most recent one."""
        ...

    async def get_statistics(self, device_id: str) -> Statistics | None: ...

    async def set_relay(self, device_id: str, on: bool, channel: int | None = None) -> bool: ...

    async def send_command(self, device_id: str, name: str, parameters: str | None = None) -> bool: ...

    async def system_reset(self, device_id: str) -> bool: ...

    async def system_restart(self, device_id: str) -> bool: ...

    async def set_config(self, device_id: str, key: str, value: ConfigValue) -> bool: ...

    async def generate_mock_data(self, device_id: str, count: int = 1) -> bool: ...


def _unwrap_list(payload: Any, *keys: str) -> list[Any]:
    """Accept a bare JSON array or one wrapped under one of *keys*."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            nested = payload.get(key)
            if isinstance(nested, list):
                return nested
    return []


def _unwrap_object(payload: Any, *keys: str) -> dict[str, Any] | None:
    """Accept a bare JSON object or one wrapped under one of *keys*."""
    if not isinstance(payload, dict):
        return None
    for key in keys:
        nested = payload.get(key)
        if isinstance(nested, dict):
            return nested
    return payload


def _is_success(payload: Any) -> bool:
    """Command endpoints report ``{"success": bool}``; a missing flag means success."""
    if isinstance(payload, dict) and "success" in payload:
        return bool(payload["success"])
    return True


class HttpPullTransport:
    """REST implementation of :class:`PullTransport` on top of aiohttp.

    Usage::

        async with HttpPullTransport(config) as pull:
            devices = await pull.list_devices()
    """

    def __init__(
        self,
        config: CircuitIQConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http = session

    async def __aenter__(self) -> HttpPullTransport:
        self._ensure_session()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            timeout = (
                aiohttp.ClientTimeout(total=self._config.request_timeout) if self._config.request_timeout > 0 else None
            )
            self._http = aiohttp.ClientSession(timeout=timeout)
            self._external_session = False
        return self._http

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._config.api_token:
            headers["authorization"] = f"Bearer {self._config.api_token}"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send one JSON request and return the decoded body.

        Raises :class:`CircuitIQTransportError` on network failures,
        non-2xx responses and undecodable bodies.
        """
        http = self._ensure_session()
        url = f"{self._config.server_url}{_API_PREFIX}{endpoint}"
        headers = self._headers()
        _logger.debug(
            "%s %s params=%s headers=%s body=%s",
            method,
            redact_url(url),
            redact_for_log(params),
            redact_for_log(headers),
            redact_for_log(payload),
        )

        try:
            async with http.request(method, url, params=params, json=payload, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise CircuitIQTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except CircuitIQTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise CircuitIQTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except asyncio.TimeoutError as exc:
            raise CircuitIQTransportError(
                f"Request to {endpoint} timed out",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return {}
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CircuitIQTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc
        _logger.debug("Response %s %s: %s", method, endpoint, redact_for_log(body))
        return body

    @staticmethod
    def _validate(model: type[TModel], data: Any, endpoint: str) -> TModel:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise CircuitIQApiError(f"Unexpected payload from {endpoint}: {exc}", endpoint=endpoint) from exc

    # ------------------------------------------------------------------
    # Read endpoints
    # ------------------------------------------------------------------

    async def list_devices(self) -> list[DeviceInfo]:
        endpoint = "/devices"
        body = await self._request("GET", endpoint)
        devices: list[DeviceInfo] = []
        for item in _unwrap_list(body, "data", "devices"):
            try:
                devices.append(DeviceInfo.model_validate(item))
            except ValidationError:
                _logger.debug("Skipping malformed device entry %s", redact_for_log(item), exc_info=True)
        return devices

    async def get_device(self, device_id: str) -> DeviceInfo:
        endpoint = f"/devices/{device_id}"
        body = await self._request("GET", endpoint)
        data = _unwrap_object(body, "data", "device")
        if data is None:
            raise CircuitIQApiError(f"{endpoint} did not return an object", endpoint=endpoint)
        data.setdefault("id", device_id)
        return self._validate(DeviceInfo, data, endpoint)

    async def get_readings(self, device_id: str, limit: int = 1) -> list[Reading]:
        endpoint = f"/devices/{device_id}/readings"
        body = await self._request("GET", endpoint, params={"limit": limit})
        readings: list[Reading] = []
        for item in _unwrap_list(body, "data", "readings"):
            if not isinstance(item, dict):
                continue
            stamped = {"deviceId": device_id, **item}
            readings.append(self._validate(Reading, stamped, endpoint))
        return readings[:limit]

    async def get_statistics(self, device_id: str) -> Statistics | None:
        endpoint = f"/devices/{device_id}/statistics"
        body = await self._request("GET", endpoint)
        data = _unwrap_object(body, "data", "statistics")
        if not data:
            return None
        return self._validate(Statistics, {"deviceId": device_id, **data}, endpoint)

    # ------------------------------------------------------------------
    # Command endpoints
    # ------------------------------------------------------------------

    async def set_relay(self, device_id: str, on: bool, channel: int | None = None) -> bool:
        payload: dict[str, Any] = {"state": on}
        if channel is not None:
            payload["channel"] = channel
        return _is_success(await self._request("POST", f"/devices/{device_id}/relay", payload=payload))

    async def send_command(self, device_id: str, name: str, parameters: str | None = None) -> bool:
        payload: dict[str, Any] = {"command": name}
        if parameters is not None:
            payload["parameters"] = parameters
        return _is_success(await self._request("POST", f"/devices/{device_id}/command", payload=payload))

    async def system_reset(self, device_id: str) -> bool:
        return _is_success(await self._request("POST", f"/devices/{device_id}/system/reset"))

    async def system_restart(self, device_id: str) -> bool:
        return _is_success(await self._request("POST", f"/devices/{device_id}/system/restart"))

    async def set_config(self, device_id: str, key: str, value: ConfigValue) -> bool:
        payload = {"parameter": key, "value": value}
        return _is_success(await self._request("POST", f"/devices/{device_id}/config", payload=payload))

    async def generate_mock_data(self, device_id: str, count: int = 1) -> bool:
        payload = {"count": count}
        return _is_success(await self._request("POST", f"/devices/{device_id}/mock-data", payload=payload))
