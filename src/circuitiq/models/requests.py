"""Pydantic request models for command entrypoints.

These models provide a consistent "validate → normalize → execute" flow.
They are used internally by :class:`circuitiq.commands.CommandExecutor`.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

ConfigValue = Annotated[StrictBool | StrictInt | StrictFloat | StrictStr, Field(union_mode="left_to_right")]
"""Value accepted by a configuration write: bool, int, float or str."""


class DeviceRequest(BaseModel):
    """Request addressed to one device."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    device_id: str

    @field_validator("device_id")
    @classmethod
    def _device_id_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("device_id must be non-empty")
        return value


class RelayRequest(DeviceRequest):
    turn_on: bool
    channel: int | None = Field(default=None, ge=1, le=2)
    """Relay channel; ``None`` addresses every relay."""


class CommandRequest(DeviceRequest):
    name: str
    parameters: str | None = None

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("name must be non-empty")
        return value

    @property
    def text(self) -> str:
        """Single-line form used on the push channel (``"name parameters"``)."""
        return f"{self.name} {self.parameters}" if self.parameters else self.name


class SetConfigRequest(DeviceRequest):
    parameter: str
    value: ConfigValue

    @field_validator("parameter")
    @classmethod
    def _parameter_non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("parameter must be non-empty")
        return value


class MockDataRequest(DeviceRequest):
    count: int = Field(default=1, ge=1)
