"""Base model for CircuitIQ API payloads.

Every response model inherits from :class:`CircuitIQBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase API keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``""``, ``"--"``, NaN) so the field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Sentinel strings the firmware uses for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return float(value)
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an API timestamp to a timezone-aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix allowed) and epoch
    numbers in seconds **or** milliseconds.  Returns ``None`` for
    ``None``.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        numeric = safe_float(text)
        if numeric is None:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
        value = numeric
    ts = float(value)
    if ts >= _MS_THRESHOLD:
        ts /= 1000.0
    return datetime.fromtimestamp(ts, tz=UTC)


ApiTimestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Annotated type that coerces ISO strings and epoch numbers to UTC datetimes."""


class CircuitIQBaseModel(BaseModel):
    """Base for CircuitIQ API models.

    Handles:
    * camelCase → snake_case via ``alias_generator=to_camel``
    * sentinel values (``""``, ``"--"``, NaN) → dropped so the
      field default is used instead
    * stashes the original API dict in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original API payload."""

    @staticmethod
    def _clean_dict(values: dict[str, Any], aliases: dict[str, str] | None = None) -> dict[str, Any]:
        """Strip sentinel values and apply key aliases on *values*."""
        working = dict(values)
        if aliases:
            for old_key, new_key in aliases.items():
                if old_key in working and new_key not in working:
                    working[new_key] = working.pop(old_key)

        cleaned: dict[str, Any] = {}
        for key, value in working.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_api_values(cls, values: Any) -> Any:
        """Strip sentinel values, apply key aliases, and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)

        aliases: dict[str, str] = getattr(cls, "_KEY_ALIASES", {})
        cleaned = CircuitIQBaseModel._clean_dict(original, aliases)

        # Keep an explicitly passed raw= (kwargs construction).
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned


def utcnow() -> datetime:
    return datetime.now(UTC)


ApiDatetime = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Non-optional variant of :data:`ApiTimestamp`."""
