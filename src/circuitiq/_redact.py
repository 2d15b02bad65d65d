"""Masking of credentials in DEBUG log output.

The HTTP transport authenticates with a bearer token that can travel in
the ``Authorization`` header, in query parameters (``?api_token=...``)
or inside the WebSocket URL.  Everything logged by the transports goes
through :func:`redact_for_log` or :func:`redact_url` first.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel

REDACTED = "<redacted>"

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "apitoken",
        "accesstoken",
        "refreshtoken",
        "authorization",
        "cookie",
        "setcookie",
        "secret",
        "apikey",
    }
)

_AUTH_SCHEMES = ("bearer ", "basic ", "token ")


def is_sensitive_key(key: object) -> bool:
    """``api_token``, ``apiToken``, ``Api-Token`` all match ``apitoken``."""
    normalized = str(key).lower().replace("_", "").replace("-", "")
    return normalized in _SENSITIVE_KEYS


def _redact_string(value: str, max_string: int) -> str:
    if value.lower().startswith(_AUTH_SCHEMES):
        scheme = value.split(" ", 1)[0]
        return f"{scheme} {REDACTED}"
    if "://" in value and "?" in value:
        value = redact_url(value)
    if len(value) > max_string:
        return f"{value[:max_string]}...<{len(value) - max_string} more chars>"
    return value


def redact_url(url: str) -> str:
    """Mask sensitive query parameters and any userinfo password in *url*."""
    parts = urlsplit(url)
    netloc = parts.netloc
    if parts.password:
        netloc = netloc.replace(f":{parts.password}@", f":{REDACTED}@", 1)
    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        query = urlencode(
            [(key, REDACTED if is_sensitive_key(key) else value) for key, value in pairs],
            safe="<>",
        )
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def redact_for_log(value: Any, *, max_string: int = 256) -> Any:
    """Return a copy of *value* with credentials masked.

    Handles request bodies, query parameter mappings, header mappings and
    pydantic models (dumped by alias, as sent on the wire).  Values under
    sensitive keys are replaced, ``Bearer ...`` strings are masked
    wherever they appear, and URLs have their query string scrubbed.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)

    if isinstance(value, str):
        return _redact_string(value, max_string)

    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if is_sensitive_key(key) else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }

    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string) for item in value]

    return value
