"""Injected key-value persistence for session preferences.

The session never reaches for a global preferences singleton; callers
hand it a :class:`KeyValueStore` (an app's settings backend, a JSON file
wrapper, or :class:`InMemoryStore` in tests).
"""

from __future__ import annotations

from typing import Protocol

KEY_SERVER_URL = "server_url"
KEY_DEVICE_ID = "device_id"
KEY_USERNAME = "username"
KEY_REMEMBER_ME = "remember_me"

_TRUE_VALUES = frozenset({"1", "true", "yes", "y", "on"})


class KeyValueStore(Protocol):
    """Minimal string key-value persistence capability."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local :class:`KeyValueStore`."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._values


class SessionPreferences:
    """Typed accessors over a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def server_url(self) -> str | None:
        return self._store.get(KEY_SERVER_URL)

    @server_url.setter
    def server_url(self, value: str | None) -> None:
        self._put(KEY_SERVER_URL, value)

    @property
    def device_id(self) -> str | None:
        return self._store.get(KEY_DEVICE_ID)

    @device_id.setter
    def device_id(self, value: str | None) -> None:
        self._put(KEY_DEVICE_ID, value)

    @property
    def username(self) -> str | None:
        return self._store.get(KEY_USERNAME)

    @username.setter
    def username(self, value: str | None) -> None:
        self._put(KEY_USERNAME, value)

    @property
    def remember_me(self) -> bool:
        value = self._store.get(KEY_REMEMBER_ME)
        return value is not None and value.strip().lower() in _TRUE_VALUES

    @remember_me.setter
    def remember_me(self, value: bool) -> None:
        self._store.set(KEY_REMEMBER_ME, "true" if value else "false")

    def _put(self, key: str, value: str | None) -> None:
        if value is None or not value:
            self._store.remove(key)
        else:
            self._store.set(key, value)
