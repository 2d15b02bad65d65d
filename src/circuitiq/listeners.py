"""Subscriber list with batched change notification."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator

_logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class Listeners:
    """Ordered set of change listeners.

    Inside :meth:`batch` every :meth:`notify` is deferred, and a single
    notification is emitted when the outermost batch exits, provided at
    least one change was signalled.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._depth = 0
        self._pending = False

    def add(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove(self, listener: Listener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    def notify(self) -> None:
        if self._depth:
            self._pending = True
            return
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                _logger.warning("Change listener %r failed", listener, exc_info=True)

    @contextlib.contextmanager
    def batch(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if not self._depth and self._pending:
                self._pending = False
                self.notify()

    def clear(self) -> None:
        self._listeners.clear()
