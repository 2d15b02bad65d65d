"""Deterministic reading acceptance policy.

This module contains *no* fetching or payload parsing.  It only decides
whether a reading delivered by one source may replace the reading
currently held for the selected device.
"""

from __future__ import annotations

from enum import StrEnum

from circuitiq.models.reading import Reading


class ReadingSource(StrEnum):
    PUSH = "push"
    PULL = "pull"


def is_newer(incoming: Reading, held: Reading) -> bool:
    """Strict timestamp comparison; a parse-time timestamp never wins."""
    if not (incoming.timestamp_reported and held.timestamp_reported):
        return False
    return incoming.timestamp > held.timestamp


def should_accept_pull(
    *,
    held: Reading | None,
    held_source: ReadingSource | None,
    incoming: Reading,
    push_arrived_during_fetch: bool,
    confirmation: bool,
) -> bool:
    """Decide whether a pull-delivered reading replaces the held one.

    Policy:
    - Nothing held: accept.
    - Strictly newer than the held reading, both timestamps reported by
      the server: accept, whatever the source.
    - A push landed while the fetch was in flight: reject (the push is newer).
    - Held reading came from pull: accept (pull replaces pull).
    - Held reading came from push: accept only for a post-command
      confirmation refresh.
    """
    if held is None:
        return True
    if is_newer(incoming, held):
        return True
    if push_arrived_during_fetch:
        return False
    if held_source is not ReadingSource.PUSH:
        return True
    return confirmation
