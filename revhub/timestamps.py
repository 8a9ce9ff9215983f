"""Conversions to epoch milliseconds, the only time unit the models carry."""

from datetime import datetime, timezone
from typing import Any


def iso_to_epoch_ms(value: str | None) -> int:
    """Parse an ISO-8601 timestamp (GitLab style, ``Z`` suffix allowed).

    Naive timestamps are taken as UTC. ``None`` or empty input gives 0.
    """
    if not value:
        return 0
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(round(parsed.timestamp() * 1000))


def seconds_to_epoch_ms(value: Any) -> int:
    """Convert epoch seconds (Phabricator style, int or numeric string)."""
    if value is None or value == "":
        return 0
    return int(round(float(value) * 1000))


def now_epoch_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
