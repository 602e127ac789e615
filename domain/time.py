"""
Domain time utilities.

Every timestamp in the pipeline (history entries, milestones, response
times, the scoring 'now') is timezone-aware UTC. Domain functions never read
the clock themselves; the orchestrator passes `now` explicitly, taken from
`utc_now()` unless a test clock is injected.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def is_utc_timestamp(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() == timedelta(0)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Raise ValueError unless `value` is timezone-aware with UTC offset 0.

    Error messages are shared by every domain type that stores a timestamp.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if not is_utc_timestamp(value):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["is_utc_timestamp", "require_utc_timestamp", "utc_now"]
