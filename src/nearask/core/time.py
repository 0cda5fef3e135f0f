"""
Timestamp helpers.

NearAsk stores every timestamp as a timezone-aware UTC datetime so values coming
from the API, the CLI and the JSON store compare safely. Lifecycle writes go
through `advance()` so `updated_at` never moves backwards when the wall clock does.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_tz(dt: datetime, tz: str = "UTC") -> datetime:
    """Ensure `dt` has tzinfo; attach `tz` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def advance(previous: datetime | None, now: datetime | None = None) -> datetime:
    """Return `now` (default: current UTC time), but never earlier than `previous`."""
    current = ensure_tz(now) if now is not None else utc_now()
    if previous is None:
        return current
    previous = ensure_tz(previous)
    return current if current >= previous else previous
