"""Timestamp helpers shared by the fetchers and metric calculations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_MINUTE = 60.0
SECONDS_PER_HOUR = 3600.0
SECONDS_PER_DAY = 86400.0


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into timezone-aware UTC datetimes."""
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(value: datetime) -> str:
    """Format a datetime as UTC ISO8601 with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def in_window(
    value: datetime,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> bool:
    """Return ``True`` when ``since <= value < until``; a missing bound is open."""
    if since is not None and value < since:
        return False
    if until is not None and value >= until:
        return False
    return True


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_MINUTE


def days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY
