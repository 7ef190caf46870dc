from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

# All timestamps are stored as naive datetimes in UTC.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse ISO-8601 text into a naive UTC datetime.

    Blank input gives None. Text without an offset is taken to be UTC;
    a trailing "Z" or an explicit offset is converted to UTC first.
    Raises ValueError for anything fromisoformat rejects.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_naive(value) -> Optional[datetime]:
    """Accept a datetime or ISO string and return a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError("invalid datetime")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with a trailing 'Z', whole seconds."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def period_key(dt: datetime, group_by: str) -> str:
    """
    Bucket label for report grouping.

    day   -> 2026-03-14
    week  -> 2026-W11 (ISO week)
    month -> 2026-03
    """
    if group_by == "day":
        return dt.strftime("%Y-%m-%d")
    if group_by == "week":
        iso_year, iso_week, _ = dt.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if group_by == "month":
        return dt.strftime("%Y-%m")
    raise ValueError("group_by must be day, week, or month")


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def days_ago(days: int, *, now: Optional[datetime] = None) -> datetime:
    return start_of_day((now or utcnow()) - timedelta(days=days))
