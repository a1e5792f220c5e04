from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from .errors import ValidationError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise ValidationError(f"invalid datetime: {value!r}")

    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_datetime(value) -> datetime:
    """
    Normalize a timestamp argument to canonical UTC-naive datetime.

    Accepts None (-> now), aware/naive datetimes and ISO strings.
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        dt = parse_iso_datetime(value)
        if dt is None:
            raise ValidationError("timestamp must not be empty")
        return dt
    raise ValidationError(f"invalid timestamp: {value!r}")


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def parse_day(value) -> Optional[date]:
    """Parse a calendar day given as 'YYYY-MM-DD' (or a date). Empty -> None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        if len(s) == 10:
            return date.fromisoformat(s)
        # Full ISO timestamps are accepted; anything else after the date is not.
        return parse_iso_datetime(s).date()
    except ValueError:
        raise ValidationError(f"date must be YYYY-MM-DD, got {value!r}")


def day_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d")


def day_window(start, end) -> tuple[Optional[datetime], Optional[datetime], bool]:
    """
    Translate an inclusive [start, end] calendar-day range to datetimes.

    Returns (start_dt, end_dt_exclusive, is_empty). Both ends are optional.
    A range with start > end is empty rather than an error.
    """
    start_day = parse_day(start)
    end_day = parse_day(end)
    if start_day and end_day and start_day > end_day:
        return None, None, True

    start_dt = datetime.combine(start_day, datetime.min.time()) if start_day else None
    end_dt = (
        datetime.combine(end_day + timedelta(days=1), datetime.min.time())
        if end_day
        else None
    )
    return start_dt, end_dt, False


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from earlier to later (floored, never negative)."""
    return max(0, (later - earlier) // timedelta(days=1))
