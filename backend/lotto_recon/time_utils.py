from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


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

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_business_date(value) -> date:
    """
    Parse a business date ("YYYY-MM-DD") from a route or CLI argument.

    Raises ValueError on anything else, including full datetimes.
    """
    if isinstance(value, datetime):
        raise ValueError("Business date must be a date, not a datetime")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Business date is required (YYYY-MM-DD)")
    return date.fromisoformat(value.strip())


def business_date_for(dt: datetime, tz_name: str | None) -> date:
    """
    Store-local calendar date of a UTC-naive timestamp.

    A reading captured at 02:00 UTC belongs to the previous day in a
    US store, so day-close grouping goes through the store timezone.
    """
    if not tz_name or tz_name.upper() == "UTC":
        return dt.date()
    aware = dt.replace(tzinfo=timezone.utc)
    return aware.astimezone(ZoneInfo(tz_name)).date()


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


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None
