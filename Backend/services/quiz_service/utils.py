"""
Shared helpers for the quiz service: calendar day keys and timestamps.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _zone(tz_name: Optional[str]):
    if not tz_name or tz_name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(tz_name)


def today_key(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> str:
    """Calendar day (YYYY-MM-DD) of `now` in the configured quiz timezone."""
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(_zone(tz_name)).strftime("%Y-%m-%d")


def parse_date_key(value) -> Optional[date]:
    """Strict YYYY-MM-DD parse; impossible calendar dates (2024-02-30) return None."""
    if not isinstance(value, str) or not DATE_KEY_RE.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def is_valid_date_key(value) -> bool:
    return parse_date_key(value) is not None


def previous_date_key(date_key: str) -> str:
    d = parse_date_key(date_key)
    if d is None:
        raise ValueError(f"invalid date key: {date_key!r}")
    return (d - timedelta(days=1)).strftime("%Y-%m-%d")


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2025-01-31T12:00:00.000Z"""
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()
