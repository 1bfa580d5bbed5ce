"""
Time helpers

Stored timestamps are always timezone-aware UTC. now_utc() never returns the
same instant twice within a process, so insertion time is usable as a
tie-break key for records written back to back.
"""

import threading
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_clock_lock = threading.Lock()
_last_now: Optional[datetime] = None


def now_utc() -> datetime:
    """Current UTC time, strictly increasing across calls"""
    global _last_now
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_now is not None and now <= _last_now:
            now = _last_now + timedelta(microseconds=1)
        _last_now = now
        return now


def ensure_utc(value: Union[datetime, date]) -> datetime:
    """
    Normalize a date or datetime to an aware UTC datetime.

    Naive datetimes are taken as UTC; plain dates become midnight UTC.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_end(day: date) -> datetime:
    """Last microsecond of a calendar day in UTC"""
    return datetime.combine(day, time.max, tzinfo=timezone.utc)


def parse_datetime(text: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime string.

    Args:
        text: "2025-03-01" or "2025-03-01T10:30:00+00:00"; empty means None
        end_of_day: for a date-only string, return the last microsecond of
            that day instead of midnight (inclusive upper bounds)

    Raises:
        ValueError: if the string is not ISO-8601
    """
    if not text:
        return None
    text = text.strip()
    if len(text) == 10:
        day = date.fromisoformat(text)
        if end_of_day:
            return day_end(day)
        return ensure_utc(day)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize an optional datetime"""
    return value.isoformat() if value else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Deserialize an optional ISO datetime written by to_iso"""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))
