"""Shared time helpers used across the scheduling engine."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterator, Optional
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a time.

    Examples:
        >>> parse_hhmm("09:30")
        datetime.time(9, 30)
    """
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def format_hhmm(value: datetime) -> str:
    """Render the wall-clock part of a datetime as ``HH:MM``."""
    return value.strftime("%H:%M")


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_to_utc(local: datetime, tz: ZoneInfo) -> Optional[datetime]:
    """Convert a naive local wall-clock datetime to UTC.

    Returns None when the wall-clock time does not exist in the zone
    (skipped by a DST spring-forward). Ambiguous fall-back times resolve to
    their first occurrence.
    """
    aware = local.replace(tzinfo=tz, fold=0)
    as_utc = aware.astimezone(timezone.utc)
    if as_utc.astimezone(tz).replace(tzinfo=None) != local:
        return None
    return as_utc


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, truncated toward zero."""
    return int((end - start).total_seconds() // 60)
