"""
Expansion of schedule exceptions into concrete blackout intervals.

Occurrences advance in the exception's local wall-clock time, so a weekly
09:00 blackout stays at 09:00 local across DST changes. Every sequence is
finite: it is capped by ``max_occurrences`` and bounded by the earlier of the
pattern's ``end_date`` and the caller's horizon. The seed interval is always
the first occurrence, even when its weekday or day of month is not one the
pattern lists.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from appointment_engine.config import settings
from appointment_engine.schemas.exception_schema import (
    Occurrence,
    RecurrencePattern,
    RecurrenceType,
    ScheduleException,
)
from appointment_engine.utils import ensure_utc, local_to_utc

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 100


def _sunday_of(day: date) -> date:
    # weekday(): Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _weekday_starts(pattern: RecurrencePattern, seed: datetime) -> Iterator[datetime]:
    week_start = _sunday_of(seed.date())
    step = 0
    while True:
        anchor = week_start + timedelta(weeks=step * pattern.interval)
        for offset in pattern.days_of_week:
            yield datetime.combine(anchor + timedelta(days=offset), seed.time())
        step += 1


def _pattern_starts(pattern: RecurrencePattern, seed: datetime) -> Iterator[datetime]:
    if pattern.type == RecurrenceType.WEEKLY and pattern.days_of_week:
        yield from _weekday_starts(pattern, seed)
        return

    step = 0
    while True:
        amount = step * pattern.interval
        if pattern.type == RecurrenceType.DAILY:
            yield seed + timedelta(days=amount)
        elif pattern.type == RecurrenceType.WEEKLY:
            yield seed + timedelta(weeks=amount)
        elif pattern.type == RecurrenceType.MONTHLY:
            if pattern.day_of_month is not None:
                # relativedelta clamps the day to the month's length
                yield seed + relativedelta(months=amount, day=pattern.day_of_month)
            else:
                yield seed + relativedelta(months=amount)
        else:
            yield seed + relativedelta(years=amount)
        step += 1


def _local_starts(pattern: RecurrencePattern, seed: datetime) -> Iterator[datetime]:
    """The seed, then the pattern's later starts in ascending order. Unbounded."""
    yield seed
    for candidate in _pattern_starts(pattern, seed):
        if candidate > seed:
            yield candidate


def _to_utc(local: datetime, tz: ZoneInfo) -> datetime:
    converted = local_to_utc(local, tz)
    if converted is None:
        # Wall time skipped by DST: keep the blackout at the shifted instant
        converted = local.replace(tzinfo=tz).astimezone(timezone.utc)
    return converted


def expand(
    pattern: Optional[RecurrencePattern],
    seed: Occurrence,
    horizon: datetime,
    tz_name: str,
    recurring: bool = True,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Iterator[Occurrence]:
    """
    Lazily yield the occurrences of a (possibly recurring) interval.

    Args:
        pattern: Recurrence rule; ``None`` means a one-off interval.
        seed: The first occurrence, in UTC.
        horizon: No occurrence starting after this instant is produced.
        tz_name: IANA zone in which the pattern advances.
        recurring: When False only the seed is produced.
        max_occurrences: Cap used when the pattern does not set its own.

    Yields:
        Occurrence intervals in ascending start order, each with the
        seed's duration.
    """
    seed = Occurrence(ensure_utc(seed.start), ensure_utc(seed.end))
    if not recurring or pattern is None:
        yield seed
        return

    tz = ZoneInfo(tz_name)
    horizon = ensure_utc(horizon)
    duration = seed.end - seed.start
    limit = pattern.max_occurrences or max_occurrences
    local_seed = seed.start.astimezone(tz).replace(tzinfo=None)

    end_bound: Optional[datetime] = None
    if pattern.end_date is not None:
        day_after = datetime.combine(pattern.end_date + timedelta(days=1), time())
        end_bound = _to_utc(day_after, tz)

    produced = 0
    for local_start in _local_starts(pattern, local_seed):
        if produced >= limit:
            break
        start = seed.start if produced == 0 else _to_utc(local_start, tz)
        if start > horizon:
            break
        if end_bound is not None and start >= end_bound:
            break
        produced += 1
        yield Occurrence(start, start + duration)

    logger.debug(
        "Expanded %s pattern into %d occurrences (limit %d)",
        pattern.type.value, produced, limit,
    )


def expand_exception(
    exception: ScheduleException,
    horizon: datetime,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Iterator[Occurrence]:
    """Occurrences of a stored schedule exception up to ``horizon``."""
    return expand(
        exception.recurrence_pattern,
        exception.seed,
        horizon,
        exception.timezone,
        recurring=exception.recurring,
        max_occurrences=max_occurrences,
    )


class RecurrenceExpander:
    """Expander bound to the configured default occurrence cap."""

    def __init__(self, max_occurrences: Optional[int] = None) -> None:
        self.max_occurrences = (
            max_occurrences
            if max_occurrences is not None
            else settings.generation.max_exception_occurrences
        )

    def expand(
        self,
        pattern: Optional[RecurrencePattern],
        seed: Occurrence,
        horizon: datetime,
        tz_name: str,
        recurring: bool = True,
    ) -> Iterator[Occurrence]:
        return expand(pattern, seed, horizon, tz_name, recurring, self.max_occurrences)

    def expand_exception(self, exception: ScheduleException, horizon: datetime) -> list[Occurrence]:
        return list(expand_exception(exception, horizon, self.max_occurrences))
