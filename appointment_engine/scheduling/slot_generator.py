"""
Expansion of weekly templates into dated, UTC-timestamped candidate slots.

Dates are walked in the provider's local calendar and every block is cut
into fixed ``slot_duration`` pieces separated by ``buffer_minutes``. Only the
slot start is converted from local wall-clock time to UTC; the end is the
start plus the duration, so every slot is exactly ``slot_duration`` long even
across a DST change.

Usage:
    generator = SlotGenerator()
    for slot in generator.generate(template, date(2025, 3, 3), date(2025, 3, 9), existing):
        ...
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Collection, Iterable, Iterator, Mapping, Optional

from appointment_engine.config import settings
from appointment_engine.scheduling.time_blocks import TimeBlockValidator
from appointment_engine.schemas.slot_schema import CandidateSlot, SlotKey
from appointment_engine.schemas.template_schema import (
    DAY_KEYS,
    TemplateStatus,
    TimeBlock,
    WeeklyTemplate,
)
from appointment_engine.utils import (
    Clock,
    ensure_utc,
    format_hhmm,
    iter_days,
    local_to_utc,
    minutes_between,
    parse_hhmm,
    utc_now,
)

logger = logging.getLogger(__name__)

BOOKABLE_ROUNDING_MINUTES = 15


@dataclass
class GenerationStats:
    """Counters filled in while a generator is consumed."""
    generated: int = 0
    duplicates: int = 0
    too_soon: int = 0
    skipped_days: int = 0
    nonexistent_times: int = 0


@dataclass
class BoundaryReport:
    """Slots partitioned by the post-generation consistency check."""
    valid: list[CandidateSlot] = field(default_factory=list)
    invalid: list[CandidateSlot] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.invalid


class SlotGenerator:
    """Turns a WeeklyTemplate and a local date range into candidate slots."""

    def __init__(
        self,
        validator: Optional[TimeBlockValidator] = None,
        clock: Clock = utc_now,
        batch_size: Optional[int] = None,
    ) -> None:
        self._validator = validator or TimeBlockValidator()
        self._clock = clock
        self.batch_size = batch_size or settings.generation.batch_size

    def generate(
        self,
        template: WeeklyTemplate,
        start: date,
        end: date,
        existing_slot_keys: Collection[SlotKey] = (),
        now: Optional[datetime] = None,
        seen_starts: Optional[set[datetime]] = None,
        stats: Optional[GenerationStats] = None,
    ) -> Iterator[CandidateSlot]:
        """
        Lazily yield the template's candidate slots for ``[start, end]``.

        Args:
            template: The provider's weekly template.
            start: First local date, inclusive.
            end: Last local date, inclusive.
            existing_slot_keys: Keys of slots already materialized; matching
                candidates are excluded so re-generation is idempotent.
            now: Reference instant for the advance-notice and horizon cutoffs.
            seen_starts: UTC starts already taken by this owner in the current
                run. Shared across templates of one owner to keep starts unique.
            stats: Optional counters updated as slots are produced.

        Yields:
            CandidateSlot records in ascending local order.
        """
        if template.status != TemplateStatus.ACTIVE:
            logger.debug("Template %s is %s, no slots generated", template.id, template.status.value)
            return

        now = ensure_utc(now or self._clock())
        stats = stats if stats is not None else GenerationStats()
        seen = seen_starts if seen_starts is not None else set()
        tz = template.zone
        earliest_start = now + timedelta(minutes=template.min_booking_minutes)
        last_date = now.astimezone(tz).date() + timedelta(days=template.max_booking_days)

        for day in iter_days(start, min(end, last_date)):
            if not template.is_effective_on(day):
                continue
            blocks = template.resolved_blocks(day)
            if not blocks:
                continue

            errors = self._validator.check_day(blocks, DAY_KEYS[day.weekday()].value)
            if errors:
                stats.skipped_days += 1
                logger.warning(
                    "Skipping %s for template %s: %s", day.isoformat(), template.id, "; ".join(errors)
                )
                continue

            for block in sorted(blocks, key=lambda b: b.start_time):
                yield from self._walk_block(
                    template, day, block, earliest_start, existing_slot_keys, seen, stats,
                )

    def _walk_block(
        self,
        template: WeeklyTemplate,
        day: date,
        block: TimeBlock,
        earliest_start: datetime,
        existing_slot_keys: Collection[SlotKey],
        seen: set[datetime],
        stats: GenerationStats,
    ) -> Iterator[CandidateSlot]:
        tz = template.zone
        duration = timedelta(minutes=block.slot_duration)
        step = duration + timedelta(minutes=block.buffer_minutes)
        cursor = datetime.combine(day, parse_hhmm(block.start_time))
        block_end = datetime.combine(day, parse_hhmm(block.end_time))

        while cursor + duration <= block_end:
            local_start = format_hhmm(cursor)
            start_utc = local_to_utc(cursor, tz)
            cursor += step

            if start_utc is None:
                stats.nonexistent_times += 1
                logger.debug("No %s on %s in %s (DST gap)", local_start, day, template.timezone)
                continue
            if start_utc < earliest_start:
                stats.too_soon += 1
                continue

            key = SlotKey(template.owner, day.isoformat(), block.start_time, local_start)
            if key in existing_slot_keys or start_utc in seen:
                stats.duplicates += 1
                continue

            seen.add(start_utc)
            stats.generated += 1
            yield CandidateSlot(
                owner=template.owner,
                event=template.id,
                context=template.context,
                date=day,
                block_start=block.start_time,
                local_start=local_start,
                start_time=start_utc,
                end_time=start_utc + duration,
                location_types=list(template.location_types),
                billing_override=template.billing_config,
            )

    def batches(self, templates: Iterable[WeeklyTemplate]) -> Iterator[list[WeeklyTemplate]]:
        """Split templates into lists of at most ``batch_size``."""
        batch: list[WeeklyTemplate] = []
        for template in templates:
            batch.append(template)
            if len(batch) == self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def batch_generate(
        self,
        templates: Iterable[WeeklyTemplate],
        start: date,
        end: date,
        existing_by_owner: Optional[Mapping[str, Collection[SlotKey]]] = None,
        now: Optional[datetime] = None,
        stats: Optional[GenerationStats] = None,
    ) -> Iterator[CandidateSlot]:
        """Generate for many templates, ``batch_size`` templates at a time."""
        existing_by_owner = existing_by_owner or {}
        now = ensure_utc(now or self._clock())
        seen_by_owner: dict[str, set[datetime]] = {}

        for batch_number, batch in enumerate(self.batches(templates), start=1):
            logger.debug("Processing template batch %d (%d templates)", batch_number, len(batch))
            for template in batch:
                yield from self.generate(
                    template,
                    start,
                    end,
                    existing_by_owner.get(template.owner, ()),
                    now=now,
                    seen_starts=seen_by_owner.setdefault(template.owner, set()),
                    stats=stats,
                )


def validate_boundaries(
    slots: Iterable[CandidateSlot], expected_duration: int, expected_buffer: int
) -> BoundaryReport:
    """
    Check generated slots for consistent length and spacing.

    A slot is invalid when its length differs from ``expected_duration`` or
    when it does not start exactly ``expected_duration + expected_buffer``
    minutes after the previous slot of the same day and block.
    """
    report = BoundaryReport()
    spacing = expected_duration + expected_buffer
    previous: dict[tuple[str, date, str], CandidateSlot] = {}

    for slot in sorted(slots, key=lambda s: s.start_time):
        group = (slot.owner, slot.date, slot.block_start)
        ok = slot.duration_minutes == expected_duration
        before = previous.get(group)
        if ok and before is not None:
            ok = minutes_between(before.start_time, slot.start_time) == spacing
        previous[group] = slot
        (report.valid if ok else report.invalid).append(slot)

    if report.invalid:
        logger.warning(
            "%d of %d slots failed boundary validation",
            len(report.invalid), len(report.valid) + len(report.invalid),
        )
    return report


def validate_template_boundaries(
    slots: Iterable[CandidateSlot], template: WeeklyTemplate
) -> BoundaryReport:
    """Boundary check judging each slot by its own block's resolved duration and buffer."""
    groups: dict[tuple[date, str], list[CandidateSlot]] = {}
    for slot in slots:
        groups.setdefault((slot.date, slot.block_start), []).append(slot)

    report = BoundaryReport()
    for (day, block_start), group in groups.items():
        block = next(
            (b for b in template.resolved_blocks(day) if b.start_time == block_start), None
        )
        if block is None:
            report.invalid.extend(group)
            continue
        partial = validate_boundaries(group, block.slot_duration, block.buffer_minutes)
        report.valid.extend(partial.valid)
        report.invalid.extend(partial.invalid)
    return report


def next_bookable_time(min_booking_minutes: int, now: Optional[datetime] = None) -> datetime:
    """Earliest bookable instant, rounded up to the next quarter hour."""
    earliest = ensure_utc(now or utc_now()) + timedelta(minutes=min_booking_minutes)
    floored = earliest.replace(second=0, microsecond=0)
    floored -= timedelta(minutes=floored.minute % BOOKABLE_ROUNDING_MINUTES)
    if floored == earliest:
        return earliest
    return floored + timedelta(minutes=BOOKABLE_ROUNDING_MINUTES)
