"""
Slot materialization jobs.

``run_slot_generation`` is the periodic job: every active template is
expanded for the configured number of days, filtered through its exceptions
and inserted. A failing template is logged and counted; it never stops the
run. ``regenerate_template_slots`` is triggered by a major template change
and ``apply_exception_to_slots`` by a newly created exception.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from appointment_engine.config import settings
from appointment_engine.errors import NotFoundError
from appointment_engine.logging_context import get_operation_logger, new_operation_id
from appointment_engine.ports import SchedulingStore
from appointment_engine.scheduling.exception_overlay import ExceptionOverlay, is_blocked
from appointment_engine.scheduling.recurrence import RecurrenceExpander
from appointment_engine.scheduling.slot_generator import GenerationStats, SlotGenerator
from appointment_engine.scheduling.template_cache import TemplateCache
from appointment_engine.schemas.exception_schema import ScheduleException
from appointment_engine.schemas.slot_schema import SlotStatus
from appointment_engine.schemas.template_schema import TemplateStatus, WeeklyTemplate
from appointment_engine.utils import ensure_utc, utc_now

logger = get_operation_logger(__name__)


@dataclass
class GenerationReport:
    """Summary of one generation run."""
    templates: int = 0
    generated: int = 0
    created: int = 0
    duplicates: int = 0
    blocked: int = 0
    deleted: int = 0
    failed_templates: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_templates


def _generate_for_template(
    store: SchedulingStore,
    template: WeeklyTemplate,
    now: datetime,
    days: int,
    generator: SlotGenerator,
    overlay: ExceptionOverlay,
    seen_starts: set[datetime],
    report: GenerationReport,
) -> None:
    tz = template.zone
    start = now.astimezone(tz).date()
    end = start + timedelta(days=days)
    horizon = datetime.combine(end + timedelta(days=1), time(), tzinfo=tz).astimezone(timezone.utc)
    stats = GenerationStats()

    with store.transaction():
        existing = store.existing_slot_keys(template.owner)
        # A start blocked for this template stays open to the owner's other templates
        candidates = list(generator.generate(
            template, start, end, existing, now=now, seen_starts=set(seen_starts), stats=stats,
        ))
        exceptions = store.list_exceptions(event=template.id)
        survivors = list(overlay.apply_exceptions(candidates, exceptions, horizon))
        inserted = store.insert_slots(survivors)

    seen_starts.update(slot.start_time for slot in inserted)
    report.generated += stats.generated
    report.created += len(inserted)
    report.duplicates += stats.duplicates + len(survivors) - len(inserted)
    report.blocked += len(candidates) - len(survivors)
    logger.debug(
        "Template %s: %d generated, %d created, %d blocked",
        template.id, stats.generated, len(inserted), len(candidates) - len(survivors),
    )


def run_slot_generation(
    store: SchedulingStore,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    cache: Optional[TemplateCache] = None,
    generator: Optional[SlotGenerator] = None,
    overlay: Optional[ExceptionOverlay] = None,
) -> GenerationReport:
    """Materialize slots for every active template."""
    new_operation_id("slot-generation")
    now = ensure_utc(now or utc_now())
    days = days or settings.generation.days_to_generate
    generator = generator or SlotGenerator()
    overlay = overlay or ExceptionOverlay(RecurrenceExpander())
    report = GenerationReport()
    seen_by_owner: dict[str, set[datetime]] = {}

    templates = store.list_templates(status=TemplateStatus.ACTIVE)
    logger.info("Generating %d days of slots for %d templates", days, len(templates))

    for batch_number, batch in enumerate(generator.batches(templates), start=1):
        logger.debug("Batch %d: %d templates", batch_number, len(batch))
        for template in batch:
            report.templates += 1
            if cache is not None:
                cache.put(template)
            try:
                _generate_for_template(
                    store, template, now, days, generator, overlay,
                    seen_by_owner.setdefault(template.owner, set()), report,
                )
            except Exception as exc:
                logger.exception("Slot generation failed for template %s", template.id)
                report.failed_templates.append(template.id)
                report.errors.append(f"{template.id}: {exc}")

    logger.info(
        "Slot generation done: %d generated, %d created, %d duplicates, "
        "%d blocked, %d failed templates",
        report.generated, report.created, report.duplicates,
        report.blocked, len(report.failed_templates),
    )
    return report


def regenerate_template_slots(
    store: SchedulingStore,
    template_id: str,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    cache: Optional[TemplateCache] = None,
    generator: Optional[SlotGenerator] = None,
    overlay: Optional[ExceptionOverlay] = None,
) -> GenerationReport:
    """
    Replace a template's future available slots after a major change.

    Booked and blocked slots are kept; their keys stop the regenerated
    candidates from duplicating them.
    """
    new_operation_id("slot-regeneration")
    now = ensure_utc(now or utc_now())
    days = days or settings.generation.days_to_generate
    generator = generator or SlotGenerator()
    overlay = overlay or ExceptionOverlay(RecurrenceExpander())

    if cache is not None:
        cache.invalidate(template_id)
        template = cache.get_or_load(template_id, store.get_template)
    else:
        template = store.get_template(template_id)
    if template is None:
        raise NotFoundError("template", template_id)

    report = GenerationReport(templates=1)
    with store.transaction():
        report.deleted = store.delete_slots(event=template_id, start_after=now)
        if template.status == TemplateStatus.ACTIVE:
            _generate_for_template(store, template, now, days, generator, overlay, set(), report)

    logger.info(
        "Regenerated template %s: %d removed, %d created",
        template_id, report.deleted, report.created,
    )
    return report


def apply_exception_to_slots(
    store: SchedulingStore,
    exception: ScheduleException,
    now: Optional[datetime] = None,
    expander: Optional[RecurrenceExpander] = None,
) -> int:
    """Block stored future available slots that intersect a new exception."""
    now = ensure_utc(now or utc_now())
    expander = expander or RecurrenceExpander()
    slots = store.list_slots(event=exception.event, status=SlotStatus.AVAILABLE, start_after=now)
    if not slots:
        return 0

    occurrences = expander.expand_exception(exception, slots[-1].end_time)
    blocked = 0
    with store.transaction():
        for slot in slots:
            if is_blocked(slot, occurrences) and store.block_slot(slot.id) is not None:
                blocked += 1

    logger.info("Exception %s blocked %d slots of %s", exception.id, blocked, exception.event)
    return blocked
