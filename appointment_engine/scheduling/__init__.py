from appointment_engine.scheduling.exception_overlay import ExceptionOverlay
from appointment_engine.scheduling.recurrence import RecurrenceExpander, expand
from appointment_engine.scheduling.slot_generator import (
    SlotGenerator,
    next_bookable_time,
    validate_boundaries,
    validate_template_boundaries,
)
from appointment_engine.scheduling.template_cache import TemplateCache
from appointment_engine.scheduling.template_changes import (
    MAJOR_CHANGE_FIELDS,
    apply_template_update,
    detect_template_changes,
)
from appointment_engine.scheduling.time_blocks import TimeBlockValidator, validate_template

__all__ = [
    "TimeBlockValidator",
    "validate_template",
    "RecurrenceExpander",
    "expand",
    "SlotGenerator",
    "validate_boundaries",
    "validate_template_boundaries",
    "next_bookable_time",
    "ExceptionOverlay",
    "TemplateCache",
    "MAJOR_CHANGE_FIELDS",
    "detect_template_changes",
    "apply_template_update",
]
