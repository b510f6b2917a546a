"""
Classification of template edits.

Edits to fields in ``MAJOR_CHANGE_FIELDS`` alter which slots a template
produces, so every not-yet-booked future slot must be regenerated. Other
edits (title, billing, notice windows) apply to new slots only.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import pydantic

from appointment_engine.errors import ValidationError
from appointment_engine.scheduling.time_blocks import validate_template
from appointment_engine.schemas.template_schema import WeeklyTemplate

logger = logging.getLogger(__name__)

MAJOR_CHANGE_FIELDS: frozenset[str] = frozenset({
    "timezone",
    "location_types",
    "effective_from",
    "effective_to",
    "daily_configs",
    "status",
    "slot_duration",
    "buffer_minutes",
})

IMMUTABLE_FIELDS: frozenset[str] = frozenset({"id", "owner"})

# Compared without regard to order
_SET_LIKE_FIELDS: frozenset[str] = frozenset({"location_types"})


@dataclass
class TemplateChangeSet:
    """Fields whose values actually changed, old and new."""
    changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)

    @property
    def changed_fields(self) -> set[str]:
        return set(self.changes)

    @property
    def requires_regeneration(self) -> bool:
        return bool(self.changed_fields & MAJOR_CHANGE_FIELDS)


def _same(name: str, old: Any, new: Any) -> bool:
    if name in _SET_LIKE_FIELDS:
        return set(old) == set(new)
    return old == new


def _merge(current: WeeklyTemplate, updates: Mapping[str, Any]) -> WeeklyTemplate:
    unknown = set(updates) - set(WeeklyTemplate.model_fields)
    if unknown:
        raise ValidationError(f"Unknown template fields: {sorted(unknown)}")
    frozen = IMMUTABLE_FIELDS & set(updates)
    if frozen:
        raise ValidationError(f"Template fields cannot be changed: {sorted(frozen)}")
    try:
        return WeeklyTemplate.model_validate({**current.model_dump(), **updates})
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid template update",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc


def detect_template_changes(
    current: WeeklyTemplate, updates: Mapping[str, Any]
) -> TemplateChangeSet:
    """Compare only the fields present in ``updates`` against ``current``."""
    updated = _merge(current, updates)
    change_set = TemplateChangeSet()
    for name in updates:
        old, new = getattr(current, name), getattr(updated, name)
        if not _same(name, old, new):
            change_set.changes[name] = (old, new)
    return change_set


def apply_template_update(
    current: WeeklyTemplate, updates: Mapping[str, Any]
) -> tuple[WeeklyTemplate, TemplateChangeSet]:
    """
    Validate and apply an edit.

    Returns:
        The updated template and the change set describing the edit.

    Raises:
        ValidationError: If the merged template is malformed or its time
            blocks are invalid.
    """
    updated = _merge(current, updates)
    errors = validate_template(updated)
    if errors:
        raise ValidationError("Invalid time blocks", details={"errors": errors})

    change_set = detect_template_changes(current, updates)
    if change_set.requires_regeneration:
        logger.info(
            "Template %s major change (%s), regeneration required",
            current.id, ", ".join(sorted(change_set.changed_fields & MAJOR_CHANGE_FIELDS)),
        )
    return updated, change_set
