"""
Validation of daily time blocks.

Two independent checks, both side-effect free:
1. TimeBlockValidator.validate:       format, ordering and bounds of one block
2. TimeBlockValidator.detect_overlap: blocks of one day that collide

Failures are reported as results rather than raised, so the caller decides
whether to abort generation for that day or reject a template update.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from appointment_engine.schemas.template_schema import DAY_KEYS, TimeBlock, WeeklyTemplate

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 480
MIN_BUFFER_MINUTES = 0
MAX_BUFFER_MINUTES = 120


@dataclass
class BlockCheckResult:
    """Outcome of validating a single time block."""
    passed: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class BlockOverlap:
    """Two blocks of the same day whose ranges collide."""
    first: TimeBlock
    second: TimeBlock

    @property
    def message(self) -> str:
        return (
            f"Time block {self.first.start_time}-{self.first.end_time} overlaps "
            f"{self.second.start_time}-{self.second.end_time}"
        )


class TimeBlockValidator:
    """Checks time blocks before they are expanded into slots."""

    def validate(self, block: TimeBlock, context: Optional[str] = None) -> BlockCheckResult:
        """
        Validate one block.

        Args:
            block: The block to check. Missing duration or buffer are
                checked only when set; resolve defaults first to check them.
            context: Label prefixed to every error, e.g. ``"mon block 1"``.

        Returns:
            BlockCheckResult listing every problem found.
        """
        prefix = f"{context}: " if context else ""
        errors: list[str] = []

        start_ok = bool(TIME_PATTERN.match(block.start_time))
        end_ok = bool(TIME_PATTERN.match(block.end_time))
        if not start_ok:
            errors.append(f"{prefix}invalid start time '{block.start_time}', expected HH:MM")
        if not end_ok:
            errors.append(f"{prefix}invalid end time '{block.end_time}', expected HH:MM")
        # Fixed-width HH:MM compares correctly as text
        if start_ok and end_ok and block.start_time >= block.end_time:
            errors.append(
                f"{prefix}start time {block.start_time} must be before end time {block.end_time}"
            )

        if block.slot_duration is not None and not (
            MIN_SLOT_DURATION <= block.slot_duration <= MAX_SLOT_DURATION
        ):
            errors.append(
                f"{prefix}slot duration must be between {MIN_SLOT_DURATION} and "
                f"{MAX_SLOT_DURATION} minutes, got {block.slot_duration}"
            )
        if block.buffer_minutes is not None and not (
            MIN_BUFFER_MINUTES <= block.buffer_minutes <= MAX_BUFFER_MINUTES
        ):
            errors.append(
                f"{prefix}buffer must be between {MIN_BUFFER_MINUTES} and "
                f"{MAX_BUFFER_MINUTES} minutes, got {block.buffer_minutes}"
            )

        return BlockCheckResult(passed=not errors, errors=errors)

    def detect_overlap(self, blocks: list[TimeBlock]) -> list[BlockOverlap]:
        """Return every adjacent pair (sorted by start) whose ranges collide."""
        ordered = sorted(blocks, key=lambda b: b.start_time)
        conflicts: list[BlockOverlap] = []
        for previous, current in zip(ordered, ordered[1:]):
            if previous.end_time > current.start_time:
                conflicts.append(BlockOverlap(first=previous, second=current))
        return conflicts

    def check_day(self, blocks: list[TimeBlock], day_label: str) -> list[str]:
        """All block and overlap errors for one day's resolved blocks."""
        errors: list[str] = []
        for index, block in enumerate(blocks, start=1):
            errors.extend(self.validate(block, f"{day_label} block {index}").errors)
        if not errors:
            errors.extend(
                f"{day_label}: {conflict.message}" for conflict in self.detect_overlap(blocks)
            )
        return errors


def validate_template(template: WeeklyTemplate) -> list[str]:
    """Validate every enabled day of a template, with its defaults applied."""
    validator = TimeBlockValidator()
    errors: list[str] = []
    if (
        template.effective_from is not None
        and template.effective_to is not None
        and template.effective_from > template.effective_to
    ):
        errors.append("effective_from must not be after effective_to")

    for day_key in DAY_KEYS:
        config = template.daily_configs.get(day_key)
        if config is None or not config.enabled:
            continue
        blocks = [
            block.resolved(template.slot_duration, template.buffer_minutes)
            for block in config.time_blocks
        ]
        errors.extend(validator.check_day(blocks, day_key.value))

    if errors:
        logger.debug("Template %s failed validation: %s", template.id, errors)
    return errors
