"""Suppression of candidate slots that fall inside schedule exceptions."""

import logging
from datetime import datetime
from typing import Iterable, Iterator, Optional

from appointment_engine.scheduling.recurrence import RecurrenceExpander
from appointment_engine.schemas.exception_schema import Occurrence, ScheduleException
from appointment_engine.schemas.slot_schema import CandidateSlot, SlotStatus

logger = logging.getLogger(__name__)


def intersects(start: datetime, end: datetime, occurrence: Occurrence) -> bool:
    """Half-open overlap test between ``[start, end)`` and an occurrence."""
    return start < occurrence.end and occurrence.start < end


def is_blocked(slot: CandidateSlot, occurrences: Iterable[Occurrence]) -> bool:
    """True when the slot intersects any of the given occurrences."""
    return any(intersects(slot.start_time, slot.end_time, occ) for occ in occurrences)


class ExceptionOverlay:
    """Applies owner exceptions to a stream of candidate slots."""

    def __init__(self, expander: Optional[RecurrenceExpander] = None) -> None:
        self._expander = expander or RecurrenceExpander()

    def occurrences_for(
        self, exceptions: Iterable[ScheduleException], horizon: datetime
    ) -> list[Occurrence]:
        """Expand every exception once, sorted by start."""
        occurrences: list[Occurrence] = []
        for exception in exceptions:
            occurrences.extend(self._expander.expand_exception(exception, horizon))
        occurrences.sort()
        return occurrences

    def apply_exceptions(
        self,
        candidates: Iterable[CandidateSlot],
        exceptions: Iterable[ScheduleException],
        horizon: datetime,
        materialize_blocked: bool = False,
    ) -> Iterator[CandidateSlot]:
        """
        Drop (or mark ``blocked``) candidates that intersect an exception.

        Args:
            candidates: Slots from the generator.
            exceptions: Exceptions of the slots' owner.
            horizon: Last instant exceptions are expanded to.
            materialize_blocked: Yield suppressed candidates with status
                ``blocked`` instead of omitting them.
        """
        occurrences = self.occurrences_for(exceptions, horizon)
        suppressed = 0
        for candidate in candidates:
            if occurrences and is_blocked(candidate, occurrences):
                suppressed += 1
                if materialize_blocked:
                    yield candidate.model_copy(update={"status": SlotStatus.BLOCKED})
                continue
            yield candidate

        if suppressed:
            logger.info(
                "Exceptions suppressed %d candidate slots (%d occurrences)",
                suppressed, len(occurrences),
            )
