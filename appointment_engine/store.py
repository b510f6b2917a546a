"""
In-memory scheduling store.

Reference implementation of ``SchedulingStore``. A re-entrant lock
serializes units of work; the outermost ``transaction()`` snapshots every
table and restores it if the block raises. Records are replaced, never
mutated in place, so shallow snapshots are enough.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional

from appointment_engine.schemas.booking_schema import Booking, BookingStatus
from appointment_engine.schemas.exception_schema import ScheduleException
from appointment_engine.schemas.slot_schema import CandidateSlot, SlotKey, SlotStatus, TimeSlot
from appointment_engine.schemas.template_schema import TemplateStatus, WeeklyTemplate

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


class InMemorySchedulingStore:
    """Dict-backed store with transactional rollback."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._depth = 0
        self._templates: dict[str, WeeklyTemplate] = {}
        self._slots: dict[str, TimeSlot] = {}
        self._exceptions: dict[str, ScheduleException] = {}
        self._bookings: dict[str, Booking] = {}

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                    logger.debug("Transaction rolled back")
                raise
            finally:
                self._depth -= 1

    def _snapshot(self) -> tuple[dict, dict, dict, dict]:
        return (
            dict(self._templates),
            dict(self._slots),
            dict(self._exceptions),
            dict(self._bookings),
        )

    def _restore(self, snapshot: tuple[dict, dict, dict, dict]) -> None:
        self._templates, self._slots, self._exceptions, self._bookings = snapshot

    def reset(self) -> None:
        """Clear every table."""
        with self._lock:
            self._templates.clear()
            self._slots.clear()
            self._exceptions.clear()
            self._bookings.clear()

    # --- Templates ---

    def get_template(self, template_id: str) -> Optional[WeeklyTemplate]:
        return self._templates.get(template_id)

    def list_templates(self, status: Optional[TemplateStatus] = None) -> list[WeeklyTemplate]:
        with self._lock:
            return [t for t in self._templates.values() if status is None or t.status == status]

    def save_template(self, template: WeeklyTemplate) -> WeeklyTemplate:
        with self._lock:
            self._templates[template.id] = template
        return template

    # --- Slots ---

    def get_slot(self, slot_id: str) -> Optional[TimeSlot]:
        return self._slots.get(slot_id)

    def list_slots(
        self,
        owner: Optional[str] = None,
        event: Optional[str] = None,
        status: Optional[SlotStatus] = None,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
    ) -> list[TimeSlot]:
        with self._lock:
            slots = [
                s for s in self._slots.values()
                if (owner is None or s.owner == owner)
                and (event is None or s.event == event)
                and (status is None or s.status == status)
                and (start_after is None or s.start_time >= start_after)
                and (start_before is None or s.start_time < start_before)
            ]
        return sorted(slots, key=lambda s: s.start_time)

    def existing_slot_keys(self, owner: str) -> set[SlotKey]:
        with self._lock:
            return {s.key for s in self._slots.values() if s.owner == owner}

    def insert_slots(self, candidates: Iterable[CandidateSlot]) -> list[TimeSlot]:
        inserted: list[TimeSlot] = []
        with self._lock:
            taken = {(s.owner, s.start_time) for s in self._slots.values()}
            for candidate in candidates:
                unique_key = (candidate.owner, candidate.start_time)
                if unique_key in taken:
                    logger.debug(
                        "Slot for %s at %s already exists, skipped",
                        candidate.owner, candidate.start_time.isoformat(),
                    )
                    continue
                slot = TimeSlot(id=_new_id("slot"), **candidate.model_dump())
                self._slots[slot.id] = slot
                taken.add(unique_key)
                inserted.append(slot)
        return inserted

    def reserve_slot(self, slot_id: str, booking_id: str) -> Optional[TimeSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or slot.status != SlotStatus.AVAILABLE:
                return None
            updated = slot.model_copy(update={"status": SlotStatus.BOOKED, "booking": booking_id})
            self._slots[slot_id] = updated
            return updated

    def release_slot(self, slot_id: str) -> Optional[TimeSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                return None
            updated = slot.model_copy(update={"status": SlotStatus.AVAILABLE, "booking": None})
            self._slots[slot_id] = updated
            return updated

    def block_slot(self, slot_id: str) -> Optional[TimeSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or slot.status != SlotStatus.AVAILABLE:
                return None
            updated = slot.model_copy(update={"status": SlotStatus.BLOCKED})
            self._slots[slot_id] = updated
            return updated

    def delete_slots(
        self,
        status: SlotStatus = SlotStatus.AVAILABLE,
        event: Optional[str] = None,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
    ) -> int:
        if status == SlotStatus.BOOKED:
            raise ValueError("Booked slots are never deleted")
        with self._lock:
            doomed = [
                s.id for s in self.list_slots(
                    event=event,
                    status=status,
                    start_after=start_after,
                    start_before=start_before,
                )
            ]
            for slot_id in doomed:
                del self._slots[slot_id]
        return len(doomed)

    # --- Exceptions ---

    def get_exception(self, exception_id: str) -> Optional[ScheduleException]:
        return self._exceptions.get(exception_id)

    def list_exceptions(
        self, owner: Optional[str] = None, event: Optional[str] = None
    ) -> list[ScheduleException]:
        with self._lock:
            return [
                e for e in self._exceptions.values()
                if (owner is None or e.owner == owner) and (event is None or e.event == event)
            ]

    def save_exception(self, exception: ScheduleException) -> ScheduleException:
        with self._lock:
            self._exceptions[exception.id] = exception
        return exception

    # --- Bookings ---

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        booked_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Booking]:
        with self._lock:
            bookings = sorted(
                (
                    b for b in self._bookings.values()
                    if (status is None or b.status == status)
                    and (booked_before is None or b.booked_at < booked_before)
                ),
                key=lambda b: b.booked_at,
            )
        return bookings[:limit] if limit is not None else bookings

    def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            if booking.id in self._bookings:
                raise KeyError(f"Booking {booking.id} already exists")
            self._bookings[booking.id] = booking
        return booking

    def update_booking(
        self, booking_id: str, expected_status: BookingStatus, changes: dict
    ) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None or booking.status != expected_status:
                return None
            updated = booking.model_copy(update=changes)
            self._bookings[booking_id] = updated
            return updated
