"""
Contracts the engine needs from its collaborators.

Persistence, invoicing and notification delivery live outside the engine.
``InMemorySchedulingStore`` in ``appointment_engine.store`` implements the
store contract for tests, jobs and the CLI.
"""

from datetime import datetime
from typing import ContextManager, Iterable, Optional, Protocol

from appointment_engine.schemas.booking_schema import Booking, BookingStatus
from appointment_engine.schemas.exception_schema import ScheduleException
from appointment_engine.schemas.slot_schema import CandidateSlot, SlotKey, SlotStatus, TimeSlot
from appointment_engine.schemas.template_schema import TemplateStatus, WeeklyTemplate


class SchedulingStore(Protocol):
    """Transactional storage for templates, slots, exceptions and bookings."""

    def transaction(self) -> ContextManager[None]:
        """Unit of work: every write inside commits or rolls back together."""
        ...

    # Templates
    def get_template(self, template_id: str) -> Optional[WeeklyTemplate]: ...
    def list_templates(self, status: Optional[TemplateStatus] = None) -> list[WeeklyTemplate]: ...
    def save_template(self, template: WeeklyTemplate) -> WeeklyTemplate: ...

    # Slots
    def get_slot(self, slot_id: str) -> Optional[TimeSlot]: ...
    def list_slots(
        self,
        owner: Optional[str] = None,
        event: Optional[str] = None,
        status: Optional[SlotStatus] = None,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
    ) -> list[TimeSlot]: ...
    def existing_slot_keys(self, owner: str) -> set[SlotKey]: ...
    def insert_slots(self, candidates: Iterable[CandidateSlot]) -> list[TimeSlot]:
        """Insert slots, skipping any whose (owner, start_time) already exists."""
        ...
    def reserve_slot(self, slot_id: str, booking_id: str) -> Optional[TimeSlot]:
        """Set ``booked`` only where the slot is ``available``; None otherwise."""
        ...
    def release_slot(self, slot_id: str) -> Optional[TimeSlot]: ...
    def block_slot(self, slot_id: str) -> Optional[TimeSlot]:
        """Set ``blocked`` only where the slot is ``available``; None otherwise."""
        ...
    def delete_slots(
        self,
        status: SlotStatus = SlotStatus.AVAILABLE,
        event: Optional[str] = None,
        start_after: Optional[datetime] = None,
        start_before: Optional[datetime] = None,
    ) -> int:
        """Delete ``available`` or ``blocked`` slots in the range; booked ones never."""
        ...

    # Exceptions
    def get_exception(self, exception_id: str) -> Optional[ScheduleException]: ...
    def list_exceptions(
        self, owner: Optional[str] = None, event: Optional[str] = None
    ) -> list[ScheduleException]: ...
    def save_exception(self, exception: ScheduleException) -> ScheduleException: ...

    # Bookings
    def get_booking(self, booking_id: str) -> Optional[Booking]: ...
    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        booked_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Booking]: ...
    def insert_booking(self, booking: Booking) -> Booking: ...
    def update_booking(
        self, booking_id: str, expected_status: BookingStatus, changes: dict
    ) -> Optional[Booking]:
        """Apply ``changes`` only if the stored status still equals ``expected_status``."""
        ...


class BillingGateway(Protocol):
    """Creates the invoice attached to a paid booking."""

    def create_invoice(
        self, customer: str, merchant: str, amount: int, currency: str, due_at: datetime
    ) -> str: ...


class NotificationGateway(Protocol):
    """Fire-and-forget delivery of booking events."""

    def publish(self, event: str, booking: Booking, recipients: list[str]) -> None: ...
