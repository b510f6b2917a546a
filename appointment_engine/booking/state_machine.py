"""
Booking lifecycle state machine.

Every status change is an explicit entry in ``TRANSITIONS``. A transition
re-reads the booking inside a store transaction and updates it only if the
status is still the one it validated, so two racing confirms or cancels
cannot both succeed. Booking and slot changes commit together; notifications
go out only after the commit.

Usage:
    machine = BookingStateMachine(store, billing=gateway, notifier=notifier)
    booking = machine.create("client-1", slot.id)
    machine.confirm(booking.id)
    machine.mark_no_show(booking.id, ActorRole.CLIENT)
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterator, Optional

from appointment_engine.config import settings
from appointment_engine.errors import (
    BusinessLogicError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    SchedulingError,
    ValidationError,
)
from appointment_engine.ports import BillingGateway, NotificationGateway, SchedulingStore
from appointment_engine.schemas.booking_schema import (
    NO_SHOW_STATUSES,
    ActorRole,
    Booking,
    BookingStatus,
)
from appointment_engine.schemas.slot_schema import SlotStatus, TimeSlot
from appointment_engine.schemas.template_schema import BillingConfig, LocationType
from appointment_engine.utils import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Waiting periods after the scheduled start before a party may be marked absent
CLIENT_NO_SHOW_WAIT = timedelta(minutes=5)
PROVIDER_NO_SHOW_WAIT = timedelta(minutes=10)

DEFAULT_REJECTION_REASON = "Rejected by provider"


class BookingAction(str, Enum):
    """Actions that move a booking between statuses."""
    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"
    MARK_NO_SHOW = "mark_no_show"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    action: BookingAction
    releases_slot: bool = False


class BookingStateMachine:
    """
    Governs bookings from ``pending`` to a terminal status.

    Timing guards are asymmetric for no-shows: a client may mark the
    provider absent five minutes after the scheduled start, a provider may
    mark the client absent after ten.
    """

    TRANSITIONS: list[Transition] = [
        # --- Awaiting provider ---
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingAction.CONFIRM),
        Transition(BookingStatus.PENDING, BookingStatus.REJECTED, BookingAction.REJECT,
                   releases_slot=True),
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingAction.CANCEL,
                   releases_slot=True),

        # --- Confirmed ---
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingAction.CANCEL,
                   releases_slot=True),
        Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingAction.COMPLETE),
        Transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW_CLIENT,
                   BookingAction.MARK_NO_SHOW),
        Transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW_PROVIDER,
                   BookingAction.MARK_NO_SHOW),
    ]

    def __init__(
        self,
        store: SchedulingStore,
        billing: Optional[BillingGateway] = None,
        notifier: Optional[NotificationGateway] = None,
        clock: Clock = utc_now,
        max_reason_length: Optional[int] = None,
    ) -> None:
        self.store = store
        self.billing = billing
        self.notifier = notifier
        self._clock = clock
        self.max_reason_length = max_reason_length or settings.booking.max_reason_length

    # --- Introspection ---

    @classmethod
    def allowed_actions(cls, status: BookingStatus) -> list[BookingAction]:
        """Actions valid from ``status``, in table order without repeats."""
        actions: list[BookingAction] = []
        for t in cls.TRANSITIONS:
            if t.from_status == status and t.action not in actions:
                actions.append(t.action)
        return actions

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        return not cls.allowed_actions(status)

    def _find_transition(
        self, booking: Booking, action: BookingAction, target: Optional[BookingStatus] = None
    ) -> Transition:
        for t in self.TRANSITIONS:
            if t.from_status == booking.status and t.action == action:
                if target is None or t.to_status == target:
                    return t
        valid = [a.value for a in self.allowed_actions(booking.status)]
        raise InvalidTransitionError(
            f"Cannot {action.value} a booking that is '{booking.status.value}'. "
            f"Valid actions: {valid}",
            details={"booking": booking.id, "status": booking.status.value},
        )

    # --- Operations ---

    def create(
        self,
        client: str,
        slot_id: str,
        location_type: Optional[LocationType] = None,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Reserve an available slot for ``client``.

        The slot is flipped to ``booked`` with a conditional update, so only
        one of two racing requests wins. When billing applies the invoice is
        created before the booking is stored; an invoice failure leaves
        nothing behind.

        Raises:
            NotFoundError: Unknown slot.
            ConflictError: The slot is not available (code SLOT_UNAVAILABLE).
            ValidationError: Bad location type, reason or slot length.
            BusinessLogicError: Billing applies but invoicing failed.
        """
        note = self._normalize_reason(reason, required=False)
        now = self._now()

        with self._unit_of_work("create"):
            slot = self.store.get_slot(slot_id)
            if slot is None:
                raise NotFoundError("slot", slot_id)
            if slot.status != SlotStatus.AVAILABLE:
                raise ConflictError(
                    f"Slot '{slot_id}' is {slot.status.value}, not available",
                    code="SLOT_UNAVAILABLE",
                    details={"slot": slot_id, "status": slot.status.value},
                )
            if location_type is not None and location_type not in slot.location_types:
                raise ValidationError(
                    f"Location type '{location_type.value}' is not offered for this slot"
                )
            duration = slot.duration_minutes
            if not 15 <= duration <= 480:
                raise ValidationError(f"Slot length {duration} minutes is outside 15-480")

            booking_id = f"BK-{uuid.uuid4().hex[:8].upper()}"
            if self.store.reserve_slot(slot_id, booking_id) is None:
                raise ConflictError(
                    f"Slot '{slot_id}' was booked by another request",
                    code="SLOT_UNAVAILABLE",
                    details={"slot": slot_id},
                )

            invoice_id = None
            billing_config = self._billing_config_for(slot)
            if billing_config is not None:
                invoice_id = self._create_invoice(client, slot, billing_config)

            booking = self.store.insert_booking(Booking(
                id=booking_id,
                client=client,
                provider=slot.owner,
                slot=slot_id,
                location_type=location_type,
                reason=note,
                status=BookingStatus.PENDING,
                booked_at=now,
                scheduled_at=slot.start_time,
                duration_minutes=duration,
                invoice=invoice_id,
            ))

        logger.info(
            "Booking %s created: client %s, slot %s at %s",
            booking.id, client, slot_id, slot.start_time.isoformat(),
        )
        self._notify("booking.created", booking, [booking.provider])
        return booking

    def confirm(self, booking_id: str) -> Booking:
        """Provider accepts a pending booking."""
        now = self._now()
        booking = self._apply(
            booking_id,
            BookingAction.CONFIRM,
            lambda b, t: {"confirmation_timestamp": now},
        )
        self._notify("booking.confirmed", booking, [booking.client])
        return booking

    def reject(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        rejected_by: ActorRole = ActorRole.PROVIDER,
    ) -> Booking:
        """Provider (or the system, on timeout) declines a pending booking."""
        note = self._normalize_reason(reason, required=False) or DEFAULT_REJECTION_REASON
        now = self._now()
        booking = self._apply(
            booking_id,
            BookingAction.REJECT,
            lambda b, t: {
                "cancellation_reason": note,
                "cancelled_by": rejected_by,
                "cancelled_at": now,
            },
        )
        self._notify("booking.rejected", booking, [booking.client])
        return booking

    def cancel(self, booking_id: str, cancelled_by: ActorRole, reason: Optional[str]) -> Booking:
        """
        Either party withdraws a pending or confirmed booking.

        Raises:
            ValidationError: Missing or over-long reason, or an actor that
                is neither client nor provider.
            InvalidTransitionError: The booking is already terminal.
        """
        if cancelled_by not in (ActorRole.CLIENT, ActorRole.PROVIDER):
            raise ValidationError(f"Bookings cannot be cancelled by '{cancelled_by.value}'")
        note = self._normalize_reason(reason, required=True)
        now = self._now()
        booking = self._apply(
            booking_id,
            BookingAction.CANCEL,
            lambda b, t: {
                "cancellation_reason": note,
                "cancelled_by": cancelled_by,
                "cancelled_at": now,
            },
        )
        other = booking.provider if cancelled_by == ActorRole.CLIENT else booking.client
        self._notify("booking.cancelled", booking, [other])
        return booking

    def complete(self, booking_id: str) -> Booking:
        """Close a confirmed booking once its scheduled start has passed."""
        now = self._now()

        def changes(booking: Booking, transition: Transition) -> dict:
            if now < booking.scheduled_at:
                raise BusinessLogicError(
                    "Booking cannot be completed before it starts",
                    code="COMPLETION_TOO_EARLY",
                    details={"scheduled_at": booking.scheduled_at.isoformat()},
                )
            return {}

        booking = self._apply(booking_id, BookingAction.COMPLETE, changes)
        self._notify("booking.completed", booking, [booking.client, booking.provider])
        return booking

    def mark_no_show(self, booking_id: str, marker_role: ActorRole) -> Booking:
        """
        Record that the other party did not attend.

        A client marking yields ``no_show_provider``; a provider marking
        yields ``no_show_client``. The slot stays booked.

        Raises:
            BusinessLogicError: NO_SHOW_ALREADY_MARKED if a no-show exists,
                NO_SHOW_TOO_EARLY if the waiting period has not elapsed.
            InvalidTransitionError: The booking is not confirmed.
        """
        if marker_role == ActorRole.CLIENT:
            target, wait = BookingStatus.NO_SHOW_PROVIDER, CLIENT_NO_SHOW_WAIT
        elif marker_role == ActorRole.PROVIDER:
            target, wait = BookingStatus.NO_SHOW_CLIENT, PROVIDER_NO_SHOW_WAIT
        else:
            raise ValidationError(f"No-show cannot be marked by '{marker_role.value}'")
        now = self._now()

        def precheck(booking: Booking) -> None:
            if booking.status in NO_SHOW_STATUSES:
                raise BusinessLogicError(
                    "A no-show has already been recorded for this booking",
                    code="NO_SHOW_ALREADY_MARKED",
                    details={"booking": booking.id, "status": booking.status.value},
                )

        def changes(booking: Booking, transition: Transition) -> dict:
            allowed_at = booking.scheduled_at + wait
            if now < allowed_at:
                raise BusinessLogicError(
                    f"No-show can be marked from {allowed_at.isoformat()}",
                    code="NO_SHOW_TOO_EARLY",
                    details={"allowed_at": allowed_at.isoformat()},
                )
            return {"no_show_marked_by": marker_role, "no_show_marked_at": now}

        booking = self._apply(booking_id, BookingAction.MARK_NO_SHOW, changes, target, precheck)
        self._notify("booking.no_show", booking, [booking.client, booking.provider])
        return booking

    # --- Internals ---

    def _apply(
        self,
        booking_id: str,
        action: BookingAction,
        build_changes: Callable[[Booking, Transition], dict],
        target: Optional[BookingStatus] = None,
        precheck: Optional[Callable[[Booking], None]] = None,
    ) -> Booking:
        with self._unit_of_work(action.value):
            booking = self.store.get_booking(booking_id)
            if booking is None:
                raise NotFoundError("booking", booking_id)
            if precheck is not None:
                precheck(booking)
            transition = self._find_transition(booking, action, target)
            changes = {"status": transition.to_status, **build_changes(booking, transition)}

            updated = self.store.update_booking(booking_id, booking.status, changes)
            if updated is None:
                raise ConflictError(
                    f"Booking '{booking_id}' changed while being updated",
                    code="CONCURRENT_MODIFICATION",
                )
            if transition.releases_slot:
                self.store.release_slot(booking.slot)

        logger.info(
            "Booking %s: %s -> %s (%s)",
            booking_id, transition.from_status.value, transition.to_status.value, action.value,
        )
        return updated

    @contextmanager
    def _unit_of_work(self, action: str) -> Iterator[None]:
        try:
            with self.store.transaction():
                yield
        except SchedulingError:
            raise
        except Exception as exc:
            logger.error("Store failure during %s: %s", action, exc)
            raise PersistenceError(f"Store failure during {action}") from exc

    def _normalize_reason(self, reason: Optional[str], required: bool) -> Optional[str]:
        text = (reason or "").strip()
        if not text:
            if required:
                raise ValidationError("A reason is required", code="REASON_REQUIRED")
            return None
        if len(text) > self.max_reason_length:
            raise ValidationError(
                f"Reason must be at most {self.max_reason_length} characters",
                code="REASON_TOO_LONG",
            )
        return text

    def _billing_config_for(self, slot: TimeSlot) -> Optional[BillingConfig]:
        if slot.billing_override is not None:
            config = slot.billing_override
        else:
            template = self.store.get_template(slot.event)
            config = template.billing_config if template is not None else None
        if config is None or config.price <= 0:
            return None
        return config

    def _create_invoice(self, client: str, slot: TimeSlot, config: BillingConfig) -> str:
        if self.billing is None:
            raise BusinessLogicError(
                "Slot requires payment but no billing gateway is configured",
                code="BILLING_UNAVAILABLE",
            )
        try:
            invoice_id = self.billing.create_invoice(
                customer=client,
                merchant=slot.owner,
                amount=config.price,
                currency=config.currency,
                due_at=slot.start_time,
            )
        except SchedulingError:
            raise
        except Exception as exc:
            raise BusinessLogicError(
                f"Invoice creation failed: {exc}", code="INVOICE_FAILED"
            ) from exc
        logger.info("Invoice %s created for slot %s", invoice_id, slot.id)
        return invoice_id

    def _notify(self, event: str, booking: Booking, recipients: list[str]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(event, booking, recipients)
        except Exception as exc:
            logger.warning("Notification %s for booking %s failed: %s", event, booking.id, exc)

    def _now(self) -> datetime:
        return ensure_utc(self._clock())
