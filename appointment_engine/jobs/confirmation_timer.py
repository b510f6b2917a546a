"""Auto-rejection of bookings the provider never confirmed."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from appointment_engine.booking.state_machine import BookingStateMachine
from appointment_engine.config import settings
from appointment_engine.errors import SchedulingError
from appointment_engine.logging_context import get_operation_logger, new_operation_id
from appointment_engine.schemas.booking_schema import ActorRole, BookingStatus
from appointment_engine.utils import ensure_utc, utc_now

logger = get_operation_logger(__name__)


@dataclass
class ExpiryReport:
    checked: int = 0
    rejected: int = 0
    failed: int = 0


def expire_pending_bookings(
    machine: BookingStateMachine,
    now: Optional[datetime] = None,
    window_minutes: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> ExpiryReport:
    """
    Reject pending bookings older than the confirmation window.

    The slot of every rejected booking is released. A booking that fails
    (for instance because the provider confirmed it meanwhile) is logged and
    counted, and the rest of the batch still runs.
    """
    new_operation_id("confirmation-timer")
    now = ensure_utc(now or utc_now())
    window = window_minutes or settings.booking.confirmation_window_minutes
    limit = batch_size or settings.booking.confirmation_batch_size
    reason = f"Auto-rejected: provider did not confirm within {window} minutes"

    expired = machine.store.list_bookings(
        status=BookingStatus.PENDING,
        booked_before=now - timedelta(minutes=window),
        limit=limit,
    )
    report = ExpiryReport(checked=len(expired))
    for booking in expired:
        try:
            machine.reject(booking.id, reason=reason, rejected_by=ActorRole.SYSTEM)
            report.rejected += 1
        except SchedulingError as exc:
            report.failed += 1
            logger.warning("Could not auto-reject %s: %s", booking.id, exc)

    if report.checked:
        logger.info(
            "Auto-rejected %d of %d expired pending bookings",
            report.rejected, report.checked,
        )
    return report
