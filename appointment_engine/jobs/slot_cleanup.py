"""Removal of past slots nobody booked."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from appointment_engine.config import settings
from appointment_engine.ports import SchedulingStore
from appointment_engine.schemas.slot_schema import SlotStatus
from appointment_engine.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    available: int = 0
    blocked: int = 0

    @property
    def total(self) -> int:
        return self.available + self.blocked


def cleanup_old_slots(
    store: SchedulingStore,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
    blocked_retention_days: Optional[int] = None,
) -> CleanupReport:
    """Delete past available and blocked slots beyond their retention.

    Available slots go after ``retention_days``; blocked slots, which record
    exceptions, after ``blocked_retention_days``. Booked slots are history
    and are never removed.
    """
    now = ensure_utc(now or utc_now())
    if retention_days is None:
        retention_days = settings.cleanup.available_slot_retention_days
    if blocked_retention_days is None:
        blocked_retention_days = settings.cleanup.blocked_slot_retention_days
    available_cutoff = now - timedelta(days=retention_days)
    blocked_cutoff = now - timedelta(days=blocked_retention_days)

    report = CleanupReport()
    with store.transaction():
        report.available = store.delete_slots(SlotStatus.AVAILABLE, start_before=available_cutoff)
        report.blocked = store.delete_slots(SlotStatus.BLOCKED, start_before=blocked_cutoff)
    logger.info(
        "Removed %d available slots older than %s and %d blocked slots older than %s",
        report.available, available_cutoff.date().isoformat(),
        report.blocked, blocked_cutoff.date().isoformat(),
    )
    return report
