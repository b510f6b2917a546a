"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from appointment_engine.booking.state_machine import BookingStateMachine
from appointment_engine.schemas.booking_schema import Booking
from appointment_engine.schemas.exception_schema import RecurrencePattern, ScheduleException
from appointment_engine.schemas.slot_schema import CandidateSlot, SlotStatus, TimeSlot
from appointment_engine.schemas.template_schema import (
    BillingConfig,
    DailyConfig,
    DayOfWeek,
    TimeBlock,
    WeeklyTemplate,
)
from appointment_engine.store import InMemorySchedulingStore

UTC = timezone.utc

# Monday, before the 2025-03-09 spring-forward in North America
MONDAY = date(2025, 3, 3)
NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


class FrozenClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeBilling:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.invoices: list[dict] = []

    def create_invoice(self, customer, merchant, amount, currency, due_at) -> str:
        if self.fail:
            raise RuntimeError("payment provider unavailable")
        self.invoices.append({
            "customer": customer,
            "merchant": merchant,
            "amount": amount,
            "currency": currency,
            "due_at": due_at,
        })
        return f"INV-{len(self.invoices):04d}"


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple[str, str, list[str]]] = []

    def publish(self, event, booking, recipients) -> None:
        if self.fail:
            raise ConnectionError("notification queue down")
        self.events.append((event, booking.id, list(recipients)))


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemorySchedulingStore()


@pytest.fixture
def billing():
    return FakeBilling()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def machine(store, billing, notifier, clock):
    return BookingStateMachine(store, billing=billing, notifier=notifier, clock=clock)


def make_block(
    start: str = "09:00",
    end: str = "10:00",
    duration: Optional[int] = None,
    buffer: Optional[int] = None,
) -> TimeBlock:
    """Helper to create a TimeBlock."""
    return TimeBlock(start_time=start, end_time=end, slot_duration=duration, buffer_minutes=buffer)


def make_template(
    template_id: str = "tpl-1",
    owner: str = "provider-1",
    timezone_name: str = "America/Toronto",
    days: Optional[dict[DayOfWeek, list[TimeBlock]]] = None,
    min_booking_minutes: int = 0,
    max_booking_days: int = 60,
    **kwargs,
) -> WeeklyTemplate:
    """Helper to create a WeeklyTemplate; defaults to Monday 09:00-10:00."""
    if days is None:
        days = {DayOfWeek.MON: [make_block()]}
    return WeeklyTemplate(
        id=template_id,
        owner=owner,
        title="Consultation",
        timezone=timezone_name,
        min_booking_minutes=min_booking_minutes,
        max_booking_days=max_booking_days,
        daily_configs={
            day: DailyConfig(enabled=True, time_blocks=blocks) for day, blocks in days.items()
        },
        **kwargs,
    )


def make_candidate(
    start: datetime = datetime(2025, 3, 3, 14, 0, tzinfo=UTC),
    minutes: int = 30,
    owner: str = "provider-1",
    event: str = "tpl-1",
    billing: Optional[BillingConfig] = None,
    local_start: str = "09:00",
    block_start: str = "09:00",
) -> CandidateSlot:
    """Helper to create a CandidateSlot."""
    return CandidateSlot(
        owner=owner,
        event=event,
        date=start.date(),
        block_start=block_start,
        local_start=local_start,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        location_types=["video", "phone"],
        billing_override=billing,
    )


def add_slot(store: InMemorySchedulingStore, **kwargs) -> TimeSlot:
    """Insert one available slot into the store and return it."""
    (slot,) = store.insert_slots([make_candidate(**kwargs)])
    assert slot.status == SlotStatus.AVAILABLE
    return slot


def make_exception(
    start: datetime,
    end: datetime,
    pattern: Optional[RecurrencePattern] = None,
    exception_id: str = "exc-1",
    event: str = "tpl-1",
    timezone_name: str = "America/Toronto",
) -> ScheduleException:
    """Helper to create a ScheduleException; recurring when a pattern is given."""
    return ScheduleException(
        id=exception_id,
        event=event,
        owner="provider-1",
        timezone=timezone_name,
        start_datetime=start,
        end_datetime=end,
        reason="Out of office",
        recurring=pattern is not None,
        recurrence_pattern=pattern,
    )


def book_and_confirm(machine: BookingStateMachine, slot: TimeSlot) -> Booking:
    """Create a booking on ``slot`` and confirm it."""
    booking = machine.create("client-1", slot.id)
    return machine.confirm(booking.id)
