"""Tests for the in-memory scheduling store."""

from datetime import timedelta

import pytest

from appointment_engine.schemas.booking_schema import Booking, BookingStatus
from appointment_engine.schemas.slot_schema import SlotStatus
from tests.conftest import NOW, add_slot, make_candidate


def make_booking(booking_id: str = "BK-1", slot: str = "slot-1") -> Booking:
    return Booking(
        id=booking_id,
        client="client-1",
        provider="provider-1",
        slot=slot,
        booked_at=NOW,
        scheduled_at=NOW + timedelta(days=2),
        duration_minutes=30,
    )


class TestSlots:
    def test_unique_owner_start(self, store):
        first = make_candidate()
        inserted = store.insert_slots([first, make_candidate(event="tpl-2")])
        assert len(inserted) == 1
        assert store.insert_slots([first]) == []

    def test_same_start_other_owner_allowed(self, store):
        inserted = store.insert_slots([make_candidate(), make_candidate(owner="provider-2")])
        assert len(inserted) == 2

    def test_reserve_is_conditional(self, store):
        slot = add_slot(store)
        assert store.reserve_slot(slot.id, "BK-1").status == SlotStatus.BOOKED
        assert store.reserve_slot(slot.id, "BK-2") is None
        assert store.get_slot(slot.id).booking == "BK-1"

    def test_block_only_available(self, store):
        slot = add_slot(store)
        store.reserve_slot(slot.id, "BK-1")
        assert store.block_slot(slot.id) is None

    def test_delete_slots_by_status(self, store):
        available = add_slot(store)
        blocked = add_slot(store, start=NOW + timedelta(hours=1))
        store.block_slot(blocked.id)
        assert store.delete_slots(SlotStatus.BLOCKED) == 1
        assert store.get_slot(blocked.id) is None
        assert store.get_slot(available.id) is not None

    def test_booked_slots_never_deleted(self, store):
        with pytest.raises(ValueError, match="never deleted"):
            store.delete_slots(SlotStatus.BOOKED)

    def test_release(self, store):
        slot = add_slot(store)
        store.reserve_slot(slot.id, "BK-1")
        released = store.release_slot(slot.id)
        assert released.status == SlotStatus.AVAILABLE
        assert released.booking is None

    def test_existing_keys(self, store):
        slot = add_slot(store)
        assert store.existing_slot_keys("provider-1") == {slot.key}
        assert store.existing_slot_keys("provider-2") == set()


class TestBookings:
    def test_update_requires_expected_status(self, store):
        store.insert_booking(make_booking())
        assert store.update_booking("BK-1", BookingStatus.CONFIRMED, {"status": BookingStatus.CANCELLED}) is None
        updated = store.update_booking("BK-1", BookingStatus.PENDING, {"status": BookingStatus.CONFIRMED})
        assert updated.status == BookingStatus.CONFIRMED

    def test_duplicate_insert_fails(self, store):
        store.insert_booking(make_booking())
        with pytest.raises(KeyError):
            store.insert_booking(make_booking())

    def test_list_filters_and_limit(self, store):
        for i in range(3):
            store.insert_booking(make_booking(f"BK-{i}"))
        assert len(store.list_bookings(status=BookingStatus.PENDING, limit=2)) == 2
        assert store.list_bookings(booked_before=NOW) == []


class TestTransaction:
    def test_rollback_on_error(self, store):
        slot = add_slot(store)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.reserve_slot(slot.id, "BK-1")
                store.insert_booking(make_booking(slot=slot.id))
                raise RuntimeError("boom")
        assert store.get_slot(slot.id).status == SlotStatus.AVAILABLE
        assert store.get_booking("BK-1") is None

    def test_nested_transaction_rolls_back_to_outermost(self, store):
        slot = add_slot(store)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.reserve_slot(slot.id, "BK-1")
                with store.transaction():
                    store.insert_booking(make_booking(slot=slot.id))
                raise RuntimeError("boom")
        assert store.get_booking("BK-1") is None
        assert store.get_slot(slot.id).status == SlotStatus.AVAILABLE

    def test_commit(self, store):
        slot = add_slot(store)
        with store.transaction():
            store.reserve_slot(slot.id, "BK-1")
        assert store.get_slot(slot.id).status == SlotStatus.BOOKED

    def test_reset(self, store):
        add_slot(store)
        store.reset()
        assert store.list_slots() == []
