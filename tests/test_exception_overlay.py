"""Tests for applying schedule exceptions to candidate slots."""

from datetime import date, datetime, timedelta, timezone

from appointment_engine.scheduling.exception_overlay import ExceptionOverlay, intersects, is_blocked
from appointment_engine.scheduling.slot_generator import SlotGenerator
from appointment_engine.schemas.exception_schema import (
    Occurrence,
    RecurrencePattern,
    RecurrenceType,
)
from appointment_engine.schemas.slot_schema import SlotStatus
from appointment_engine.schemas.template_schema import DayOfWeek
from tests.conftest import MONDAY, NOW, make_block, make_candidate, make_exception, make_template

UTC = timezone.utc
HORIZON = datetime(2025, 6, 1, tzinfo=UTC)


def at(hour, minute=0, day=3):
    return datetime(2025, 3, day, hour, minute, tzinfo=UTC)


class TestIntersects:
    def test_overlap(self):
        assert intersects(at(14), at(14, 30), Occurrence(at(14, 15), at(15)))

    def test_touching_end_is_not_overlap(self):
        assert not intersects(at(14), at(14, 30), Occurrence(at(14, 30), at(15)))

    def test_touching_start_is_not_overlap(self):
        assert not intersects(at(14), at(14, 30), Occurrence(at(13), at(14)))

    def test_containment(self):
        assert intersects(at(14), at(14, 30), Occurrence(at(12), at(18)))
        assert intersects(at(12), at(18), Occurrence(at(14), at(14, 30)))

    def test_is_blocked_any(self):
        slot = make_candidate(at(14))
        assert is_blocked(slot, [Occurrence(at(10), at(11)), Occurrence(at(14, 29), at(15))])
        assert not is_blocked(slot, [])


class TestApplyExceptions:
    def setup_method(self):
        self.overlay = ExceptionOverlay()

    def test_intersecting_candidates_dropped(self):
        candidates = [make_candidate(at(14)), make_candidate(at(14, 30)), make_candidate(at(15))]
        exception = make_exception(at(14, 15), at(14, 45))
        result = list(self.overlay.apply_exceptions(candidates, [exception], HORIZON))
        assert [c.start_time for c in result] == [at(15)]

    def test_seed_blocks_when_weekday_not_listed(self):
        # Monday seed, recurring on Wednesdays only
        pattern = RecurrencePattern(type=RecurrenceType.WEEKLY, days_of_week=[3])
        exception = make_exception(at(14), at(15), pattern=pattern)
        candidates = [make_candidate(at(14)), make_candidate(at(14, day=5))]
        assert list(self.overlay.apply_exceptions(candidates, [exception], HORIZON)) == []

    def test_no_exceptions_passes_everything(self):
        candidates = [make_candidate(at(14)), make_candidate(at(14, 30))]
        assert list(self.overlay.apply_exceptions(candidates, [], HORIZON)) == candidates

    def test_materialize_blocked(self):
        candidates = [make_candidate(at(14)), make_candidate(at(15))]
        exception = make_exception(at(14), at(14, 30))
        result = list(self.overlay.apply_exceptions(
            candidates, [exception], HORIZON, materialize_blocked=True,
        ))
        assert [c.status for c in result] == [SlotStatus.BLOCKED, SlotStatus.AVAILABLE]

    def test_recurring_weekly_exception_blocks_every_monday(self):
        template = make_template()
        candidates = list(SlotGenerator().generate(
            template, MONDAY, MONDAY + timedelta(days=20), now=NOW,
        ))
        assert len(candidates) == 6
        # Monday 09:00-09:30 Toronto, every week
        exception = make_exception(
            at(14), at(14, 30), RecurrencePattern(type=RecurrenceType.WEEKLY),
        )
        result = list(self.overlay.apply_exceptions(candidates, [exception], HORIZON))
        assert [c.local_start for c in result] == ["09:30", "09:30", "09:30"]

    def test_occurrences_beyond_horizon_ignored(self):
        candidate = make_candidate(datetime(2025, 3, 10, 13, 0, tzinfo=UTC))
        exception = make_exception(
            at(13), at(14), RecurrencePattern(type=RecurrenceType.DAILY),
        )
        horizon = datetime(2025, 3, 5, tzinfo=UTC)
        assert len(list(self.overlay.apply_exceptions([candidate], [exception], horizon))) == 1

    def test_multiple_exceptions(self):
        template = make_template(days={DayOfWeek.MON: [make_block("09:00", "12:00")]})
        candidates = list(SlotGenerator().generate(template, MONDAY, MONDAY, now=NOW))
        exceptions = [
            make_exception(at(14), at(15), exception_id="exc-1"),
            make_exception(at(16), at(16, 30), exception_id="exc-2"),
        ]
        result = list(self.overlay.apply_exceptions(candidates, exceptions, HORIZON))
        assert [c.local_start for c in result] == ["10:00", "10:30", "11:30"]

    def test_occurrences_sorted(self):
        exceptions = [
            make_exception(at(16), at(17), exception_id="late"),
            make_exception(at(9), at(10), exception_id="early"),
        ]
        occurrences = self.overlay.occurrences_for(exceptions, HORIZON)
        assert [o.start for o in occurrences] == [at(9), at(16)]

    def test_all_day_exception(self):
        template = make_template(days={
            DayOfWeek.MON: [make_block("09:00", "12:00")],
            DayOfWeek.TUE: [make_block("09:00", "10:00")],
        })
        candidates = list(SlotGenerator().generate(
            template, MONDAY, MONDAY + timedelta(days=1), now=NOW,
        ))
        # Whole local Monday: 05:00Z to 05:00Z next day
        exception = make_exception(at(5), at(5, day=4))
        result = list(self.overlay.apply_exceptions(candidates, [exception], HORIZON))
        assert {c.date for c in result} == {date(2025, 3, 4)}
