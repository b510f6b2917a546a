"""Tests for shared utility functions."""

import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from appointment_engine.logging_context import (
    LOG_FORMAT,
    OperationIdFilter,
    get_operation_id,
    get_operation_logger,
    new_operation_id,
    operation_handler,
    set_operation_id,
)
from appointment_engine.utils import (
    ensure_utc,
    format_hhmm,
    iter_days,
    local_to_utc,
    minutes_between,
    parse_hhmm,
)

UTC = timezone.utc
TORONTO = ZoneInfo("America/Toronto")


class TestTimeHelpers:
    def test_parse_and_format(self):
        assert parse_hhmm("07:05").hour == 7
        assert format_hhmm(datetime(2025, 1, 1, 7, 5)) == "07:05"

    def test_ensure_utc_naive(self):
        assert ensure_utc(datetime(2025, 1, 1, 12)).tzinfo == UTC

    def test_ensure_utc_converts(self):
        local = datetime(2025, 1, 1, 7, tzinfo=TORONTO)
        assert ensure_utc(local) == datetime(2025, 1, 1, 12, tzinfo=UTC)

    def test_iter_days_inclusive(self):
        assert list(iter_days(date(2025, 3, 1), date(2025, 3, 3))) == [
            date(2025, 3, 1), date(2025, 3, 2), date(2025, 3, 3),
        ]

    def test_iter_days_empty_when_reversed(self):
        assert list(iter_days(date(2025, 3, 3), date(2025, 3, 1))) == []

    def test_minutes_between(self):
        assert minutes_between(datetime(2025, 1, 1, 9), datetime(2025, 1, 1, 10, 30)) == 90


class TestLocalToUtc:
    def test_standard_time(self):
        assert local_to_utc(datetime(2025, 3, 3, 9), TORONTO) == datetime(2025, 3, 3, 14, tzinfo=UTC)

    def test_daylight_time(self):
        assert local_to_utc(datetime(2025, 3, 10, 9), TORONTO) == datetime(2025, 3, 10, 13, tzinfo=UTC)

    def test_gap_is_none(self):
        assert local_to_utc(datetime(2025, 3, 9, 2, 30), TORONTO) is None

    def test_ambiguous_takes_first(self):
        # 01:30 happens twice on 2025-11-02; the first is still EDT (UTC-4)
        assert local_to_utc(datetime(2025, 11, 2, 1, 30), TORONTO) == datetime(
            2025, 11, 2, 5, 30, tzinfo=UTC
        )


class TestOperationId:
    def test_set_and_get(self):
        set_operation_id("JOB-123")
        assert get_operation_id() == "JOB-123"

    def test_new_operation_id_prefix(self):
        operation_id = new_operation_id("slot-generation")
        assert operation_id.startswith("slot-generation-")
        assert get_operation_id() == operation_id

    def test_logger_has_single_filter(self):
        logger = get_operation_logger("appointment_engine.test")
        get_operation_logger("appointment_engine.test")
        assert sum(isinstance(f, OperationIdFilter) for f in logger.filters) == 1

    def test_handler_formats_operation_id(self):
        set_operation_id("JOB-456")
        handler = operation_handler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        record = logging.LogRecord("any.module", logging.INFO, __file__, 1, "hello", None, None)
        assert handler.filter(record)
        assert "[JOB-456]" in handler.format(record)
