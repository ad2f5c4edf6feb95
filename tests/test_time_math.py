"""Tests for wall-clock arithmetic and earnings rounding."""
import pytest

from services.earnings import earnings, round_currency, round_hours
from services.time_math import (
    end_time_from_duration,
    format_time,
    parse_time,
    span_minutes,
    working_hours,
)


class TestParseTime:
    def test_valid(self):
        assert parse_time("09:05") == (9, 5)
        assert parse_time("23:59") == (23, 59)

    @pytest.mark.parametrize("value", ["", None, "24:00", "12:60", "noon", "9.30"])
    def test_invalid(self, value):
        assert parse_time(value) is None

    def test_format_wraps_past_midnight(self):
        assert format_time(25 * 60) == "01:00"
        assert format_time(0) == "00:00"


class TestSpan:
    def test_same_day(self):
        assert span_minutes("09:00", "17:30") == 510

    def test_overnight_shift(self):
        assert span_minutes("22:00", "06:00") == 480
        assert working_hours("22:00", "06:00", 0) == 8.0

    def test_equal_times_is_zero(self):
        assert span_minutes("09:00", "09:00") == 0

    def test_malformed_is_zero(self):
        assert span_minutes("bad", "10:00") == 0
        assert working_hours("09:00", None) == 0.0


class TestWorkingHours:
    def test_break_subtracted(self):
        assert working_hours("09:00", "17:00", 60) == 7.0

    def test_oversized_break_floors_to_zero(self):
        assert working_hours("09:00", "10:00", 120) == 0.0

    def test_end_time_round_trip(self):
        end = end_time_from_duration("09:00", 8, 60)
        assert end == "18:00"
        assert working_hours("09:00", end, 60) == 8.0

    def test_end_time_crossing_midnight(self):
        end = end_time_from_duration("20:00", 6, 30)
        assert end == "02:30"
        assert working_hours("20:00", end, 30) == 6.0


class TestEarnings:
    def test_hours_times_rate(self):
        assert earnings(8, 20) == 160.0

    def test_non_positive_inputs_yield_zero(self):
        assert earnings(-1, 20) == 0.0
        assert earnings(5, 0) == 0.0
        assert earnings(0, 50) == 0.0

    def test_round_half_up(self):
        assert round_currency(2.675) == 2.68
        assert round_currency(0.125) == 0.13
        assert round_hours(7.333333) == 7.33
