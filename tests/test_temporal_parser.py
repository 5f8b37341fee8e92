"""
Tests for TemporalParser - free text to ParsedEventTime.
"""

from datetime import datetime, time, timedelta, timezone

import pytest

from dayplanner.time_truth.temporal_parser import (
    TemporalParser,
    parse_clock,
    parse_event_time,
    to_24_hour,
)

REF = datetime(2025, 9, 23, 10, 0)  # Tuesday


@pytest.fixture
def parser():
    return TemporalParser(preferred_start=time(8, 0))


class TestRelativeDeltas:
    def test_minutes(self, parser):
        result = parser.parse("in 90 minutes", REF)
        assert result.date == REF + timedelta(minutes=90)
        assert result.has_explicit_date
        assert result.has_explicit_time

    def test_hours_alias(self, parser):
        assert parser.parse("ping me in 2 hrs", REF).date == REF + timedelta(hours=2)

    def test_mins_alias(self, parser):
        assert parser.parse("in 15 mins", REF).date == REF + timedelta(minutes=15)

    def test_an_hour(self, parser):
        assert parser.parse("call mom in an hour", REF).date == REF + timedelta(hours=1)

    def test_half_an_hour(self, parser):
        assert parser.parse("in half an hour", REF).date == REF + timedelta(minutes=30)

    def test_delta_anchors_on_now(self, parser):
        now = datetime(2025, 9, 23, 14, 0)
        assert parser.parse("in 10 minutes", REF, now=now).date == now + timedelta(minutes=10)


class TestDates:
    def test_tomorrow_at_3pm(self, parser):
        result = parser.parse("tomorrow at 3pm", REF)
        assert result.date == datetime(2025, 9, 24, 15, 0)
        assert result.has_explicit_date
        assert result.has_explicit_time

    def test_date_only_uses_preferred_start(self, parser):
        result = parser.parse("dentist tomorrow", REF)
        assert result.date == datetime(2025, 9, 24, 8, 0)
        assert result.has_explicit_date
        assert not result.has_explicit_time

    def test_next_week(self, parser):
        assert parser.parse("review next week", REF).date == datetime(2025, 9, 30, 8, 0)

    def test_yesterday(self, parser):
        assert parser.parse("yesterday", REF).date.date() == datetime(2025, 9, 22).date()

    def test_weekday_is_next_occurrence(self, parser):
        assert parser.parse("friday", REF).date.date() == datetime(2025, 9, 26).date()

    def test_same_weekday_is_a_week_out(self, parser):
        assert parser.parse("on tuesday", REF).date.date() == datetime(2025, 9, 30).date()

    def test_named_day_beats_weekday(self, parser):
        assert parser.parse("tomorrow, not friday", REF).date.date() == datetime(2025, 9, 24).date()

    def test_past_month_day_rolls_forward(self, parser):
        assert parser.parse("March 5", REF).date == datetime(2026, 3, 5, 8, 0)

    def test_future_month_day_stays(self, parser):
        assert parser.parse("party on December 24th", REF).date.date() == datetime(2025, 12, 24).date()

    def test_numeric_date_with_year(self, parser):
        assert parser.parse("3/5/2026", REF).date.date() == datetime(2026, 3, 5).date()

    def test_two_digit_year(self, parser):
        assert parser.parse("10/1/26", REF).date.date() == datetime(2026, 10, 1).date()

    def test_invalid_calendar_date_ignored(self, parser):
        assert parser.parse("2/30", REF) is None


class TestTimes:
    def test_literal_hour_without_meridiem(self, parser):
        result = parser.parse("run at 6", REF)
        # 06:00 has passed at 10:00, so it rolls to tomorrow
        assert result.date == datetime(2025, 9, 24, 6, 0)
        assert not result.has_explicit_date
        assert result.has_explicit_time

    def test_pm_adds_twelve(self, parser):
        assert parser.parse("at 6:30pm", REF).date == datetime(2025, 9, 23, 18, 30)

    def test_at_sign(self, parser):
        assert parser.parse("gym @ 7pm", REF).date == datetime(2025, 9, 23, 19, 0)

    def test_twelve_am_is_midnight(self, parser):
        assert parser.parse("tomorrow at 12am", REF).date == datetime(2025, 9, 24, 0, 0)

    def test_bare_meridiem(self, parser):
        assert parser.parse("dinner 7pm", REF).date == datetime(2025, 9, 23, 19, 0)

    def test_24_hour_clock(self, parser):
        assert parser.parse("standup 15:30", REF).date == datetime(2025, 9, 23, 15, 30)

    def test_day_part_is_not_explicit(self, parser):
        result = parser.parse("tonight", REF)
        assert result.date == datetime(2025, 9, 23, 19, 0)
        assert not result.has_explicit_time

    def test_day_part_with_date(self, parser):
        result = parser.parse("tomorrow morning", REF)
        assert result.date == datetime(2025, 9, 24, 9, 0)
        assert result.has_explicit_date
        assert not result.has_explicit_time

    def test_clock_beats_day_part(self, parser):
        result = parser.parse("monday evening at 8:30pm", REF)
        assert result.date == datetime(2025, 9, 29, 20, 30)
        assert result.has_explicit_time


class TestNoSignal:
    def test_plain_text(self, parser):
        assert parser.parse("buy groceries", REF) is None

    def test_empty(self, parser):
        assert parser.parse("", REF) is None
        assert parser.parse("   ", REF) is None


class TestHelpers:
    def test_to_24_hour(self):
        assert to_24_hour(12, 0, "pm") == time(12, 0)
        assert to_24_hour(12, 0, "am") == time(0, 0)
        assert to_24_hour(3, 15, "pm") == time(15, 15)
        assert to_24_hour(13, 0, "pm") is None
        assert to_24_hour(25, 0, None) is None

    def test_parse_clock(self):
        assert parse_clock("07:45") == time(7, 45)

    def test_timezone_preserved(self, parser):
        aware = REF.replace(tzinfo=timezone.utc)
        assert parser.parse("tomorrow at 3pm", aware).date.tzinfo == timezone.utc

    def test_module_shortcut_uses_configured_start(self):
        assert parse_event_time("tomorrow", REF).date == datetime(2025, 9, 24, 8, 0)
