"""
Tests for quiet-hour extraction and the HH:MM-HH:MM text form.
"""

import pytest

from dayplanner.models import QuietHourDescriptor, TimeWindow
from dayplanner.time_truth.quiet_hours import (
    extract_quiet_hours,
    format_quiet_hours,
    parse_quiet_hours,
    to_descriptors,
)


class TestExtractQuietHours:
    def test_mixed_forms(self):
        assert extract_quiet_hours("quiet hours 6-8:30am") == [TimeWindow(6, 0, 8, 30)]

    def test_pm_range(self):
        assert extract_quiet_hours("no calls 10pm-11:30pm") == [TimeWindow(22, 0, 23, 30)]

    def test_multiple_ranges(self):
        windows = extract_quiet_hours("quiet 6-8am and 12:00-13:00")
        assert windows == [TimeWindow(6, 0, 8, 0), TimeWindow(12, 0, 13, 0)]

    def test_en_dash(self):
        assert extract_quiet_hours("8:00 – 9:00") == [TimeWindow(8, 0, 9, 0)]

    def test_non_increasing_range_dropped(self):
        assert extract_quiet_hours("work 9-5") == []

    def test_impossible_hours_dropped(self):
        assert extract_quiet_hours("25-26") == []

    def test_iso_date_is_not_a_range(self):
        assert extract_quiet_hours("on 2025-09-23") == []

    def test_duplicates_collapse(self):
        assert extract_quiet_hours("6-7am, again 6-7am") == [TimeWindow(6, 0, 7, 0)]

    def test_no_text(self):
        assert extract_quiet_hours("") == []


class TestCanonicalForm:
    def test_format(self):
        windows = [TimeWindow(6, 0, 8, 30), TimeWindow(12, 0, 13, 0)]
        assert format_quiet_hours(windows) == "06:00-08:30, 12:00-13:00"

    def test_parse_commas_and_newlines(self):
        windows = parse_quiet_hours("06:00-08:30, 12:00-13:00\n14:00-15:00")
        assert windows == [TimeWindow(6, 0, 8, 30), TimeWindow(12, 0, 13, 0), TimeWindow(14, 0, 15, 0)]

    def test_parse_empty(self):
        assert parse_quiet_hours("") == []

    @pytest.mark.parametrize("text", ["6-8", "10:00-09:00", "24:00-25:00", "08:00"])
    def test_parse_rejects_invalid_tokens(self, text):
        with pytest.raises(ValueError):
            parse_quiet_hours(text)

    def test_round_trip(self):
        text = "05:30-06:15, 21:00-23:59"
        assert format_quiet_hours(parse_quiet_hours(text)) == text


class TestWindowValues:
    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            TimeWindow(9, 0, 9, 0)

    def test_minute_range(self):
        with pytest.raises(ValueError):
            TimeWindow(9, 60, 10, 0)

    def test_descriptor_requires_padded_clock(self):
        with pytest.raises(ValueError):
            QuietHourDescriptor(start="9:00", end="10:00")

    def test_descriptor_rejects_inverted_window(self):
        with pytest.raises(ValueError):
            QuietHourDescriptor(start="08:00", end="07:00")

    def test_to_descriptors(self):
        assert to_descriptors([TimeWindow(6, 0, 8, 30)]) == [QuietHourDescriptor(start="06:00", end="08:30")]
