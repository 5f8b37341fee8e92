"""
Tests for ScheduleSlotFinder - first-fit placement.
"""

from datetime import datetime, timedelta

import pytest

from dayplanner.store import TimeBlock
from dayplanner.time_truth.slot_finder import ScheduleSlotFinder, find_slot

DAY = datetime(2025, 9, 23)
EARLY = datetime(2025, 9, 23, 6, 0)


def at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def block(start_hour: float, minutes: int) -> TimeBlock:
    start = DAY + timedelta(hours=start_hour)
    return TimeBlock(title=f"block {start_hour}", start=start, duration_seconds=minutes * 60)


@pytest.fixture
def finder():
    return ScheduleSlotFinder()


class TestFindSlot:
    def test_empty_day_keeps_proposal(self, finder):
        assert finder.find_slot(at(9), 3600, [], now=EARLY) == at(9)

    def test_moves_past_overlapping_block(self, finder):
        assert finder.find_slot(at(9), 3600, [block(9.5, 60)], now=EARLY) == at(10, 30)

    def test_block_ending_at_candidate_is_skipped(self, finder):
        assert finder.find_slot(at(9), 3600, [block(8, 60)], now=EARLY) == at(9)

    def test_fits_before_later_block(self, finder):
        assert finder.find_slot(at(9), 3600, [block(11, 60)], now=EARLY) == at(9)

    def test_walks_back_to_back_blocks(self, finder):
        blocks = [block(9, 60), block(10, 60), block(11.5, 30)]
        assert finder.find_slot(at(9), 3600, blocks, now=EARLY) == at(12)

    def test_takes_exact_gap(self, finder):
        blocks = [block(9, 60), block(10, 60), block(11.5, 30)]
        assert finder.find_slot(at(9), 1800, blocks, now=EARLY) == at(11)

    def test_unsorted_input(self, finder):
        blocks = [block(11.5, 30), block(9, 60), block(10, 60)]
        assert finder.find_slot(at(9), 1800, blocks, now=EARLY) == at(11)

    def test_past_proposal_today_clamps_to_now(self, finder):
        now = at(10, 15)
        assert finder.find_slot(at(9), 1800, [], now=now) == now

    def test_past_proposal_clamp_then_sweep(self, finder):
        now = at(10, 15)
        assert finder.find_slot(at(9), 1800, [block(10, 60)], now=now) == at(11)

    def test_other_day_is_not_clamped(self, finder):
        tomorrow_nine = at(9) + timedelta(days=1)
        assert finder.find_slot(tomorrow_nine, 1800, [], now=at(10, 15)) == tomorrow_nine

    def test_timedelta_and_seconds_agree(self, finder):
        blocks = [block(9.5, 60)]
        assert finder.find_slot(at(9), timedelta(minutes=45), blocks, now=EARLY) == finder.find_slot(
            at(9), 2700, blocks, now=EARLY
        )

    def test_zero_duration_between_adjacent_blocks(self, finder):
        assert finder.find_slot(at(10), 0, [block(9, 60), block(10, 60)], now=EARLY) == at(10)

    def test_negative_duration_rejected(self, finder):
        with pytest.raises(ValueError):
            finder.find_slot(at(9), -60, [], now=EARLY)

    def test_module_shortcut(self):
        assert find_slot(at(9), 3600, [block(9, 30)], now=EARLY) == at(9, 30)
