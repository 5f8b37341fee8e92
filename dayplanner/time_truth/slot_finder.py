"""
Schedule Slot Finder - earliest non-overlapping start for a new block.

Single left-to-right sweep over the day's blocks, first fit:
- blocks that end at or before the candidate are skipped
- if the candidate fits before the next block, it is taken
- otherwise the candidate moves to that block's end

No backtracking and no gap filling beyond first fit, so the result is
never earlier than the proposal (or "now" for a proposal already past today).
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Protocol

logger = logging.getLogger(__name__)


class Interval(Protocol):
    start: datetime

    @property
    def end(self) -> datetime: ...


def _as_timedelta(duration: timedelta | int | float) -> timedelta:
    if isinstance(duration, timedelta):
        return duration
    return timedelta(seconds=duration)


class ScheduleSlotFinder:
    """First-fit placement against existing calendar blocks."""

    def find_slot(
        self,
        proposed_start: datetime,
        duration: timedelta | int | float,
        existing_blocks: Iterable[Interval],
        now: datetime | None = None,
    ) -> datetime:
        """
        Return the earliest start at or after proposed_start where a block of
        the given duration (timedelta or seconds) overlaps none of existing_blocks.
        """
        length = _as_timedelta(duration)
        if length < timedelta(0):
            raise ValueError(f"duration must not be negative: {length}")

        now = now or datetime.now(proposed_start.tzinfo)
        candidate = proposed_start
        if proposed_start.date() == now.date() and proposed_start < now:
            candidate = now

        for block in sorted(existing_blocks, key=lambda b: b.start):
            if block.end <= candidate:
                continue
            if candidate + length <= block.start:
                break
            candidate = max(block.end, candidate)

        if candidate != proposed_start:
            logger.debug(f"Moved proposed start {proposed_start.isoformat()} to {candidate.isoformat()}")
        return candidate


def find_slot(
    proposed_start: datetime,
    duration: timedelta | int | float,
    existing_blocks: Iterable[Interval],
    now: datetime | None = None,
) -> datetime:
    """Module-level shortcut for ScheduleSlotFinder().find_slot()."""
    return ScheduleSlotFinder().find_slot(proposed_start, duration, existing_blocks, now)
