"""
Time Truth Module

Deterministic time handling used by the interpreter:
- TemporalParser (free text -> ParsedEventTime)
- ScheduleSlotFinder (first-fit placement against existing blocks)
- Quiet hours (range extraction and the HH:MM-HH:MM text form)

Invariants:
- Only defaulted dates and times are ever auto-corrected
- A placed block never overlaps an existing block on that day
- Quiet-hour windows always end after they start, within one day
"""

from .quiet_hours import extract_quiet_hours, format_quiet_hours, parse_quiet_hours
from .slot_finder import ScheduleSlotFinder, find_slot
from .temporal_parser import TemporalParser, parse_event_time

__all__ = [
    "TemporalParser",
    "ScheduleSlotFinder",
    "parse_event_time",
    "find_slot",
    "extract_quiet_hours",
    "format_quiet_hours",
    "parse_quiet_hours",
]
