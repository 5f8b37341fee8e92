"""
Quiet hours - time ranges during which a pillar's activities are not scheduled.

Two directions:
- extract_quiet_hours() finds "6-8:30am" style ranges anywhere in free text
- format_quiet_hours() / parse_quiet_hours() handle the canonical
  "HH:MM-HH:MM, HH:MM-HH:MM" text form
"""

import logging
import re

from dayplanner.models import QuietHourDescriptor, TimeWindow
from dayplanner.time_truth.temporal_parser import to_24_hour

logger = logging.getLogger(__name__)

# H(:MM)?(am|pm)? - H(:MM)?(am|pm)?, not glued to dates like 2025-09-23
RANGE_PATTERN = re.compile(
    r"(?<![\d:/\-])(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s*[-–]\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?(?![\d/\-])",
    re.IGNORECASE,
)

CANONICAL_TOKEN = re.compile(r"^(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})$")


def extract_quiet_hours(text: str) -> list[TimeWindow]:
    """
    Every time range in text, normalized to 24-hour windows.

    Ranges that do not form a same-day window (end not after start,
    impossible hours) are dropped.
    """
    windows: list[TimeWindow] = []
    for match in RANGE_PATTERN.finditer(text or ""):
        start_meridiem = match.group(3).lower() if match.group(3) else None
        end_meridiem = match.group(6).lower() if match.group(6) else None
        start = to_24_hour(int(match.group(1)), int(match.group(2) or 0), start_meridiem)
        end = to_24_hour(int(match.group(4)), int(match.group(5) or 0), end_meridiem)
        if start is None or end is None:
            logger.debug(f"Skipping range with impossible clock values: {match.group(0)!r}")
            continue
        try:
            window = TimeWindow(start.hour, start.minute, end.hour, end.minute)
        except ValueError:
            logger.debug(f"Skipping range that does not end after it starts: {match.group(0)!r}")
            continue
        if window not in windows:
            windows.append(window)
    return windows


def format_quiet_hours(windows: list[TimeWindow]) -> str:
    """Canonical text form, e.g. "06:00-08:30, 12:00-13:00"."""
    return ", ".join(window.format() for window in windows)


def parse_quiet_hours(text: str) -> list[TimeWindow]:
    """
    Parse the canonical comma/newline-separated form.

    Raises ValueError on the first token that is not a valid HH:MM-HH:MM window.
    """
    windows: list[TimeWindow] = []
    for token in re.split(r"[,\n]", text or ""):
        token = token.strip()
        if not token:
            continue
        match = CANONICAL_TOKEN.match(token)
        if not match:
            raise ValueError(f"not an HH:MM-HH:MM range: {token!r}")
        windows.append(TimeWindow(*(int(part) for part in match.groups())))
    return windows


def to_descriptors(windows: list[TimeWindow]) -> list[QuietHourDescriptor]:
    return [QuietHourDescriptor.from_window(window) for window in windows]
