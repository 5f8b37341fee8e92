"""
Temporal Parser - deterministic extraction of dates and times from free text.

Signals are tried in a fixed order so the same text always resolves the
same way:
1. Relative deltas ("in 90 minutes", "in an hour")
2. Named days ("today", "tomorrow", "yesterday", "next week")
3. Weekday names (next occurrence after the reference date)
4. Month-day dates ("March 5", "3/5", "3/5/2026")
5. Clock times ("at 6", "at 6:30pm", "3pm", "15:30")
6. Day-parts ("morning", "afternoon", "evening", "tonight")

Steps 2-4 produce the date and steps 5-6 the time; the first match within
each group wins. A relative delta short-circuits both.
"""

import logging
import re
from collections.abc import Callable
from datetime import date, datetime, time, timedelta

from dayplanner import config
from dayplanner.models import ParsedEventTime

logger = logging.getLogger(__name__)


RELATIVE_DELTA_PATTERNS: list[tuple[str, Callable[[re.Match], timedelta]]] = [
    (r"\bin\s+half\s+an?\s+hour\b", lambda m: timedelta(minutes=30)),
    (r"\bin\s+an?\s+hour\b", lambda m: timedelta(hours=1)),
    (r"\bin\s+(\d+)\s*(?:hours?|hrs?)\b", lambda m: timedelta(hours=int(m.group(1)))),
    (r"\bin\s+(\d+)\s*(?:minutes?|mins?)\b", lambda m: timedelta(minutes=int(m.group(1)))),
]

NAMED_DAY_PATTERNS: list[tuple[str, int]] = [
    (r"\bnext\s+week\b", 7),
    (r"\btomorrow\b", 1),
    (r"\byesterday\b", -1),
    (r"\btoday\b", 0),
]

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAY_PATTERN = r"\b(" + "|".join(WEEKDAYS) + r")\b"

MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
MONTH_DAY_PATTERN = (
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?\s+(\d{1,2})(?:st|nd|rd|th)?"
    r"(?:,?\s+(\d{4}))?\b"
)
NUMERIC_DATE_PATTERN = r"(?<![\d/:])(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?(?![\d/])"

CLOCK_PATTERNS = [
    # "at 6", "at 6:30pm", "@ 7am"
    r"(?:\bat|@)\s*(\d{1,2})(?::(\d{2}))?\s*(am|pm)?(?![\d/:])",
    # "3pm", "10:15 am"
    r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b",
    # "15:30"
    r"(?<![\d:])(\d{1,2}):(\d{2})()(?![\d:])",
]

DAY_PART_PATTERNS: list[tuple[str, time]] = [
    (r"\b(?:tonight|evening)\b", time(19, 0)),
    (r"\bafternoon\b", time(15, 0)),
    (r"\bmorning\b", time(9, 0)),
]


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" configuration value."""
    return datetime.strptime(value.strip(), "%H:%M").time()


def to_24_hour(hour: int, minute: int, meridiem: str | None) -> time | None:
    """
    Apply an am/pm indicator. Without one the hour is taken literally.

    Returns None for values that are not a clock time.
    """
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem == "pm" and hour < 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return time(hour, minute)


def _next_weekday(start: date, weekday: int) -> date:
    """Next date strictly after start that falls on weekday (0 = Monday)."""
    days_ahead = weekday - start.weekday()
    if days_ahead <= 0:
        days_ahead += 7
    return start + timedelta(days=days_ahead)


def _match_relative_delta(text: str) -> timedelta | None:
    for pattern, to_delta in RELATIVE_DELTA_PATTERNS:
        match = re.search(pattern, text)
        if match:
            return to_delta(match)
    return None


def _match_named_day(text: str, reference: date) -> date | None:
    for pattern, offset in NAMED_DAY_PATTERNS:
        if re.search(pattern, text):
            return reference + timedelta(days=offset)
    return None


def _match_weekday(text: str, reference: date) -> date | None:
    match = re.search(WEEKDAY_PATTERN, text)
    if not match:
        return None
    return _next_weekday(reference, WEEKDAYS.index(match.group(1)))


def _build_date(year: int | None, month: int, day: int, today: date) -> date | None:
    explicit_year = year is not None
    if year is not None and year < 100:
        year += 2000
    try:
        result = date(year if explicit_year else today.year, month, day)
    except ValueError:
        logger.debug(f"Ignoring impossible date {month}/{day}/{year}")
        return None

    if not explicit_year and result < today:
        try:
            result = result.replace(year=result.year + 1)
        except ValueError:
            # Feb 29 rolled into a non-leap year
            return None
    return result


def _match_month_day(text: str, today: date) -> date | None:
    match = re.search(MONTH_DAY_PATTERN, text)
    if match:
        month = MONTHS.index(match.group(1)[:3]) + 1
        year = int(match.group(3)) if match.group(3) else None
        return _build_date(year, month, int(match.group(2)), today)

    match = re.search(NUMERIC_DATE_PATTERN, text)
    if match:
        year = int(match.group(3)) if match.group(3) else None
        return _build_date(year, int(match.group(1)), int(match.group(2)), today)

    return None


def _match_clock(text: str) -> time | None:
    for pattern in CLOCK_PATTERNS:
        for match in re.finditer(pattern, text):
            minute = int(match.group(2)) if match.group(2) else 0
            parsed = to_24_hour(int(match.group(1)), minute, match.group(3) or None)
            if parsed is not None:
                return parsed
    return None


def _match_day_part(text: str) -> time | None:
    for pattern, value in DAY_PART_PATTERNS:
        if re.search(pattern, text):
            return value
    return None


class TemporalParser:
    """
    Turns vague temporal language into a concrete datetime.

    The reference is the calendar date in view at the wall-clock time of
    the utterance. `now` defaults to the reference and anchors relative
    deltas and past-time rollovers.
    """

    def __init__(self, preferred_start: time | None = None):
        self.preferred_start = preferred_start or parse_clock(config.PREFERRED_START_TIME)

    def parse(
        self,
        text: str,
        reference: datetime,
        now: datetime | None = None,
    ) -> ParsedEventTime | None:
        if not text or not text.strip():
            return None

        lowered = text.lower()
        now = now or reference

        delta = _match_relative_delta(lowered)
        if delta is not None:
            return ParsedEventTime(date=now + delta, has_explicit_date=True, has_explicit_time=True)

        day = (
            _match_named_day(lowered, reference.date())
            or _match_weekday(lowered, reference.date())
            or _match_month_day(lowered, now.date())
        )

        clock = _match_clock(lowered)
        explicit_time = clock is not None
        if clock is None:
            clock = _match_day_part(lowered)

        if day is None and clock is None:
            return None

        if day is not None:
            resolved = datetime.combine(day, clock or self.preferred_start, tzinfo=reference.tzinfo)
            return ParsedEventTime(date=resolved, has_explicit_date=True, has_explicit_time=explicit_time)

        resolved = datetime.combine(reference.date(), clock, tzinfo=reference.tzinfo)
        if resolved < now:
            resolved += timedelta(days=1)
        return ParsedEventTime(date=resolved, has_explicit_date=False, has_explicit_time=explicit_time)


def parse_event_time(text: str, reference: datetime, now: datetime | None = None) -> ParsedEventTime | None:
    """Parse with the configured preferred start time."""
    return TemporalParser().parse(text, reference, now)
