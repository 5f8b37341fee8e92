"""
Field heuristics shared by the offline parser, the response decoder and
the command applier.

- List splitting with order-preserving, case-insensitive de-duplication
- Trigger-phrase + terminator scanning
- Importance ladder
- Frequency normalization
- Emoji inference for goals, pillars and chains
- Pillar field sanitization (length and count limits)
"""

import re
from dataclasses import dataclass, fields, replace

from dayplanner.models import CreatePillar, PillarUpdates

DEFAULT_TERMINATORS = [" to ", " for ", " on ", ".", "\n", " and quiet", " quiet"]


def dedupe(items: list[str]) -> list[str]:
    """Drop case-insensitive duplicates, keeping the first spelling seen."""
    seen: set[str] = set()
    result = []
    for item in items:
        key = item.casefold()
        if key not in seen:
            seen.add(key)
            result.append(item)
    return result


def split_list(text: str) -> list[str]:
    """
    Split a free-text list into items.

    "focus, craft and rest" -> ["focus", "craft", "rest"]
    """
    if not text:
        return []
    normalized = re.sub(r"\s+and\s+", ",", text, flags=re.IGNORECASE)
    parts = (part.strip() for part in re.split(r"[,;\n]", normalized))
    return dedupe([part for part in parts if part])


def extract_after_trigger(
    text: str,
    triggers: list[str],
    terminators: list[str] | None = None,
) -> str | None:
    """
    Text following the earliest trigger phrase, up to the nearest terminator.

    At equal positions the longer trigger wins, so "add values" beats
    "add value". Returns None when no trigger is present or nothing follows it.
    """
    lowered = text.lower()
    best: tuple[int, int] | None = None
    for trigger in triggers:
        match = re.search(r"\b" + re.escape(trigger) + r"\b", lowered)
        if not match:
            continue
        key = (match.start(), -len(trigger))
        if best is None or key < best:
            best = key
    if best is None:
        return None

    start = best[0] - best[1]
    end = len(text)
    for terminator in terminators or DEFAULT_TERMINATORS:
        pos = lowered.find(terminator, start)
        if pos != -1 and pos < end:
            end = pos

    value = text[start:end].strip(" \t:,-")
    return value or None


# =============================================================================
# IMPORTANCE
# =============================================================================

EXPLICIT_IMPORTANCE_PATTERN = r"\b(?:priority|importance)\s*(?:of|to|is|:|=)?\s*([1-5])\b"

IMPORTANCE_LADDER = [
    (r"\b(?:critical|urgent)\b", 5),
    (r"\b(?:high|top)\s+(?:priority|importance)\b", 4),
    (r"\bmedium\s+(?:priority|importance)\b", 3),
    (r"\blow\s+(?:priority|importance)\b", 2),
    (r"\bdeprioriti[sz]e\b", 1),
]


def infer_importance(text: str) -> int | None:
    """1-5 importance from an explicit "priority N" or the keyword ladder."""
    lowered = text.lower()
    explicit = re.search(EXPLICIT_IMPORTANCE_PATTERN, lowered)
    if explicit:
        return int(explicit.group(1))
    for pattern, importance in IMPORTANCE_LADDER:
        if re.search(pattern, lowered):
            return importance
    return None


def clamp_importance(value: int | None, default: int = 3) -> int:
    if value is None:
        return default
    return max(1, min(5, int(value)))


# =============================================================================
# FREQUENCY
# =============================================================================

_COUNT_WORDS = {"once": 1, "twice": 2, "thrice": 3}

FREQUENCY_PATTERNS = [
    (r"\b(\d+|once|twice|thrice)\s*(?:x|times?)?\s*(?:a|per|each|/)\s*week\b", "{n}x per week"),
    (r"\b(\d+|once|twice|thrice)\s*(?:x|times?)?\s*(?:a|per|each|/)\s*month\b", "{n}x per month"),
    (r"\b(?:daily|every\s+day|each\s+day)\b", "daily"),
    (r"\b(?:weekly|every\s+week)\b", "weekly"),
    (r"\b(?:monthly|every\s+month)\b", "monthly"),
    (r"\b(?:as[\s_]needed|when\s+needed)\b", "as_needed"),
]


def infer_frequency(text: str) -> str | None:
    """
    Canonical frequency named in text.

    Canonical forms: daily, weekly, monthly, as_needed, "Nx per week",
    "Nx per month". "once a week" collapses to weekly.
    """
    if not text:
        return None
    lowered = text.lower()
    for pattern, canonical in FREQUENCY_PATTERNS:
        match = re.search(pattern, lowered)
        if not match:
            continue
        if "{n}" not in canonical:
            return canonical
        raw = match.group(1)
        count = _COUNT_WORDS.get(raw) or int(raw)
        if count <= 0:
            continue
        if count == 1:
            return "weekly" if "week" in canonical else "monthly"
        return canonical.format(n=count)
    return None


# =============================================================================
# EMOJI
# =============================================================================

GOAL_EMOJI = [
    (("health", "fitness"), "💪"),
    (("learn", "study"), "📚"),
    (("work", "career"), "💼"),
    (("project", "build"), "🚀"),
    (("money", "financ"), "💰"),
    (("travel",), "✈️"),
    (("relationship", "social"), "👥"),
]

PILLAR_EMOJI = [
    (("exercise", "fitness"), "💪"),
    (("work", "deep"), "💼"),
    (("rest", "sleep"), "🌙"),
    (("eat", "meal"), "🍽️"),
    (("learn", "read"), "📚"),
    (("meditat", "mindful"), "🧘"),
]

CHAIN_EMOJI = [
    (("morning",), "🌅"),
    (("evening",), "🌙"),
    (("exercise", "workout"), "💪"),
    (("work", "focus"), "🎯"),
    (("creative", "art"), "🎨"),
]

DEFAULT_GOAL_EMOJI = "🎯"
DEFAULT_PILLAR_EMOJI = "🏛️"
DEFAULT_CHAIN_EMOJI = "🔗"


def select_emoji(text: str, ladder: list[tuple[tuple[str, ...], str]], default: str) -> str:
    lowered = text.lower()
    for keywords, emoji in ladder:
        if any(re.search(r"\b" + keyword, lowered) for keyword in keywords):
            return emoji
    return default


def goal_emoji(text: str) -> str:
    return select_emoji(text, GOAL_EMOJI, DEFAULT_GOAL_EMOJI)


def pillar_emoji(text: str) -> str:
    return select_emoji(text, PILLAR_EMOJI, DEFAULT_PILLAR_EMOJI)


def chain_emoji(text: str) -> str:
    return select_emoji(text, CHAIN_EMOJI, DEFAULT_CHAIN_EMOJI)


# =============================================================================
# PILLAR SANITIZATION
# =============================================================================


@dataclass(frozen=True)
class PillarLimits:
    name_chars: int = 24
    description_chars: int = 200
    wisdom_chars: int = 100
    item_chars: int = 50
    max_values: int = 5
    max_habits: int = 5
    max_constraints: int = 4
    max_quiet_hours: int = 3

    @classmethod
    def from_config(cls, values: dict | None) -> "PillarLimits":
        known = {f.name for f in fields(cls)}
        return cls(**{k: int(v) for k, v in (values or {}).items() if k in known})


def clip(text: str | None, limit: int) -> str | None:
    """Trim and cut to limit characters. Empty becomes None."""
    if text is None:
        return None
    trimmed = text.strip()
    if len(trimmed) > limit:
        trimmed = trimmed[:limit].rstrip()
    return trimmed or None


def sanitize_items(items: list[str], max_items: int, item_chars: int) -> list[str]:
    clipped = (clip(item, item_chars) for item in items)
    return dedupe([item for item in clipped if item])[:max_items]


def sanitize_create_pillar(command: CreatePillar, limits: PillarLimits = PillarLimits()) -> CreatePillar:
    return replace(
        command,
        name=clip(command.name, limits.name_chars) or "New Pillar",
        description=clip(command.description, limits.description_chars),
        wisdom=clip(command.wisdom, limits.wisdom_chars),
        values=sanitize_items(command.values, limits.max_values, limits.item_chars),
        habits=sanitize_items(command.habits, limits.max_habits, limits.item_chars),
        constraints=sanitize_items(command.constraints, limits.max_constraints, limits.item_chars),
        quiet_hours=list(dict.fromkeys(command.quiet_hours))[: limits.max_quiet_hours],
    )


def sanitize_pillar_updates(updates: PillarUpdates, limits: PillarLimits = PillarLimits()) -> PillarUpdates:
    return replace(
        updates,
        description=clip(updates.description, limits.description_chars),
        wisdom=clip(updates.wisdom, limits.wisdom_chars),
        values=sanitize_items(updates.values, limits.max_values, limits.item_chars),
        habits=sanitize_items(updates.habits, limits.max_habits, limits.item_chars),
        constraints=sanitize_items(updates.constraints, limits.max_constraints, limits.item_chars),
        quiet_hours=list(dict.fromkeys(updates.quiet_hours))[: limits.max_quiet_hours],
    )
