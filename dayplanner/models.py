"""
Data model shared by the parsers, the confidence gate and the interpreter.

Utterances, commands and responses are transient: they live for the
duration of one interpretation. Durations are always seconds.
"""

import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import ClassVar

from dayplanner.observability.context import generate_utterance_id

_CLOCK_RE = re.compile(r"^(\d{2}):(\d{2})$")


class ActionType(StrEnum):
    CREATE_EVENT = "create_event"
    CREATE_GOAL = "create_goal"
    CREATE_PILLAR = "create_pillar"
    CREATE_CHAIN = "create_chain"
    SUGGEST_ACTIVITIES = "suggest_activities"
    GENERAL_CHAT = "general_chat"
    EDIT_MIND = "edit_mind"


class NodeType(StrEnum):
    SUBGOAL = "subgoal"
    TASK = "task"
    NOTE = "note"
    RESOURCE = "resource"
    METRIC = "metric"


class Energy(StrEnum):
    SUNRISE = "sunrise"
    DAYLIGHT = "daylight"
    MOONLIGHT = "moonlight"


class FlowPattern(StrEnum):
    WATERFALL = "waterfall"
    SPIRAL = "spiral"
    WAVE = "wave"
    RIPPLE = "ripple"


# =============================================================================
# TIME VALUES
# =============================================================================


@dataclass(frozen=True)
class TimeWindow:
    """A same-day window such as quiet hours. End is strictly after start."""

    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int

    def __post_init__(self):
        for hour in (self.start_hour, self.end_hour):
            if not 0 <= hour <= 23:
                raise ValueError(f"hour out of range: {hour}")
        for minute in (self.start_minute, self.end_minute):
            if not 0 <= minute <= 59:
                raise ValueError(f"minute out of range: {minute}")
        if self.end_minutes <= self.start_minutes:
            raise ValueError(f"window must end after it starts: {self.format()}")

    @property
    def start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_minute

    @property
    def end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_minute

    def format(self) -> str:
        return (
            f"{self.start_hour:02d}:{self.start_minute:02d}-"
            f"{self.end_hour:02d}:{self.end_minute:02d}"
        )


@dataclass
class ParsedEventTime:
    """
    A resolved point in time plus which halves the user actually said.

    Only defaulted halves may be auto-corrected downstream.
    """

    date: datetime
    has_explicit_date: bool
    has_explicit_time: bool

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "has_explicit_date": self.has_explicit_date,
            "has_explicit_time": self.has_explicit_time,
        }


# =============================================================================
# UTTERANCE
# =============================================================================


@dataclass
class Utterance:
    text: str
    timestamp: datetime
    reference_date: date
    id: str = field(default_factory=generate_utterance_id)
    recent_success: bool = False
    insights: list[str] = field(default_factory=list)

    @property
    def reference(self) -> datetime:
        """The reference date at the wall-clock time the utterance was sent."""
        if self.reference_date == self.timestamp.date():
            return self.timestamp
        return datetime.combine(self.reference_date, self.timestamp.timetz())


# =============================================================================
# COMMAND PAYLOADS
# =============================================================================


@dataclass
class GoalReference:
    id: str | None = None
    title: str | None = None


@dataclass
class PillarReference:
    id: str | None = None
    title: str | None = None


@dataclass
class NodeDescriptor:
    title: str
    type: NodeType = NodeType.NOTE
    detail: str | None = None
    pinned: bool = False
    weight: float | None = None


@dataclass(frozen=True)
class QuietHourDescriptor:
    start: str
    end: str

    def __post_init__(self):
        self.to_window()

    def to_window(self) -> TimeWindow:
        start = _CLOCK_RE.match(self.start)
        end = _CLOCK_RE.match(self.end)
        if not start or not end:
            raise ValueError(f"quiet hours must be HH:MM, got {self.start!r}-{self.end!r}")
        return TimeWindow(int(start.group(1)), int(start.group(2)), int(end.group(1)), int(end.group(2)))

    @classmethod
    def from_window(cls, window: TimeWindow) -> "QuietHourDescriptor":
        start, end = window.format().split("-")
        return cls(start=start, end=end)


@dataclass
class GoalUpdates:
    title: str | None = None
    description: str | None = None
    emoji: str | None = None
    importance: int | None = None
    focus: str | None = None

    def is_empty(self) -> bool:
        return all(value is None for value in asdict(self).values())


@dataclass
class PillarUpdates:
    description: str | None = None
    emoji: str | None = None
    wisdom: str | None = None
    frequency: str | None = None
    values: list[str] = field(default_factory=list)
    habits: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    quiet_hours: list[QuietHourDescriptor] = field(default_factory=list)

    def changed_fields(self) -> list[str]:
        """Human labels of the fields this update touches, in display order."""
        labels = []
        if self.values:
            labels.append("values")
        if self.habits:
            labels.append("habits")
        if self.constraints:
            labels.append("constraints")
        if self.quiet_hours:
            labels.append("quiet hours")
        if self.description is not None:
            labels.append("description")
        if self.wisdom is not None:
            labels.append("wisdom")
        if self.frequency is not None:
            labels.append("frequency")
        if self.emoji is not None:
            labels.append("emoji")
        return labels

    def is_empty(self) -> bool:
        return not self.changed_fields()


# =============================================================================
# MIND COMMANDS
# =============================================================================


class _Command:
    kind: ClassVar[str]

    def to_dict(self) -> dict:
        return {"type": self.kind, **asdict(self)}


@dataclass
class CreateGoal(_Command):
    kind: ClassVar[str] = "create_goal"

    title: str
    description: str | None = None
    emoji: str | None = None
    importance: int | None = None
    pillars: list[PillarReference] = field(default_factory=list)
    nodes: list[NodeDescriptor] = field(default_factory=list)


@dataclass
class UpdateGoal(_Command):
    kind: ClassVar[str] = "update_goal"

    goal: GoalReference
    updates: GoalUpdates


@dataclass
class CreatePillar(_Command):
    kind: ClassVar[str] = "create_pillar"

    name: str
    description: str | None = None
    emoji: str | None = None
    frequency: str | None = None
    wisdom: str | None = None
    values: list[str] = field(default_factory=list)
    habits: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    quiet_hours: list[QuietHourDescriptor] = field(default_factory=list)


@dataclass
class UpdatePillar(_Command):
    kind: ClassVar[str] = "update_pillar"

    pillar: PillarReference
    updates: PillarUpdates


@dataclass
class AddNode(_Command):
    kind: ClassVar[str] = "add_node"

    goal: GoalReference
    node: NodeDescriptor
    link_to_title: str | None = None
    link_label: str | None = None


@dataclass
class LinkNodes(_Command):
    kind: ClassVar[str] = "link_nodes"

    goal: GoalReference
    from_title: str
    to_title: str
    label: str | None = None


@dataclass
class PinNode(_Command):
    kind: ClassVar[str] = "pin_node"

    goal: GoalReference
    node_title: str
    pinned: bool = True


@dataclass
class Clarification(_Command):
    kind: ClassVar[str] = "clarification"

    question: str


MindCommand = CreateGoal | UpdateGoal | CreatePillar | UpdatePillar | AddNode | LinkNodes | PinNode | Clarification


# =============================================================================
# CREATED ITEMS & SUGGESTIONS
# =============================================================================


@dataclass
class ChainBlock:
    title: str
    duration_seconds: int
    energy: Energy = Energy.DAYLIGHT
    emoji: str = "🌊"


@dataclass
class ChainDraft:
    name: str
    blocks: list[ChainBlock]
    flow_pattern: FlowPattern = FlowPattern.WATERFALL
    emoji: str = "🔗"

    @property
    def total_seconds(self) -> int:
        return sum(block.duration_seconds for block in self.blocks)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EventDraft:
    title: str
    duration_seconds: int
    energy: Energy = Energy.DAYLIGHT
    emoji: str = "📅"
    start: datetime | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start"] = self.start.isoformat() if self.start else None
        return data


CreatedItem = EventDraft | ChainDraft


@dataclass
class Suggestion:
    """
    A staged, reversible proposal. Nothing changes until it is accepted.

    payload carries a creation to apply verbatim on acceptance; without one
    the suggestion is an activity to place on the calendar.
    """

    title: str
    duration_seconds: int
    energy: Energy = Energy.DAYLIGHT
    emoji: str = "📅"
    confidence: float = 0.5
    explanation: str = ""
    id: str = field(default_factory=lambda: f"sug-{uuid.uuid4().hex[:12]}")
    suggested_start: datetime | None = None
    payload: MindCommand | ChainDraft | None = None

    def __post_init__(self):
        self.confidence = max(0.0, min(1.0, float(self.confidence)))

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "duration_seconds": self.duration_seconds,
            "energy": self.energy.value,
            "emoji": self.emoji,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "suggested_start": self.suggested_start.isoformat() if self.suggested_start else None,
            "payload": self.payload.to_dict() if self.payload is not None else None,
        }


# =============================================================================
# RESPONSES
# =============================================================================


@dataclass
class MindCommandResponse:
    summary: str
    commands: list[MindCommand]

    def to_dict(self) -> dict:
        return {"summary": self.summary, "commands": [c.to_dict() for c in self.commands]}


@dataclass
class AIResponse:
    """Normalized reply produced by both the remote backend and the offline parser."""

    text: str
    suggestions: list[Suggestion] = field(default_factory=list)
    action_type: ActionType | None = None
    created_items: list[CreatedItem] = field(default_factory=list)
    confidence: float = 0.5
    commands: list[MindCommand] = field(default_factory=list)
    summary: str = ""

    def __post_init__(self):
        self.confidence = max(0.0, min(1.0, float(self.confidence)))

    @property
    def clarification(self) -> str | None:
        for command in self.commands:
            if isinstance(command, Clarification):
                return command.question
        return None

    @property
    def actionable_commands(self) -> list[MindCommand]:
        return [c for c in self.commands if not isinstance(c, Clarification)]

    def has_structured_content(self) -> bool:
        return bool(self.suggestions or self.created_items or self.commands)

    def to_command_response(self) -> MindCommandResponse:
        return MindCommandResponse(summary=self.summary or self.text, commands=list(self.commands))

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "action_type": self.action_type.value if self.action_type else None,
            "created_items": [item.to_dict() for item in self.created_items],
            "confidence": self.confidence,
            "commands": [c.to_dict() for c in self.commands],
            "summary": self.summary,
        }


@dataclass
class ApplyOutcome:
    """What the store reports back after applying commands."""

    applied_messages: list[str] = field(default_factory=list)
    clarification: str | None = None
    has_changes: bool = False

    def merge(self, other: "ApplyOutcome") -> "ApplyOutcome":
        return ApplyOutcome(
            applied_messages=self.applied_messages + other.applied_messages,
            clarification=self.clarification or other.clarification,
            has_changes=self.has_changes or other.has_changes,
        )

    def to_dict(self) -> dict:
        return asdict(self)
