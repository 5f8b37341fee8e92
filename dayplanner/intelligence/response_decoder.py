"""
Response Decoder - the single place backend text becomes an AIResponse.

The reply is free text with at most one JSON object in it. Markdown fences
are stripped and only the substring from the first "{" to the last "}" is
decoded. The JSON is validated against pydantic models; commands are a
discriminated union on "type". Anything schema-invalid raises
MalformedResponse instead of being patched up with defaults.

Accepted shapes:
- the full reply: {response, action_type, confidence, summary, suggestions,
  event, goal, pillar, chain, commands}
- the bare pillar-field object: {description?, wisdom?, values?, habits?,
  constraints?, quiet_hours?, frequency?}

Durations on the wire are minutes; everything returned is seconds.
"""

import json
import logging
import re
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from dayplanner import config
from dayplanner.errors import MalformedResponse
from dayplanner.models import (
    ActionType,
    AddNode,
    AIResponse,
    ChainBlock,
    ChainDraft,
    Clarification,
    CreateGoal,
    CreatePillar,
    Energy,
    EventDraft,
    FlowPattern,
    GoalReference,
    GoalUpdates,
    LinkNodes,
    MindCommand,
    NodeDescriptor,
    NodeType,
    PillarReference,
    PillarUpdates,
    PinNode,
    QuietHourDescriptor,
    Suggestion,
    TimeWindow,
    UpdateGoal,
    UpdatePillar,
)
from dayplanner.intelligence.text_fields import (
    PillarLimits,
    chain_emoji,
    goal_emoji,
    infer_frequency,
    pillar_emoji,
    sanitize_create_pillar,
    sanitize_pillar_updates,
)

logger = logging.getLogger(__name__)

EnergyName = Literal["sunrise", "daylight", "moonlight"]
Minutes = Annotated[int, Field(gt=0, le=24 * 60)]
Importance = Annotated[int, Field(ge=1, le=5)]

REPLY_KEYS = {
    "response",
    "action_type",
    "confidence",
    "summary",
    "suggestions",
    "event",
    "goal",
    "pillar",
    "chain",
    "commands",
}


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore")


# =============================================================================
# SHARED PIECES
# =============================================================================


class QuietHourModel(_Wire):
    start: str = Field(pattern=r"^\d{1,2}:\d{2}$")
    end: str = Field(pattern=r"^\d{1,2}:\d{2}$")

    def to_descriptor(self) -> QuietHourDescriptor:
        sh, sm = (int(part) for part in self.start.split(":"))
        eh, em = (int(part) for part in self.end.split(":"))
        return QuietHourDescriptor.from_window(TimeWindow(sh, sm, eh, em))

    @model_validator(mode="after")
    def validate_window(self):
        """Quiet hours must be a real same-day window."""
        self.to_descriptor()
        return self


class NodeModel(_Wire):
    title: str = Field(min_length=1)
    type: Literal["subgoal", "task", "note", "resource", "metric"] = "note"
    detail: str | None = None
    pinned: bool = False
    weight: float | None = Field(default=None, ge=0.0, le=1.0)

    def to_descriptor(self) -> NodeDescriptor:
        return NodeDescriptor(
            title=self.title.strip(),
            type=NodeType(self.type),
            detail=self.detail,
            pinned=self.pinned,
            weight=self.weight,
        )


class PillarFieldsModel(_Wire):
    description: str | None = None
    wisdom: str | None = None
    frequency: str | None = None
    values: list[str] = Field(default_factory=list)
    principles: list[str] = Field(default_factory=list)
    habits: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    quiet_hours: list[QuietHourModel] = Field(default_factory=list)

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v):
        if v is not None and infer_frequency(v) is None:
            raise ValueError(f"unrecognized frequency: {v!r}")
        return v

    def to_updates(self) -> PillarUpdates:
        return PillarUpdates(
            description=self.description,
            wisdom=self.wisdom,
            frequency=infer_frequency(self.frequency) if self.frequency else None,
            values=self.values or self.principles,
            habits=self.habits,
            constraints=self.constraints,
            quiet_hours=[q.to_descriptor() for q in self.quiet_hours],
        )


class GoalUpdatesModel(_Wire):
    title: str | None = None
    description: str | None = None
    emoji: str | None = None
    importance: Importance | None = None
    focus: str | None = None


class PillarUpdatesModel(PillarFieldsModel):
    emoji: str | None = None


class _GoalTarget(_Wire):
    goal_id: str | None = None
    goal_title: str | None = None

    @model_validator(mode="after")
    def require_goal(self):
        """A goal command needs something to resolve against."""
        if not (self.goal_id or (self.goal_title and self.goal_title.strip())):
            raise ValueError("goal_id or goal_title is required")
        return self

    def reference(self) -> GoalReference:
        return GoalReference(id=self.goal_id, title=self.goal_title)


# =============================================================================
# COMMANDS (discriminated on "type")
# =============================================================================


class CreateGoalModel(_Wire):
    type: Literal["create_goal"]
    title: str = Field(min_length=1)
    description: str | None = None
    emoji: str | None = None
    importance: Importance | None = None
    pillar_ids: list[str] = Field(default_factory=list)
    pillar_names: list[str] = Field(default_factory=list)
    nodes: list[NodeModel] = Field(default_factory=list)

    def to_command(self) -> CreateGoal:
        pillars = [PillarReference(id=pid) for pid in self.pillar_ids]
        pillars += [PillarReference(title=name) for name in self.pillar_names]
        return CreateGoal(
            title=self.title.strip(),
            description=self.description,
            emoji=self.emoji or goal_emoji(self.title),
            importance=self.importance,
            pillars=pillars,
            nodes=[node.to_descriptor() for node in self.nodes],
        )


class UpdateGoalModel(_GoalTarget):
    type: Literal["update_goal"]
    updates: GoalUpdatesModel

    def to_command(self) -> UpdateGoal:
        return UpdateGoal(goal=self.reference(), updates=GoalUpdates(**self.updates.model_dump()))


class CreatePillarModel(PillarFieldsModel):
    type: Literal["create_pillar"]
    name: str = Field(min_length=1)
    emoji: str | None = None

    def to_command(self) -> CreatePillar:
        updates = self.to_updates()
        return CreatePillar(
            name=self.name.strip(),
            description=updates.description,
            emoji=self.emoji or pillar_emoji(self.name),
            frequency=updates.frequency,
            wisdom=updates.wisdom,
            values=updates.values,
            habits=updates.habits,
            constraints=updates.constraints,
            quiet_hours=updates.quiet_hours,
        )


class UpdatePillarModel(_Wire):
    type: Literal["update_pillar"]
    pillar_id: str | None = None
    pillar_name: str | None = None
    updates: PillarUpdatesModel

    def to_command(self) -> UpdatePillar:
        updates = self.updates.to_updates()
        updates.emoji = self.updates.emoji
        return UpdatePillar(pillar=PillarReference(id=self.pillar_id, title=self.pillar_name), updates=updates)


class AddNodeModel(_GoalTarget):
    type: Literal["add_node"]
    node: NodeModel
    link_to_title: str | None = None
    link_label: str | None = None

    def to_command(self) -> AddNode:
        return AddNode(
            goal=self.reference(),
            node=self.node.to_descriptor(),
            link_to_title=self.link_to_title,
            link_label=self.link_label,
        )


class LinkNodesModel(_GoalTarget):
    type: Literal["link_nodes"]
    from_title: str = Field(min_length=1)
    to_title: str = Field(min_length=1)
    label: str | None = None

    def to_command(self) -> LinkNodes:
        return LinkNodes(goal=self.reference(), from_title=self.from_title, to_title=self.to_title, label=self.label)


class PinNodeModel(_GoalTarget):
    type: Literal["pin_node"]
    node_title: str = Field(min_length=1)
    pinned: bool = True

    def to_command(self) -> PinNode:
        return PinNode(goal=self.reference(), node_title=self.node_title, pinned=self.pinned)


class ClarificationModel(_Wire):
    type: Literal["ask_clarification"]
    question: str = Field(min_length=1)

    def to_command(self) -> Clarification:
        return Clarification(question=self.question.strip())


class NoopModel(_Wire):
    type: Literal["noop"]

    def to_command(self) -> None:
        return None


CommandModel = Annotated[
    CreateGoalModel
    | UpdateGoalModel
    | CreatePillarModel
    | UpdatePillarModel
    | AddNodeModel
    | LinkNodesModel
    | PinNodeModel
    | ClarificationModel
    | NoopModel,
    Field(discriminator="type"),
]


# =============================================================================
# CREATED ITEMS & SUGGESTIONS
# =============================================================================


class SuggestionModel(_Wire):
    title: str = Field(min_length=1)
    explanation: str = ""
    duration_minutes: Minutes
    energy: EnergyName = "daylight"
    emoji: str = "📅"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    start: datetime | None = None

    def to_suggestion(self) -> Suggestion:
        return Suggestion(
            title=self.title.strip(),
            duration_seconds=self.duration_minutes * 60,
            energy=Energy(self.energy),
            emoji=self.emoji,
            confidence=self.confidence,
            explanation=self.explanation,
            suggested_start=self.start,
        )


class EventModel(_Wire):
    title: str = Field(min_length=1)
    duration_minutes: Minutes = config.DEFAULT_BLOCK_MINUTES
    energy: EnergyName = "daylight"
    emoji: str = "📅"
    start: datetime | None = None

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title.strip(),
            duration_seconds=self.duration_minutes * 60,
            energy=Energy(self.energy),
            emoji=self.emoji,
            start=self.start,
        )


class GoalPayloadModel(_Wire):
    title: str = Field(min_length=1)
    description: str | None = None
    emoji: str | None = None
    importance: Importance | None = None
    pillar_names: list[str] = Field(default_factory=list)

    def to_command(self) -> CreateGoal:
        return CreateGoalModel(type="create_goal", **self.model_dump()).to_command()


class PillarPayloadModel(PillarFieldsModel):
    name: str = Field(min_length=1)
    emoji: str | None = None

    def to_command(self) -> CreatePillar:
        return CreatePillarModel(type="create_pillar", **self.model_dump()).to_command()


class ChainBlockModel(_Wire):
    title: str = Field(min_length=1)
    duration_minutes: Minutes
    energy: EnergyName = "daylight"
    emoji: str = "🌊"


class ChainPayloadModel(_Wire):
    name: str = Field(min_length=1)
    blocks: list[ChainBlockModel] = Field(min_length=1)
    flow_pattern: Literal["waterfall", "spiral", "wave", "ripple"] = "waterfall"
    emoji: str | None = None

    def to_draft(self) -> ChainDraft:
        return ChainDraft(
            name=self.name.strip(),
            blocks=[
                ChainBlock(
                    title=b.title.strip(),
                    duration_seconds=b.duration_minutes * 60,
                    energy=Energy(b.energy),
                    emoji=b.emoji,
                )
                for b in self.blocks
            ],
            flow_pattern=FlowPattern(self.flow_pattern),
            emoji=self.emoji or chain_emoji(self.name),
        )


class ReplyModel(_Wire):
    response: str = ""
    action_type: Literal[
        "create_event",
        "create_goal",
        "create_pillar",
        "create_chain",
        "suggest_activities",
        "general_chat",
        "edit_mind",
    ] | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    summary: str = ""
    suggestions: list[SuggestionModel] = Field(default_factory=list)
    event: EventModel | None = None
    goal: GoalPayloadModel | None = None
    pillar: PillarPayloadModel | None = None
    chain: ChainPayloadModel | None = None
    commands: list[CommandModel] = Field(default_factory=list)


# =============================================================================
# DECODING
# =============================================================================


def extract_json_object(text: str) -> tuple[str | None, str]:
    """
    Split a reply into (json substring, surrounding text).

    Fences are removed; the JSON is everything from the first "{" to the
    last "}". Without braces the whole reply is plain text.
    """
    cleaned = re.sub(r"```(?:json)?", "", text or "", flags=re.IGNORECASE)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return None, cleaned.strip()
    return cleaned[start : end + 1], (cleaned[:start] + " " + cleaned[end + 1 :]).strip()


def normalize_commands(commands: list[MindCommand], limits: PillarLimits | None = None) -> list[MindCommand]:
    """Apply pillar field limits to every pillar command. Used by both the online and offline paths."""
    limits = limits or PillarLimits()
    normalized: list[MindCommand] = []
    for command in commands:
        if isinstance(command, CreatePillar):
            command = sanitize_create_pillar(command, limits)
        elif isinstance(command, UpdatePillar):
            command = UpdatePillar(pillar=command.pillar, updates=sanitize_pillar_updates(command.updates, limits))
        normalized.append(command)
    return normalized


def _decode_pillar_fields(data: dict, surrounding: str, limits: PillarLimits) -> AIResponse:
    fields = PillarFieldsModel.model_validate(data)
    updates = fields.to_updates()
    if updates.is_empty():
        raise ValueError("pillar field object carries no fields")
    # The target pillar is bound later from the utterance
    command = UpdatePillar(pillar=PillarReference(), updates=updates)
    return AIResponse(
        text=surrounding,
        action_type=ActionType.EDIT_MIND,
        confidence=0.8,
        commands=normalize_commands([command], limits),
        summary=surrounding,
    )


def decode_reply(text: str, limits: PillarLimits | None = None) -> AIResponse:
    """
    Decode backend text into an AIResponse.

    Raises:
        MalformedResponse: JSON is present but unparseable or schema-invalid.
            raw_text carries the reply with the JSON removed.
    """
    limits = limits or PillarLimits()
    payload, surrounding = extract_json_object(text)
    if payload is None:
        return AIResponse(text=surrounding, action_type=ActionType.GENERAL_CHAT)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Reply JSON does not parse: {e}", raw_text=surrounding) from e
    if not isinstance(data, dict):
        raise MalformedResponse("Reply JSON is not an object", raw_text=surrounding)

    try:
        if not REPLY_KEYS & data.keys():
            return _decode_pillar_fields(data, surrounding, limits)
        reply = ReplyModel.model_validate(data)
    except (ValidationError, ValueError) as e:
        raise MalformedResponse(f"Reply JSON failed validation: {e}", raw_text=surrounding) from e

    commands: list[MindCommand] = []
    if reply.goal is not None:
        commands.append(reply.goal.to_command())
    if reply.pillar is not None:
        commands.append(reply.pillar.to_command())
    for model in reply.commands:
        command = model.to_command()
        if command is not None:
            commands.append(command)

    created_items = []
    if reply.event is not None:
        created_items.append(reply.event.to_draft())
    if reply.chain is not None:
        created_items.append(reply.chain.to_draft())

    response = AIResponse(
        text=reply.response.strip() or surrounding,
        suggestions=[s.to_suggestion() for s in reply.suggestions],
        action_type=ActionType(reply.action_type) if reply.action_type else None,
        created_items=created_items,
        confidence=reply.confidence,
        commands=normalize_commands(commands, limits),
        summary=reply.summary.strip(),
    )
    logger.debug(
        f"Decoded reply: action={response.action_type} confidence={response.confidence} "
        f"commands={len(response.commands)} suggestions={len(response.suggestions)}"
    )
    return response
