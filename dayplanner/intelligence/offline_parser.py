"""
Offline Command Parser - rule-based fallback when the remote backend is
unavailable, times out, or declines to answer.

Order of attempts:
1. A known goal or pillar is mentioned -> adjust it
2. A creation keyword ("goal", "pillar") is present -> create one
3. Otherwise -> a single clarification command

The parser never returns an empty command list.
"""

import logging
import re
from collections.abc import Sequence

from dayplanner.errors import NoActionableIntent
from dayplanner.models import (
    ActionType,
    AddNode,
    AIResponse,
    Clarification,
    CreateGoal,
    CreatePillar,
    GoalReference,
    GoalUpdates,
    MindCommand,
    NodeDescriptor,
    NodeType,
    PillarReference,
    PillarUpdates,
    PinNode,
    UpdateGoal,
    UpdatePillar,
    Utterance,
)
from dayplanner.intelligence.entity_resolver import GOAL, PILLAR, EntityResolver, ResolvedEntity
from dayplanner.intelligence.text_fields import (
    DEFAULT_TERMINATORS,
    PillarLimits,
    extract_after_trigger,
    goal_emoji,
    infer_frequency,
    infer_importance,
    pillar_emoji,
    sanitize_create_pillar,
    sanitize_pillar_updates,
    split_list,
)
from dayplanner.time_truth.quiet_hours import extract_quiet_hours, to_descriptors

logger = logging.getLogger(__name__)

MATCHED_CONFIDENCE = 0.9
UNTITLED_CONFIDENCE = 0.65

VALUE_TRIGGERS = ["add values", "add value", "reinforce", "values", "value"]
HABIT_TRIGGERS = ["add habits", "add habit", "track", "habits", "habit"]
CONSTRAINT_TRIGGERS = ["add constraints", "add constraint", "avoid", "constraints", "constraint"]
DESCRIPTION_TRIGGERS = ["update description", "set description", "description"]
WISDOM_TRIGGERS = ["principles", "principle", "wisdom"]
RENAME_TRIGGERS = ["rename it to", "rename to", "call it"]
FOCUS_TRIGGERS = ["focus on"]

# A list segment also stops where the next list field begins
LIST_TERMINATORS = DEFAULT_TERMINATORS + [
    f"{joiner}{word}"
    for word in ("value", "habit", "constraint", "avoid", "track", "principle")
    for joiner in (" and ", " ")
]
SENTENCE_TERMINATORS = [".", "\n"]

GOAL_TITLE_TERMINATORS = [" with ", " by ", " importance", " priority", " that ", " which ", ".", ",", "\n"]
PILLAR_NAME_TERMINATORS = [
    " with ",
    " that ",
    " for ",
    " add ",
    " track",
    " avoid",
    " value",
    " habit",
    " constraint",
    " quiet",
    " daily",
    " weekly",
    " monthly",
    ".",
    ",",
    "\n",
]

_LEADING_CONNECTORS = re.compile(r"^(?:\s|:|-|to\b|called\b|named\b|for\b|about\b|as\b|is\b)+", re.IGNORECASE)
_DEADLINE_PATTERN = re.compile(r"\bby\s+([^,.\n]+)", re.IGNORECASE)
_NODE_ARTICLE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)
_NODE_SUFFIX = re.compile(r"\s+(?:node|for|in|on)$", re.IGNORECASE)
PIN_TERMINATORS = [" to ", " on ", " in ", " for ", ".", "\n"]


def _strip_connectors(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = _LEADING_CONNECTORS.sub("", value).strip(" \t:,-.")
    return cleaned or None


def _node_title(value: str | None) -> str | None:
    """"the research node" -> "research"."""
    title = _strip_connectors(value)
    if not title:
        return None
    title = _NODE_ARTICLE.sub("", title)
    previous = None
    while previous != title:
        previous, title = title, _NODE_SUFFIX.sub("", title).strip()
    return title or None


def _capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def _text_after_keyword(text: str, keyword: str, terminators: list[str]) -> str | None:
    """Title-like text following a keyword such as "goal" or "pillar"."""
    match = re.search(r"\b" + keyword + r"s?\b", text, re.IGNORECASE)
    if not match:
        return None
    rest = " " + _LEADING_CONNECTORS.sub("", text[match.end() :])
    rest_lower = rest.lower()
    end = len(rest)
    for terminator in terminators:
        pos = rest_lower.find(terminator)
        if pos != -1 and pos < end:
            end = pos
    title = _strip_connectors(rest[:end])
    return _capitalize_first(title) if title else None


class OfflineCommandParser:
    """
    Deterministic utterance -> MindCommand extraction.

    Known goals and pillars are read-only inputs used only to resolve
    which entity an utterance refers to.
    """

    def __init__(self, limits: PillarLimits | None = None):
        self.limits = limits or PillarLimits()

    def parse(
        self,
        utterance: Utterance | str,
        known_goals: Sequence = (),
        known_pillars: Sequence = (),
    ) -> AIResponse:
        text = utterance.text if isinstance(utterance, Utterance) else utterance
        text = (text or "").strip()
        resolver = EntityResolver.from_entities(known_goals, known_pillars)

        try:
            response = self._parse(text, resolver, known_goals, known_pillars)
        except NoActionableIntent as e:
            logger.info(f"No actionable intent offline: {e.question}")
            return AIResponse(
                text=e.question,
                action_type=ActionType.EDIT_MIND,
                confidence=1.0,
                commands=[Clarification(question=e.question)],
                summary=e.question,
            )

        logger.info(f"Offline parse produced {len(response.commands)} command(s): {response.summary}")
        return response

    def _parse(self, text: str, resolver: EntityResolver, known_goals, known_pillars) -> AIResponse:
        if not text:
            raise NoActionableIntent("What would you like to change?")

        entity = resolver.find_in_text(text)
        if entity is not None:
            if entity.entity_type == PILLAR:
                adjusted = self._pillar_adjustment(text, entity)
            else:
                adjusted = self._goal_adjustment(text, entity)
            if adjusted is not None:
                return adjusted

        created = self._creation(text, resolver)
        if created is not None:
            return created

        if entity is not None:
            raise NoActionableIntent(f"What should I change about {entity.entity_name}?")
        raise NoActionableIntent(self._which_entity_question(known_goals, known_pillars))

    # -- adjustments ---------------------------------------------------------

    def _pillar_fields(self, text: str) -> PillarUpdates:
        segments = {
            "values": extract_after_trigger(text, VALUE_TRIGGERS, LIST_TERMINATORS),
            "habits": extract_after_trigger(text, HABIT_TRIGGERS, LIST_TERMINATORS),
            "constraints": extract_after_trigger(text, CONSTRAINT_TRIGGERS, LIST_TERMINATORS),
        }
        description = _strip_connectors(
            extract_after_trigger(text, DESCRIPTION_TRIGGERS, [" for ", " on ", ".", "\n"])
        )
        wisdom = _strip_connectors(extract_after_trigger(text, WISDOM_TRIGGERS, SENTENCE_TERMINATORS))

        # Frequency words inside a list item ("track daily journaling") are not a schedule
        remainder = text
        for segment in segments.values():
            if segment:
                remainder = remainder.replace(segment, " ")

        updates = PillarUpdates(
            description=description,
            wisdom=wisdom,
            frequency=infer_frequency(remainder),
            values=split_list(segments["values"] or ""),
            habits=split_list(segments["habits"] or ""),
            constraints=split_list(segments["constraints"] or ""),
            quiet_hours=to_descriptors(extract_quiet_hours(text)),
        )
        return sanitize_pillar_updates(updates, self.limits)

    def _pillar_adjustment(self, text: str, entity: ResolvedEntity) -> AIResponse | None:
        # The pillar's own name must not feed the field scanners
        scrubbed = re.sub(re.escape(entity.entity_name), " ", text, flags=re.IGNORECASE)
        updates = self._pillar_fields(scrubbed)
        if updates.is_empty():
            return None

        summary = f"Adjusted {entity.entity_name}: {', '.join(updates.changed_fields())}"
        command = UpdatePillar(
            pillar=PillarReference(id=entity.entity_id, title=entity.entity_name),
            updates=updates,
        )
        return AIResponse(
            text=summary,
            action_type=ActionType.EDIT_MIND,
            confidence=MATCHED_CONFIDENCE,
            commands=[command],
            summary=summary,
        )

    def _goal_adjustment(self, text: str, entity: ResolvedEntity) -> AIResponse | None:
        reference = GoalReference(id=entity.entity_id, title=entity.entity_name)
        scrubbed = re.sub(re.escape(entity.entity_name), " ", text, flags=re.IGNORECASE)
        commands: list[MindCommand] = []
        labels: list[str] = []

        rename = _strip_connectors(extract_after_trigger(scrubbed, RENAME_TRIGGERS, SENTENCE_TERMINATORS))
        updates = GoalUpdates(
            title=rename,
            description=_strip_connectors(
                extract_after_trigger(scrubbed, DESCRIPTION_TRIGGERS, SENTENCE_TERMINATORS)
            ),
            focus=_strip_connectors(
                extract_after_trigger(scrubbed, FOCUS_TRIGGERS, [" for ", ".", "\n"])
            ),
            importance=infer_importance(scrubbed),
        )
        if not updates.is_empty():
            commands.append(UpdateGoal(goal=reference, updates=updates))
            labels += [name for name in ("title", "description", "focus", "importance") if getattr(updates, name) is not None]

        for node_type in NodeType:
            title = _strip_connectors(
                extract_after_trigger(
                    scrubbed,
                    [f"add {node_type.value}", f"add a {node_type.value}", f"add an {node_type.value}"],
                    [" to ", " for ", " on ", ".", "\n"],
                )
            )
            if title:
                node = NodeDescriptor(
                    title=_capitalize_first(title),
                    type=node_type,
                    pinned=bool(re.search(r"\bpinned\b", scrubbed, re.IGNORECASE)),
                )
                commands.append(AddNode(goal=reference, node=node))
                labels.append(f"added {node_type.value} {node.title}")

        for trigger, pinned in (("unpin", False), ("pin", True)):
            node_title = _node_title(extract_after_trigger(scrubbed, [trigger], PIN_TERMINATORS))
            if node_title:
                commands.append(PinNode(goal=reference, node_title=node_title, pinned=pinned))
                labels.append(f"{trigger}ned {node_title}")

        if not commands:
            return None

        summary = f"Updated {entity.entity_name}: {', '.join(labels)}"
        return AIResponse(
            text=summary,
            action_type=ActionType.EDIT_MIND,
            confidence=MATCHED_CONFIDENCE,
            commands=commands,
            summary=summary,
        )

    # -- creation ------------------------------------------------------------

    def _creation(self, text: str, resolver: EntityResolver) -> AIResponse | None:
        if re.search(r"\bgoals?\b", text, re.IGNORECASE):
            return self._create_goal(text, resolver)
        if re.search(r"\bpillars?\b", text, re.IGNORECASE):
            return self._create_pillar(text)
        return None

    def _create_goal(self, text: str, resolver: EntityResolver) -> AIResponse:
        title = _text_after_keyword(text, "goal", GOAL_TITLE_TERMINATORS)
        deadline = _DEADLINE_PATTERN.search(text)
        pillar = resolver.find_in_text(text, PILLAR)

        command = CreateGoal(
            title=title or "New Goal",
            description=f"Target: by {deadline.group(1).strip()}" if deadline else None,
            emoji=goal_emoji(title or text),
            importance=infer_importance(text),
            pillars=[PillarReference(id=pillar.entity_id, title=pillar.entity_name)] if pillar else [],
        )
        summary = f"Captured new goal {command.title}"
        return AIResponse(
            text=summary,
            action_type=ActionType.CREATE_GOAL,
            confidence=MATCHED_CONFIDENCE if title else UNTITLED_CONFIDENCE,
            commands=[command],
            summary=summary,
        )

    def _create_pillar(self, text: str) -> AIResponse:
        name = _text_after_keyword(text, "pillar", PILLAR_NAME_TERMINATORS)
        fields = self._pillar_fields(text)
        command = sanitize_create_pillar(
            CreatePillar(
                name=name or "New Pillar",
                description=fields.description,
                emoji=pillar_emoji(f"{name or ''} {text}"),
                frequency=fields.frequency,
                wisdom=fields.wisdom,
                values=fields.values,
                habits=fields.habits,
                constraints=fields.constraints,
                quiet_hours=fields.quiet_hours,
            ),
            self.limits,
        )
        summary = f"Captured new pillar {command.name}"
        return AIResponse(
            text=summary,
            action_type=ActionType.CREATE_PILLAR,
            confidence=MATCHED_CONFIDENCE if name else UNTITLED_CONFIDENCE,
            commands=[command],
            summary=summary,
        )

    @staticmethod
    def _which_entity_question(known_goals, known_pillars) -> str:
        names = [g.title for g in known_goals][:2] + [p.name for p in known_pillars][:2]
        if names:
            return f"Which goal or pillar should I adjust? For example: {', '.join(names)}."
        return "Which goal or pillar should I adjust? You can also say \"create a goal to ...\"."
