"""
Command Applier - turns accepted MindCommands into domain mutations.

CommandApplier is the contract the interpreter depends on.
MindCommandApplier is the reference implementation over an explicit
store handle (InMemoryMindStore in tests and embedded use).

References resolve id first, then title. A reference that resolves to
nothing becomes a clarification rather than an error.
"""

import logging
from datetime import datetime
from typing import Protocol

from dayplanner.models import (
    AddNode,
    ApplyOutcome,
    ChainDraft,
    Clarification,
    CreateGoal,
    CreatePillar,
    EventDraft,
    GoalReference,
    LinkNodes,
    MindCommand,
    PillarReference,
    PinNode,
    UpdateGoal,
    UpdatePillar,
)
from dayplanner.intelligence.entity_resolver import GOAL, PILLAR, EntityResolver
from dayplanner.intelligence.text_fields import (
    PillarLimits,
    chain_emoji,
    clamp_importance,
    dedupe,
    goal_emoji,
    infer_frequency,
    pillar_emoji,
    sanitize_create_pillar,
    sanitize_items,
)
from dayplanner.store import Chain, Goal, GoalNode, InMemoryMindStore, NodeLink, Pillar, TimeBlock
from dayplanner.time_truth.slot_finder import ScheduleSlotFinder

logger = logging.getLogger(__name__)


class CommandApplier(Protocol):
    def apply(self, commands: list[MindCommand]) -> ApplyOutcome: ...

    def schedule_event(
        self,
        draft: EventDraft,
        start: datetime,
        auto_place: bool = True,
        now: datetime | None = None,
    ) -> ApplyOutcome: ...

    def create_chain(self, draft: ChainDraft) -> ApplyOutcome: ...


class MindCommandApplier:
    """Applies commands in order against one store."""

    def __init__(
        self,
        store: InMemoryMindStore,
        limits: PillarLimits | None = None,
        slot_finder: ScheduleSlotFinder | None = None,
    ):
        self.store = store
        self.limits = limits or PillarLimits()
        self.slot_finder = slot_finder or ScheduleSlotFinder()
        self._handlers = {
            CreateGoal: self._create_goal,
            UpdateGoal: self._update_goal,
            CreatePillar: self._create_pillar,
            UpdatePillar: self._update_pillar,
            AddNode: self._add_node,
            LinkNodes: self._link_nodes,
            PinNode: self._pin_node,
            Clarification: self._clarification,
        }

    def apply(self, commands: list[MindCommand]) -> ApplyOutcome:
        outcome = ApplyOutcome()
        for command in commands:
            result = self._handlers[type(command)](command)
            logger.info(
                f"Applied {command.kind}",
                extra={"changed": result.has_changes, "clarification": result.clarification},
            )
            outcome = outcome.merge(result)
        return outcome

    # -- resolution ----------------------------------------------------------

    def _resolver(self) -> EntityResolver:
        return EntityResolver.from_entities(self.store.goals(), self.store.pillars())

    def _find_goal(self, reference: GoalReference) -> Goal | None:
        resolved = self._resolver().resolve(reference.title, GOAL, entity_id=reference.id)
        return self.store.get_goal(resolved.entity_id) if resolved else None

    def _find_pillar(self, reference: PillarReference) -> Pillar | None:
        resolved = self._resolver().resolve(reference.title, PILLAR, entity_id=reference.id)
        return self.store.get_pillar(resolved.entity_id) if resolved else None

    @staticmethod
    def _missing(kind: str, title: str | None) -> ApplyOutcome:
        if title:
            return ApplyOutcome(clarification=f'I couldn\'t find a {kind} called "{title}". Which {kind} did you mean?')
        return ApplyOutcome(clarification=f"Which {kind} should I update?")

    # -- goals ---------------------------------------------------------------

    def _create_goal(self, command: CreateGoal) -> ApplyOutcome:
        pillar_ids = []
        for reference in command.pillars:
            pillar = self._find_pillar(reference)
            if pillar is None:
                logger.info(f"Skipping unknown pillar link {reference.title or reference.id}")
                continue
            pillar_ids.append(pillar.id)

        goal = Goal(
            title=command.title,
            description=command.description or "",
            emoji=command.emoji or goal_emoji(command.title),
            importance=clamp_importance(command.importance),
            related_pillar_ids=list(dict.fromkeys(pillar_ids)),
            nodes=[
                GoalNode(title=n.title, type=n.type, detail=n.detail, pinned=n.pinned, weight=n.weight)
                for n in command.nodes
            ],
        )
        self.store.add_goal(goal)
        return ApplyOutcome(applied_messages=[f"Created goal {goal.emoji} {goal.title}"], has_changes=True)

    def _update_goal(self, command: UpdateGoal) -> ApplyOutcome:
        goal = self._find_goal(command.goal)
        if goal is None:
            return self._missing("goal", command.goal.title)

        updates = command.updates
        changed = []
        if updates.title and updates.title != goal.title:
            goal.title = updates.title
            changed.append("title")
        if updates.description is not None:
            goal.description = updates.description
            changed.append("description")
        if updates.emoji:
            goal.emoji = updates.emoji
            changed.append("emoji")
        if updates.importance is not None:
            goal.importance = clamp_importance(updates.importance)
            changed.append("importance")
        if updates.focus:
            goal.focus = updates.focus
            changed.append("focus")

        if not changed:
            return ApplyOutcome()
        self.store.add_goal(goal)
        return ApplyOutcome(applied_messages=[f"Updated {goal.title}: {', '.join(changed)}"], has_changes=True)

    def _add_node(self, command: AddNode) -> ApplyOutcome:
        goal = self._find_goal(command.goal)
        if goal is None:
            return self._missing("goal", command.goal.title)

        descriptor = command.node
        node = GoalNode(
            title=descriptor.title,
            type=descriptor.type,
            detail=descriptor.detail,
            pinned=descriptor.pinned,
            weight=descriptor.weight,
        )
        goal.nodes.append(node)
        message = f"Added {node.type.value} {node.title} to {goal.title}"
        if command.link_to_title:
            target = goal.find_node(command.link_to_title)
            if target is not None:
                goal.links.append(NodeLink(from_node_id=node.id, to_node_id=target.id, label=command.link_label))
                message += f", linked to {target.title}"
        self.store.add_goal(goal)
        return ApplyOutcome(applied_messages=[message], has_changes=True)

    def _link_nodes(self, command: LinkNodes) -> ApplyOutcome:
        goal = self._find_goal(command.goal)
        if goal is None:
            return self._missing("goal", command.goal.title)

        source = goal.find_node(command.from_title)
        target = goal.find_node(command.to_title)
        for wanted, found in ((command.from_title, source), (command.to_title, target)):
            if found is None:
                return ApplyOutcome(clarification=f'I couldn\'t find "{wanted}" in {goal.title}. Which node did you mean?')

        goal.links.append(NodeLink(from_node_id=source.id, to_node_id=target.id, label=command.label))
        self.store.add_goal(goal)
        return ApplyOutcome(applied_messages=[f"Linked {source.title} to {target.title}"], has_changes=True)

    def _pin_node(self, command: PinNode) -> ApplyOutcome:
        goal = self._find_goal(command.goal)
        if goal is None:
            return self._missing("goal", command.goal.title)

        node = goal.find_node(command.node_title)
        if node is None:
            return ApplyOutcome(
                clarification=f'I couldn\'t find "{command.node_title}" in {goal.title}. Which node did you mean?'
            )
        if node.pinned == command.pinned:
            return ApplyOutcome()
        node.pinned = command.pinned
        self.store.add_goal(goal)
        verb = "Pinned" if command.pinned else "Unpinned"
        return ApplyOutcome(applied_messages=[f"{verb} {node.title}"], has_changes=True)

    # -- pillars -------------------------------------------------------------

    def _create_pillar(self, command: CreatePillar) -> ApplyOutcome:
        command = sanitize_create_pillar(command, self.limits)
        pillar = Pillar(
            name=command.name,
            description=command.description or "",
            emoji=command.emoji or pillar_emoji(command.name),
            frequency=infer_frequency(command.frequency or "") or "weekly",
            wisdom=command.wisdom,
            values=command.values,
            habits=command.habits,
            constraints=command.constraints,
            quiet_hours=[q.to_window() for q in command.quiet_hours],
        )
        self.store.add_pillar(pillar)
        return ApplyOutcome(applied_messages=[f"Created pillar {pillar.emoji} {pillar.name}"], has_changes=True)

    def _update_pillar(self, command: UpdatePillar) -> ApplyOutcome:
        pillar = self._find_pillar(command.pillar)
        if pillar is None:
            return self._missing("pillar", command.pillar.title)

        updates = command.updates
        limits = self.limits
        changed = []
        for name, cap in (
            ("values", limits.max_values),
            ("habits", limits.max_habits),
            ("constraints", limits.max_constraints),
        ):
            additions = getattr(updates, name)
            if not additions:
                continue
            current = getattr(pillar, name)
            merged = sanitize_items(dedupe(current + additions), cap, limits.item_chars)
            if merged != current:
                setattr(pillar, name, merged)
                changed.append(name)

        if updates.quiet_hours:
            windows = list(dict.fromkeys(pillar.quiet_hours + [q.to_window() for q in updates.quiet_hours]))
            windows = windows[: limits.max_quiet_hours]
            if windows != pillar.quiet_hours:
                pillar.quiet_hours = windows
                changed.append("quiet hours")
        if updates.description is not None:
            pillar.description = updates.description
            changed.append("description")
        if updates.wisdom is not None:
            pillar.wisdom = updates.wisdom
            changed.append("wisdom")
        frequency = infer_frequency(updates.frequency or "")
        if frequency and frequency != pillar.frequency:
            pillar.frequency = frequency
            changed.append("frequency")
        if updates.emoji:
            pillar.emoji = updates.emoji
            changed.append("emoji")

        if not changed:
            return ApplyOutcome()
        self.store.add_pillar(pillar)
        return ApplyOutcome(applied_messages=[f"Updated {pillar.name}: {', '.join(changed)}"], has_changes=True)

    @staticmethod
    def _clarification(command: Clarification) -> ApplyOutcome:
        return ApplyOutcome(clarification=command.question)

    # -- events and chains ---------------------------------------------------

    def schedule_event(
        self,
        draft: EventDraft,
        start: datetime,
        auto_place: bool = True,
        now: datetime | None = None,
    ) -> ApplyOutcome:
        """
        Put an event on the calendar. With auto_place the start moves to the
        first free slot; a user-named time is passed with auto_place=False.
        """
        placed = start
        if auto_place:
            placed = self.slot_finder.find_slot(start, draft.duration_seconds, self.store.blocks_on(start.date()), now)

        block = TimeBlock(
            title=draft.title,
            start=placed,
            duration_seconds=draft.duration_seconds,
            energy=draft.energy,
            emoji=draft.emoji,
        )
        self.store.add_block(block)
        message = f"Scheduled {block.emoji} {block.title} on {placed:%a %b %d} at {placed:%H:%M}"
        if placed != start:
            message += f" (moved from {start:%H:%M} to the next free slot)"
        return ApplyOutcome(applied_messages=[message], has_changes=True)

    def create_chain(self, draft: ChainDraft) -> ApplyOutcome:
        chain = Chain(
            name=draft.name,
            blocks=list(draft.blocks),
            flow_pattern=draft.flow_pattern,
            emoji=draft.emoji or chain_emoji(draft.name),
        )
        self.store.add_chain(chain)
        minutes = draft.total_seconds // 60
        return ApplyOutcome(
            applied_messages=[f"Created chain {chain.emoji} {chain.name} ({len(chain.blocks)} blocks, {minutes} min)"],
            has_changes=True,
        )
