"""
In-memory domain store: goals, pillars, chains and calendar blocks.

The store is the explicit handle passed to the command applier and to the
offline parser. snapshot() hands out copies, so readers can never mutate
the live entities.
"""

import copy
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from dayplanner.models import ChainBlock, Energy, FlowPattern, NodeType, TimeWindow

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


@dataclass
class TimeBlock:
    """A scheduled calendar block."""

    title: str
    start: datetime
    duration_seconds: int
    energy: Energy = Energy.DAYLIGHT
    emoji: str = "📅"
    id: str = field(default_factory=lambda: _new_id("blk"))
    related_goal_id: str | None = None
    related_pillar_id: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(seconds=self.duration_seconds)

    @property
    def duration_min(self) -> int:
        return self.duration_seconds // 60


@dataclass
class GoalNode:
    title: str
    type: NodeType = NodeType.NOTE
    detail: str | None = None
    pinned: bool = False
    weight: float | None = None
    id: str = field(default_factory=lambda: _new_id("node"))


@dataclass
class NodeLink:
    from_node_id: str
    to_node_id: str
    label: str | None = None


@dataclass
class Goal:
    title: str
    description: str = ""
    emoji: str = "🎯"
    importance: int = 3
    focus: str | None = None
    related_pillar_ids: list[str] = field(default_factory=list)
    nodes: list[GoalNode] = field(default_factory=list)
    links: list[NodeLink] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("goal"))

    def find_node(self, title: str) -> GoalNode | None:
        wanted = title.strip().casefold()
        for node in self.nodes:
            if node.title.casefold() == wanted:
                return node
        if not wanted:
            return None
        # Fall back to a single containing title, "research" -> "Market research"
        partial = [n for n in self.nodes if wanted in n.title.casefold() or n.title.casefold() in wanted]
        return partial[0] if len(partial) == 1 else None

    @property
    def pinned_node_titles(self) -> list[str]:
        return [node.title for node in self.nodes if node.pinned]


@dataclass
class Pillar:
    name: str
    description: str = ""
    emoji: str = "🏛️"
    frequency: str = "weekly"
    wisdom: str | None = None
    values: list[str] = field(default_factory=list)
    habits: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    quiet_hours: list[TimeWindow] = field(default_factory=list)
    id: str = field(default_factory=lambda: _new_id("pillar"))


@dataclass
class Chain:
    name: str
    blocks: list[ChainBlock]
    flow_pattern: FlowPattern = FlowPattern.WATERFALL
    emoji: str = "🔗"
    id: str = field(default_factory=lambda: _new_id("chain"))


@dataclass
class MindSnapshot:
    """Read-only copy of the store handed to parsers and prompts."""

    goals: list[Goal]
    pillars: list[Pillar]
    chains: list[Chain]
    blocks: list[TimeBlock]

    def blocks_on(self, day: date) -> list[TimeBlock]:
        return [b for b in self.blocks if b.start.date() == day]


class InMemoryMindStore:
    """
    Thread-safe in-memory store.

    Only the command applier writes to it; everything else reads
    through snapshot().
    """

    def __init__(self):
        self._goals: dict[str, Goal] = {}
        self._pillars: dict[str, Pillar] = {}
        self._chains: dict[str, Chain] = {}
        self._blocks: dict[str, TimeBlock] = {}
        self._lock = threading.RLock()

    # -- reads ---------------------------------------------------------------

    def snapshot(self) -> MindSnapshot:
        with self._lock:
            return MindSnapshot(
                goals=copy.deepcopy(list(self._goals.values())),
                pillars=copy.deepcopy(list(self._pillars.values())),
                chains=copy.deepcopy(list(self._chains.values())),
                blocks=copy.deepcopy(sorted(self._blocks.values(), key=lambda b: b.start)),
            )

    def get_goal(self, goal_id: str) -> Goal | None:
        with self._lock:
            return self._goals.get(goal_id)

    def get_pillar(self, pillar_id: str) -> Pillar | None:
        with self._lock:
            return self._pillars.get(pillar_id)

    def goals(self) -> list[Goal]:
        with self._lock:
            return list(self._goals.values())

    def pillars(self) -> list[Pillar]:
        with self._lock:
            return list(self._pillars.values())

    def chains(self) -> list[Chain]:
        with self._lock:
            return list(self._chains.values())

    def blocks_on(self, day: date) -> list[TimeBlock]:
        with self._lock:
            return sorted(
                (b for b in self._blocks.values() if b.start.date() == day),
                key=lambda b: b.start,
            )

    # -- writes --------------------------------------------------------------

    def add_goal(self, goal: Goal) -> Goal:
        with self._lock:
            self._goals[goal.id] = goal
        logger.debug(f"Stored goal {goal.id} '{goal.title}'")
        return goal

    def add_pillar(self, pillar: Pillar) -> Pillar:
        with self._lock:
            self._pillars[pillar.id] = pillar
        logger.debug(f"Stored pillar {pillar.id} '{pillar.name}'")
        return pillar

    def add_chain(self, chain: Chain) -> Chain:
        with self._lock:
            self._chains[chain.id] = chain
        return chain

    def add_block(self, block: TimeBlock) -> TimeBlock:
        with self._lock:
            self._blocks[block.id] = block
        logger.debug(f"Stored block {block.id} at {block.start.isoformat()}")
        return block
