"""
Confidence Gate - decides, per utterance, whether to execute, stage, or clarify.

THRESHOLD JUSTIFICATIONS:
========================

create_event  execute >= 0.70, stage >= 0.50
  - Why: A misplaced event is visible and easy to undo, so the bar is the lowest.

create_goal   execute >= 0.80, stage >= 0.60
  - Why: Goals anchor planning for weeks; a wrong one pollutes suggestions.

create_pillar execute >= 0.85, clarify below
  - Why: Pillars bias every future suggestion. Between 0.60 and 0.85 the
    question is specific ("recurring activity or guiding principle?"),
    below 0.60 it is open-ended. A pillar is never staged.

create_chain  execute >= 0.75, stage >= 0.60
  - Why: Chains create several blocks at once.

suggest_activities always stages; general_chat stages when it carries
suggestions and is a no-op otherwise; edit_mind (updates to existing
goals and pillars) always executes.

Responses without an action type fall back to a composite keyword score.
"""

import logging
import re
from dataclasses import dataclass, replace
from enum import StrEnum

from dayplanner.models import ActionType

logger = logging.getLogger(__name__)


class GateDecision(StrEnum):
    EXECUTE = "execute"
    STAGE = "stage"
    CLARIFY = "clarify"
    NOOP = "noop"


@dataclass(frozen=True)
class GateThreshold:
    execute: float
    stage: float
    stages: bool = True  # False: the stage band asks a specific question instead


DEFAULT_THRESHOLDS: dict[ActionType, GateThreshold] = {
    ActionType.CREATE_EVENT: GateThreshold(execute=0.70, stage=0.50),
    ActionType.CREATE_GOAL: GateThreshold(execute=0.80, stage=0.60),
    ActionType.CREATE_PILLAR: GateThreshold(execute=0.85, stage=0.60, stages=False),
    ActionType.CREATE_CHAIN: GateThreshold(execute=0.75, stage=0.60),
}


@dataclass(frozen=True)
class CompositeWeights:
    execute_bar: float = 0.65
    scheduling_bonus: float = 0.20
    explicit_time_bonus: float = 0.20
    urgency_bonus: float = 0.15
    single_suggestion_bonus: float = 0.10
    recent_success_bonus: float = 0.10


SCHEDULING_PATTERN = (
    r"\b(?:schedule|book|add|create|plan|set up|arrange|put in|block|reserve|calendar|time for|remind me)\b"
)
TIME_PATTERNS = [
    r"\bat\s",
    r":\d{2}\b",
    r"\b\d{1,2}\s*(?:am|pm)\b",
    r"\b(?:am|pm)\b",
    r"\btomorrow\b",
    r"\btoday\b",
    r"\bnow\b",
    r"\bin\s+\d+",
]
URGENCY_PATTERN = r"\b(?:urgent|asap|immediately|now|quickly|soon|today)\b"


@dataclass
class GateSignals:
    """Auxiliary evidence used by the legacy composite score."""

    has_scheduling_keywords: bool = False
    has_explicit_time: bool = False
    has_urgency: bool = False
    suggestion_count: int = 0
    recent_success: bool = False

    @classmethod
    def from_text(cls, text: str, suggestion_count: int = 0, recent_success: bool = False) -> "GateSignals":
        lowered = (text or "").lower()
        return cls(
            has_scheduling_keywords=bool(re.search(SCHEDULING_PATTERN, lowered)),
            has_explicit_time=any(re.search(p, lowered) for p in TIME_PATTERNS),
            has_urgency=bool(re.search(URGENCY_PATTERN, lowered)),
            suggestion_count=suggestion_count,
            recent_success=recent_success,
        )


def normalize_action_type(value: ActionType | str | None) -> ActionType | None:
    """Accept enum members, snake_case values and camelCase names."""
    if value is None or isinstance(value, ActionType):
        return value
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", value.strip()).lower()
    try:
        return ActionType(snake)
    except ValueError:
        logger.warning(f"Unknown action type {value!r}, using composite scoring")
        return None


CLARIFY_QUESTIONS = {
    ActionType.CREATE_EVENT: "When should I schedule that, and for how long?",
    ActionType.CREATE_GOAL: "Tell me what you want to achieve, and I'll shape it into a goal.",
    ActionType.CREATE_PILLAR: "Tell me more about the pillar you want to build.",
    ActionType.CREATE_CHAIN: "Which activities should this chain include, and in what order?",
}
PILLAR_KIND_QUESTION = "Is this a recurring activity or a guiding principle?"
DEFAULT_QUESTION = "Could you say a bit more about what you'd like to do?"


class ConfidenceGate:
    """Pure decision function; holds only its threshold tables."""

    def __init__(
        self,
        thresholds: dict[ActionType, GateThreshold] | None = None,
        composite: CompositeWeights | None = None,
    ):
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        if thresholds:
            self.thresholds.update(thresholds)
        self.composite = composite or CompositeWeights()

    @classmethod
    def from_config(cls, gate_config: dict | None) -> "ConfidenceGate":
        """
        Build from the "gate" section of the config store. Only the numbers
        are configurable; whether an action type stages is fixed.
        """
        gate_config = gate_config or {}
        thresholds = {}
        for name, bands in gate_config.get("thresholds", {}).items():
            action = normalize_action_type(name)
            if action not in DEFAULT_THRESHOLDS:
                continue
            base = DEFAULT_THRESHOLDS[action]
            thresholds[action] = replace(
                base,
                execute=float(bands.get("execute", base.execute)),
                stage=float(bands.get("stage", base.stage)),
            )
        composite_values = gate_config.get("composite", {})
        composite = CompositeWeights(
            **{k: float(v) for k, v in composite_values.items() if k in CompositeWeights.__dataclass_fields__}
        )
        return cls(thresholds=thresholds, composite=composite)

    def composite_score(self, confidence: float, signals: GateSignals) -> float:
        """Mean of the raw confidence and the five signal contributions."""
        w = self.composite
        contributions = [
            confidence,
            w.scheduling_bonus if signals.has_scheduling_keywords else 0.0,
            w.explicit_time_bonus if signals.has_explicit_time else 0.0,
            w.urgency_bonus if signals.has_urgency else 0.0,
            w.single_suggestion_bonus if signals.suggestion_count == 1 else 0.0,
            w.recent_success_bonus if signals.recent_success else 0.0,
        ]
        return sum(contributions) / len(contributions)

    def decide(
        self,
        action_type: ActionType | str | None,
        confidence: float,
        signals: GateSignals | None = None,
    ) -> GateDecision:
        signals = signals or GateSignals()
        action = normalize_action_type(action_type)

        if action is None:
            score = self.composite_score(confidence, signals)
            decision = GateDecision.EXECUTE if score >= self.composite.execute_bar else GateDecision.STAGE
            logger.debug(f"Composite score {score:.3f} -> {decision}")
            return decision

        if action == ActionType.SUGGEST_ACTIVITIES:
            return GateDecision.STAGE
        if action == ActionType.GENERAL_CHAT:
            return GateDecision.STAGE if signals.suggestion_count > 0 else GateDecision.NOOP
        if action == ActionType.EDIT_MIND:
            return GateDecision.EXECUTE

        threshold = self.thresholds[action]
        if confidence >= threshold.execute:
            return GateDecision.EXECUTE
        if confidence >= threshold.stage and threshold.stages:
            return GateDecision.STAGE
        return GateDecision.CLARIFY

    def clarification_question(self, action_type: ActionType | str | None, confidence: float) -> str:
        action = normalize_action_type(action_type)
        if action == ActionType.CREATE_PILLAR and confidence >= self.thresholds[action].stage:
            return PILLAR_KIND_QUESTION
        return CLARIFY_QUESTIONS.get(action, DEFAULT_QUESTION)
