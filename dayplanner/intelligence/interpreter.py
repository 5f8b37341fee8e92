"""
Command Interpreter - one utterance in, exactly one outcome out.

Per utterance:
    Sent -> Responded | TimedOut | Failed -> Resolved

- Responded: the decoded reply goes through the confidence gate, then to
  the applier (execute), the staging list (stage) or back to the user as
  a question (clarify). A reply with no structured content is an
  abstention and the offline parser gets a turn.
- TimedOut / Failed: the offline parser runs on the same utterance. If it
  finds nothing actionable, the outcome is a "not applied" status line.

Backend failures never reach the caller. The only state carried between
utterances is the single pending clarification, and it is cleared the
moment the next utterance arrives.
"""

import logging
import threading
from concurrent import futures
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum

from dayplanner import config, config_store
from dayplanner.errors import BackendError, BackendTimeout, BackendUnreachable, MalformedResponse
from dayplanner.models import (
    ActionType,
    AIResponse,
    ApplyOutcome,
    ChainDraft,
    CreateGoal,
    CreatePillar,
    EventDraft,
    MindCommand,
    PillarReference,
    Suggestion,
    UpdatePillar,
    Utterance,
)
from dayplanner.observability.context import SOURCE_BACKEND, SOURCE_OFFLINE, UtteranceContext, mark_source
from dayplanner.observability.metrics import (
    backend_failures,
    malformed_responses,
    offline_fallbacks,
    outcome_counter,
    utterances_total,
)
from dayplanner.store import InMemoryMindStore
from dayplanner.intelligence.applier import CommandApplier, MindCommandApplier
from dayplanner.intelligence.backend import Backend, create_backend
from dayplanner.intelligence.confidence_gate import ConfidenceGate, GateDecision, GateSignals
from dayplanner.intelligence.entity_resolver import PILLAR, EntityResolver
from dayplanner.intelligence.offline_parser import OfflineCommandParser
from dayplanner.intelligence.prompts import build_prompt
from dayplanner.intelligence.response_decoder import decode_reply
from dayplanner.intelligence.text_fields import PillarLimits
from dayplanner.time_truth.slot_finder import ScheduleSlotFinder
from dayplanner.time_truth.temporal_parser import TemporalParser, parse_clock

logger = logging.getLogger(__name__)

STATUS_TIMED_OUT = "Planner engine timed out - request not applied."
STATUS_OFFLINE = "Planner engine offline - reconnect and try again."
STATUS_UNAVAILABLE = "Planner engine unavailable - try again soon."
STATUS_NO_CHANGES = "No changes applied"


class OutcomeKind(StrEnum):
    APPLIED = "applied"
    STAGED = "staged"
    CLARIFICATION = "clarification"
    STATUS = "status"


class InterpreterState(StrEnum):
    SENT = "sent"
    RESPONDED = "responded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    RESOLVED = "resolved"


@dataclass
class InterpreterOutcome:
    kind: OutcomeKind
    message: str
    utterance_id: str
    applied_messages: list[str] = field(default_factory=list)
    staged: list[Suggestion] = field(default_factory=list)
    clarification: str | None = None
    decision: GateDecision | None = None
    source: str = SOURCE_BACKEND
    states: list[InterpreterState] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "utterance_id": self.utterance_id,
            "applied_messages": list(self.applied_messages),
            "staged": [s.to_dict() for s in self.staged],
            "clarification": self.clarification,
            "decision": self.decision.value if self.decision else None,
            "source": self.source,
            "states": [s.value for s in self.states],
        }


class _TurnQueue:
    """Admits callers one at a time, in the order they arrived."""

    def __init__(self):
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0

    @contextmanager
    def turn(self) -> Iterator[int]:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        try:
            yield ticket
        finally:
            with self._cond:
                self._serving += 1
                self._cond.notify_all()


def _failure_status(error: BackendError) -> str:
    if isinstance(error, BackendTimeout):
        return STATUS_TIMED_OUT
    if isinstance(error, BackendUnreachable):
        return STATUS_OFFLINE
    return STATUS_UNAVAILABLE


def _align_tz(value: datetime, like: datetime) -> datetime:
    """Give value the same awareness as like so the two compare."""
    if value.tzinfo is None and like.tzinfo is not None:
        return value.replace(tzinfo=like.tzinfo)
    if value.tzinfo is not None and like.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _command_title(command: MindCommand) -> str:
    if isinstance(command, CreateGoal):
        return f"New goal: {command.title}"
    if isinstance(command, CreatePillar):
        return f"New pillar: {command.name}"
    if isinstance(command, UpdatePillar):
        return f"Update pillar {command.pillar.title or ''}".strip()
    return command.kind.replace("_", " ").capitalize()


class CommandInterpreter:
    """
    Orchestrates backend, offline parser, gate and applier.

    Concurrent handle() calls are served strictly in arrival order, so
    commands apply in the order their utterances were received.
    """

    def __init__(
        self,
        backend: Backend,
        applier: CommandApplier,
        store: InMemoryMindStore,
        offline_parser: OfflineCommandParser | None = None,
        gate: ConfidenceGate | None = None,
        temporal_parser: TemporalParser | None = None,
        slot_finder: ScheduleSlotFinder | None = None,
        limits: PillarLimits | None = None,
        suggestion_spacing: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = datetime.now,
        backend_timeout: float | None = None,
    ):
        self.backend = backend
        self.applier = applier
        self.store = store
        self.limits = limits or PillarLimits()
        self.offline_parser = offline_parser or OfflineCommandParser(self.limits)
        self.gate = gate or ConfidenceGate()
        self.temporal_parser = temporal_parser or TemporalParser()
        self.slot_finder = slot_finder or ScheduleSlotFinder()
        self.suggestion_spacing = suggestion_spacing
        self.clock = clock
        self.backend_timeout = backend_timeout or config.BACKEND_TIMEOUT_SECONDS

        self._turns = _TurnQueue()
        self._staged: list[Suggestion] = []
        self._pending_clarification: str | None = None

    @property
    def staged(self) -> list[Suggestion]:
        return list(self._staged)

    @property
    def pending_clarification(self) -> str | None:
        return self._pending_clarification

    # =========================================================================
    # UTTERANCES
    # =========================================================================

    def handle(self, utterance: Utterance) -> InterpreterOutcome:
        with self._turns.turn(), UtteranceContext(utterance.id):
            utterances_total.inc()
            answering = self._pending_clarification
            self._pending_clarification = None
            self._staged = []

            outcome = self._interpret(utterance, answering)
            outcome.states.append(InterpreterState.RESOLVED)
            if outcome.kind == OutcomeKind.CLARIFICATION:
                self._pending_clarification = outcome.clarification

            outcome_counter(outcome.kind.value).inc()
            logger.info(
                f"Resolved utterance as {outcome.kind}: {outcome.message}",
                extra={"source": outcome.source, "states": [s.value for s in outcome.states]},
            )
            return outcome

    def _interpret(self, utterance: Utterance, answering: str | None) -> InterpreterOutcome:
        states = [InterpreterState.SENT]
        snapshot = self.store.snapshot()
        prompt = build_prompt(utterance, snapshot, answering)

        try:
            reply = self._complete(prompt)
            response = decode_reply(reply, self.limits)
            states.append(InterpreterState.RESPONDED)
        except MalformedResponse as e:
            malformed_responses.inc()
            logger.warning(f"Backend reply rejected: {e}")
            states.append(InterpreterState.RESPONDED)
            response = AIResponse(text=e.raw_text)
        except BackendError as e:
            backend_failures.inc()
            states.append(InterpreterState.TIMED_OUT if isinstance(e, BackendTimeout) else InterpreterState.FAILED)
            logger.warning(f"Backend {self.backend.name} failed, using offline parser: {e}")
            return self._offline(utterance, snapshot, states, fallback_status=_failure_status(e))

        if not response.has_structured_content():
            logger.info("Backend abstained, consulting offline parser")
            return self._offline(utterance, snapshot, states, fallback_status=response.text or STATUS_NO_CHANGES)

        self._bind_pillar_references(response, utterance, snapshot)
        return self._route(utterance, response, SOURCE_BACKEND, states)

    def _complete(self, prompt: str) -> str:
        """
        Backend round trip under a wall-clock watchdog.

        Backends enforce their own transport timeout; this bounds the ones
        that don't. A call that overruns is abandoned on its worker thread.
        """
        pool = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="planner-backend")
        future = pool.submit(self.backend.complete, prompt)
        try:
            return future.result(timeout=self.backend_timeout)
        except futures.TimeoutError as e:
            future.cancel()
            raise BackendTimeout(
                f"{self.backend.name} gave no reply within {self.backend_timeout:g}s"
            ) from e
        finally:
            pool.shutdown(wait=False)

    def _offline(self, utterance, snapshot, states, fallback_status: str) -> InterpreterOutcome:
        offline_fallbacks.inc()
        mark_source(SOURCE_OFFLINE)
        response = self.offline_parser.parse(utterance, snapshot.goals, snapshot.pillars)
        if response.actionable_commands:
            return self._route(utterance, response, SOURCE_OFFLINE, states)
        return InterpreterOutcome(
            kind=OutcomeKind.STATUS,
            message=fallback_status,
            utterance_id=utterance.id,
            source=SOURCE_OFFLINE,
            states=states,
        )

    @staticmethod
    def _bind_pillar_references(response: AIResponse, utterance: Utterance, snapshot) -> None:
        """A bare pillar-field reply targets the pillar the utterance mentions."""
        unbound = [
            c for c in response.commands if isinstance(c, UpdatePillar) and not (c.pillar.id or c.pillar.title)
        ]
        if not unbound:
            return
        mention = EntityResolver.from_entities(pillars=snapshot.pillars).find_in_text(utterance.text, PILLAR)
        if mention is None:
            return
        for command in unbound:
            command.pillar = PillarReference(id=mention.entity_id, title=mention.entity_name)

    # =========================================================================
    # ROUTING
    # =========================================================================

    def _route(self, utterance: Utterance, response: AIResponse, source: str, states) -> InterpreterOutcome:
        signals = GateSignals.from_text(utterance.text, len(response.suggestions), utterance.recent_success)
        decision = self.gate.decide(response.action_type, response.confidence, signals)
        logger.info(
            f"Gate: {response.action_type or 'legacy'} at {response.confidence:.2f} -> {decision}",
            extra={"source": source},
        )
        outcome = InterpreterOutcome(
            kind=OutcomeKind.STATUS,
            message=STATUS_NO_CHANGES,
            utterance_id=utterance.id,
            decision=decision,
            source=source,
            states=states,
        )

        # A reply that only asks something is a question whatever its band.
        if response.clarification and not (
            response.actionable_commands or response.created_items or response.suggestions
        ):
            return self._ask(response.clarification, outcome)

        if decision == GateDecision.EXECUTE:
            return self._execute(utterance, response, outcome)
        if decision == GateDecision.STAGE:
            return self._stage(utterance, response, outcome)
        if decision == GateDecision.CLARIFY:
            question = response.clarification or self.gate.clarification_question(
                response.action_type, response.confidence
            )
            return self._ask(question, outcome)

        outcome.message = response.text or STATUS_NO_CHANGES
        return outcome

    @staticmethod
    def _ask(question: str, outcome: InterpreterOutcome) -> InterpreterOutcome:
        outcome.kind = OutcomeKind.CLARIFICATION
        outcome.clarification = question
        outcome.message = question
        return outcome

    def _execute(self, utterance: Utterance, response: AIResponse, outcome: InterpreterOutcome) -> InterpreterOutcome:
        result = self.applier.apply(response.commands)
        now = utterance.timestamp

        for item in response.created_items:
            if isinstance(item, EventDraft):
                start, explicit = self._event_start(utterance, item.start)
                if not explicit:
                    start = self._place(start, item.duration_seconds, now)
                result = result.merge(self.applier.schedule_event(item, start, auto_place=False, now=now))
            elif isinstance(item, ChainDraft):
                result = result.merge(self.applier.create_chain(item))

        if not response.created_items and response.action_type in (None, ActionType.CREATE_EVENT):
            result = result.merge(self._schedule_suggestions(utterance, response.suggestions))

        return self._resolve_applied(response, result, outcome)

    def _schedule_suggestions(self, utterance: Utterance, suggestions: list[Suggestion]) -> ApplyOutcome:
        """Place suggestions back to back, spaced apart, in the first free slots."""
        result = ApplyOutcome()
        now = utterance.timestamp
        cursor, explicit = self._event_start(utterance, None)
        for index, suggestion in enumerate(suggestions):
            start = _align_tz(suggestion.suggested_start, now) if suggestion.suggested_start else cursor
            if not (explicit and index == 0 and suggestion.suggested_start is None):
                start = self._place(start, suggestion.duration_seconds, now)
            draft = EventDraft(
                title=suggestion.title,
                duration_seconds=suggestion.duration_seconds,
                energy=suggestion.energy,
                emoji=suggestion.emoji,
            )
            result = result.merge(self.applier.schedule_event(draft, start, auto_place=False, now=now))
            cursor = start + suggestion.duration + self.suggestion_spacing
        return result

    def _resolve_applied(
        self, response: AIResponse, result: ApplyOutcome, outcome: InterpreterOutcome
    ) -> InterpreterOutcome:
        outcome.applied_messages = result.applied_messages
        if result.clarification:
            outcome.kind = OutcomeKind.CLARIFICATION
            outcome.clarification = result.clarification
            outcome.message = result.clarification
        elif result.applied_messages:
            outcome.kind = OutcomeKind.APPLIED
            outcome.message = response.summary or result.applied_messages[0]
        return outcome

    def _stage(self, utterance: Utterance, response: AIResponse, outcome: InterpreterOutcome) -> InterpreterOutcome:
        staged = list(response.suggestions)
        for command in response.actionable_commands:
            staged.append(
                Suggestion(
                    title=_command_title(command),
                    duration_seconds=0,
                    confidence=response.confidence,
                    explanation=response.summary or response.text,
                    payload=command,
                )
            )
        for item in response.created_items:
            if isinstance(item, EventDraft):
                start, explicit = self._event_start(utterance, item.start)
                if not explicit:
                    start = self._place(start, item.duration_seconds, utterance.timestamp)
                staged.append(
                    Suggestion(
                        title=item.title,
                        duration_seconds=item.duration_seconds,
                        energy=item.energy,
                        emoji=item.emoji,
                        confidence=response.confidence,
                        explanation=response.text,
                        suggested_start=start,
                    )
                )
            elif isinstance(item, ChainDraft):
                staged.append(
                    Suggestion(
                        title=item.name,
                        duration_seconds=item.total_seconds,
                        emoji=item.emoji,
                        confidence=response.confidence,
                        explanation=response.text,
                        payload=item,
                    )
                )

        if not staged:
            outcome.message = response.text or STATUS_NO_CHANGES
            return outcome

        self._staged = staged
        outcome.kind = OutcomeKind.STAGED
        outcome.staged = list(staged)
        outcome.message = response.text or f"{len(staged)} suggestion(s) ready for review"
        return outcome

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    def _event_start(self, utterance: Utterance, proposed: datetime | None) -> tuple[datetime, bool]:
        """
        Start for an event plus whether the user named the clock time.

        A named time is kept as is; anything defaulted goes through the
        slot finder.
        """
        reference = utterance.reference
        parsed = self.temporal_parser.parse(utterance.text, reference, now=utterance.timestamp)
        explicit = bool(parsed and parsed.has_explicit_time)
        if proposed is not None:
            return _align_tz(proposed, reference), explicit
        if parsed is not None:
            return parsed.date, explicit
        return reference, False

    def _place(self, start: datetime, duration_seconds: int, now: datetime) -> datetime:
        return self.slot_finder.find_slot(start, duration_seconds, self.store.blocks_on(start.date()), now)

    # =========================================================================
    # STAGED SUGGESTIONS
    # =========================================================================

    def accept_suggestion(self, suggestion_id: str) -> ApplyOutcome:
        """
        Apply one staged suggestion. Creations apply verbatim; activities
        go to the first free slot at or after their suggested start.

        Raises:
            KeyError: no staged suggestion has that id
        """
        with self._turns.turn():
            suggestion = self._take(suggestion_id)
            payload = suggestion.payload
            if isinstance(payload, ChainDraft):
                result = self.applier.create_chain(payload)
            elif payload is not None:
                result = self.applier.apply([payload])
            else:
                now = self.clock()
                start = _align_tz(suggestion.suggested_start, now) if suggestion.suggested_start else now
                draft = EventDraft(
                    title=suggestion.title,
                    duration_seconds=suggestion.duration_seconds,
                    energy=suggestion.energy,
                    emoji=suggestion.emoji,
                )
                result = self.applier.schedule_event(draft, start, auto_place=True, now=now)
            logger.info(f"Accepted suggestion {suggestion_id}: {suggestion.title}")
            return result

    def reject_suggestion(self, suggestion_id: str) -> Suggestion:
        """
        Raises:
            KeyError: no staged suggestion has that id
        """
        with self._turns.turn():
            suggestion = self._take(suggestion_id)
            logger.info(f"Rejected suggestion {suggestion_id}: {suggestion.title}")
            return suggestion

    def _take(self, suggestion_id: str) -> Suggestion:
        for index, suggestion in enumerate(self._staged):
            if suggestion.id == suggestion_id:
                return self._staged.pop(index)
        raise KeyError(f"No staged suggestion {suggestion_id}")


def build_interpreter(
    backend: Backend | None = None,
    store: InMemoryMindStore | None = None,
) -> CommandInterpreter:
    """Wire an interpreter from the config store and environment."""
    cfg = config_store.load_config()
    scheduling = cfg.get("scheduling", {})
    limits = PillarLimits.from_config(cfg.get("pillar_limits"))
    store = store or InMemoryMindStore()
    slot_finder = ScheduleSlotFinder()

    preferred = scheduling.get("preferred_start")
    return CommandInterpreter(
        backend=backend or create_backend(),
        applier=MindCommandApplier(store, limits, slot_finder),
        store=store,
        offline_parser=OfflineCommandParser(limits),
        gate=ConfidenceGate.from_config(cfg.get("gate")),
        temporal_parser=TemporalParser(parse_clock(preferred) if preferred else None),
        slot_finder=slot_finder,
        limits=limits,
        suggestion_spacing=timedelta(minutes=int(scheduling.get("suggestion_spacing_minutes", 30))),
    )
