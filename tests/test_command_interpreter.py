"""
Tests for CommandInterpreter - one utterance in, exactly one outcome out.
"""

import json
import threading
import time
from datetime import datetime, timedelta

import pytest

from dayplanner import config
from dayplanner.errors import BackendError, BackendTimeout, BackendUnreachable
from dayplanner.store import TimeBlock
from dayplanner.observability.metrics import malformed_responses, offline_fallbacks
from dayplanner.intelligence.applier import MindCommandApplier
from dayplanner.intelligence.confidence_gate import (
    PILLAR_KIND_QUESTION,
    CompositeWeights,
    ConfidenceGate,
    GateDecision,
)
from dayplanner.intelligence.interpreter import (
    STATUS_OFFLINE,
    STATUS_TIMED_OUT,
    STATUS_UNAVAILABLE,
    SOURCE_BACKEND,
    SOURCE_OFFLINE,
    CommandInterpreter,
    InterpreterState,
    OutcomeKind,
    build_interpreter,
)
from conftest import REFERENCE


def reply(**fields) -> str:
    return "Done. " + json.dumps(fields)


@pytest.fixture
def build(store, scripted_backend):
    """Factory: build(*replies, gate=None) -> (interpreter, backend)."""

    def _build(*replies, gate=None):
        backend = scripted_backend(*replies)
        interpreter = CommandInterpreter(
            backend=backend,
            applier=MindCommandApplier(store),
            store=store,
            gate=gate,
            clock=lambda: REFERENCE,
        )
        return interpreter, backend

    return _build


class TestExecute:
    def test_named_time_is_honored(self, build, store, utterance):
        store.add_block(TimeBlock(title="Run", start=datetime(2025, 9, 24, 7, 0), duration_seconds=1800))
        interpreter, _ = build(
            reply(action_type="create_event", confidence=0.9, event={"title": "Gym", "duration_minutes": 45})
        )
        outcome = interpreter.handle(utterance("gym tomorrow at 7am"))

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.decision == GateDecision.EXECUTE
        assert outcome.source == SOURCE_BACKEND
        assert outcome.message == "Scheduled 📅 Gym on Wed Sep 24 at 07:00"
        assert outcome.states == [InterpreterState.SENT, InterpreterState.RESPONDED, InterpreterState.RESOLVED]

    def test_defaulted_time_moves_to_free_slot(self, build, store, utterance):
        store.add_block(TimeBlock(title="Standup", start=datetime(2025, 9, 24, 8, 0), duration_seconds=3600))
        interpreter, _ = build(
            reply(action_type="create_event", confidence=0.9, event={"title": "Gym", "duration_minutes": 45})
        )
        outcome = interpreter.handle(utterance("gym session tomorrow"))

        assert outcome.applied_messages == ["Scheduled 📅 Gym on Wed Sep 24 at 09:00"]
        assert [b.title for b in store.blocks_on(datetime(2025, 9, 24).date())] == ["Standup", "Gym"]

    def test_summary_becomes_message(self, build, store, deep_work, utterance):
        interpreter, _ = build(
            reply(
                action_type="edit_mind",
                confidence=0.4,
                summary="Deep Work now tracks journaling",
                commands=[{"type": "update_pillar", "pillar_id": deep_work.id, "updates": {"habits": ["journal"]}}],
            )
        )
        outcome = interpreter.handle(utterance("deep work should track journaling"))

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.message == "Deep Work now tracks journaling"
        assert outcome.applied_messages == ["Updated Deep Work: habits"]
        assert deep_work.habits == ["journal"]

    def test_bare_pillar_fields_bind_to_mentioned_pillar(self, build, deep_work, utterance):
        interpreter, _ = build('{"habits": ["journal"]}')
        outcome = interpreter.handle(utterance("for Deep Work I want to journal"))

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.applied_messages == ["Updated Deep Work: habits"]

    def test_legacy_execute_spaces_suggestions(self, build, store, utterance):
        gate = ConfidenceGate(composite=CompositeWeights(execute_bar=0.0))
        interpreter, _ = build(
            reply(
                response="Booked two blocks",
                confidence=0.9,
                suggestions=[
                    {"title": "Walk", "duration_minutes": 30},
                    {"title": "Read", "duration_minutes": 20},
                ],
            ),
            gate=gate,
        )
        outcome = interpreter.handle(utterance("plan something for me"))

        assert outcome.applied_messages == [
            "Scheduled 📅 Walk on Tue Sep 23 at 10:00",
            "Scheduled 📅 Read on Tue Sep 23 at 11:00",
        ]

    def test_unknown_reference_turns_into_question(self, build, utterance):
        interpreter, _ = build(
            reply(
                action_type="edit_mind",
                confidence=0.9,
                commands=[{"type": "update_goal", "goal_title": "Ghost", "updates": {"focus": "x"}}],
            )
        )
        outcome = interpreter.handle(utterance("ghost goal focus on x"))

        assert outcome.kind == OutcomeKind.CLARIFICATION
        assert interpreter.pending_clarification == outcome.clarification


class TestStage:
    def test_suggestions_wait_for_acceptance(self, build, store, utterance):
        interpreter, _ = build(
            reply(
                response="Here are some ideas",
                action_type="suggest_activities",
                confidence=0.95,
                suggestions=[
                    {"title": "Walk", "duration_minutes": 30},
                    {"title": "Read", "duration_minutes": 20},
                ],
            )
        )
        outcome = interpreter.handle(utterance("what should I do this afternoon"))

        assert outcome.kind == OutcomeKind.STAGED
        assert outcome.message == "Here are some ideas"
        assert [s.title for s in interpreter.staged] == ["Walk", "Read"]
        assert store.snapshot().blocks == []

        walk, read = outcome.staged
        accepted = interpreter.accept_suggestion(walk.id)
        assert accepted.applied_messages == ["Scheduled 📅 Walk on Tue Sep 23 at 10:00"]
        assert interpreter.reject_suggestion(read.id) is read
        assert interpreter.staged == []
        assert len(store.snapshot().blocks) == 1

    def test_mid_confidence_goal_is_staged_as_creation(self, build, store, utterance):
        interpreter, _ = build(
            reply(action_type="create_goal", confidence=0.7, goal={"title": "Learn Spanish"})
        )
        outcome = interpreter.handle(utterance("maybe I should learn spanish"))

        [suggestion] = outcome.staged
        assert suggestion.title == "New goal: Learn Spanish"
        assert store.goals() == []

        result = interpreter.accept_suggestion(suggestion.id)
        assert result.applied_messages == ["Created goal 📚 Learn Spanish"]
        assert [g.title for g in store.goals()] == ["Learn Spanish"]

    def test_mid_confidence_chain_is_staged(self, build, store, utterance):
        interpreter, _ = build(
            reply(
                action_type="create_chain",
                confidence=0.65,
                chain={"name": "Focus sprint", "blocks": [{"title": "Plan", "duration_minutes": 10}]},
            )
        )
        outcome = interpreter.handle(utterance("a focus sprint chain"))
        [suggestion] = outcome.staged
        assert suggestion.duration_seconds == 600

        interpreter.accept_suggestion(suggestion.id)
        assert [c.name for c in store.chains()] == ["Focus sprint"]

    def test_legacy_reply_stages(self, build, utterance):
        interpreter, _ = build(reply(response="Try these", suggestions=[{"title": "Nap", "duration_minutes": 20}]))
        outcome = interpreter.handle(utterance("schedule a nap now"))
        assert outcome.kind == OutcomeKind.STAGED

    def test_next_utterance_discards_staged(self, build, utterance):
        interpreter, _ = build(
            reply(action_type="suggest_activities", suggestions=[{"title": "Walk", "duration_minutes": 30}]),
            "Okay.",
        )
        staged = interpreter.handle(utterance("ideas?")).staged
        interpreter.handle(utterance("never mind"))

        assert interpreter.staged == []
        with pytest.raises(KeyError):
            interpreter.accept_suggestion(staged[0].id)

    def test_unknown_suggestion(self, build):
        interpreter, _ = build()
        with pytest.raises(KeyError):
            interpreter.reject_suggestion("sug-missing")


class TestClarify:
    def test_pillar_question_is_carried_to_next_prompt(self, build, utterance):
        interpreter, backend = build(
            reply(action_type="create_pillar", confidence=0.7, pillar={"name": "Mornings"}),
            "Noted.",
        )
        first = interpreter.handle(utterance("mornings matter to me"))
        assert first.kind == OutcomeKind.CLARIFICATION
        assert first.message == PILLAR_KIND_QUESTION
        assert interpreter.pending_clarification == PILLAR_KIND_QUESTION

        second = interpreter.handle(utterance("a recurring activity"))
        assert PILLAR_KIND_QUESTION in backend.prompts[1]
        assert PILLAR_KIND_QUESTION not in backend.prompts[0]
        assert second.kind == OutcomeKind.STATUS
        assert interpreter.pending_clarification is None

    def test_backend_question_wins(self, build, utterance):
        interpreter, _ = build(
            reply(
                action_type="create_event",
                confidence=0.2,
                commands=[{"type": "ask_clarification", "question": "Which day?"}],
            )
        )
        outcome = interpreter.handle(utterance("put something in"))
        assert outcome.clarification == "Which day?"

    @pytest.mark.parametrize("action_type", [None, "general_chat"])
    def test_question_only_reply_is_asked(self, build, utterance, action_type):
        """A lone ask_clarification is surfaced even when the gate would stage or drop it."""
        fields = {"response": "Hmm", "commands": [{"type": "ask_clarification", "question": "Which goal?"}]}
        if action_type:
            fields["action_type"] = action_type
        interpreter, backend = build(json.dumps(fields), "Noted.")

        outcome = interpreter.handle(utterance("move it up"))
        assert outcome.kind == OutcomeKind.CLARIFICATION
        assert outcome.message == "Which goal?"
        assert outcome.source == SOURCE_BACKEND
        assert interpreter.pending_clarification == "Which goal?"

        interpreter.handle(utterance("the podcast one"))
        assert "Which goal?" in backend.prompts[1]


class TestFallback:
    def test_timeout_uses_offline_parser(self, build, deep_work, utterance):
        interpreter, _ = build(BackendTimeout("slow"))
        outcome = interpreter.handle(utterance("Deep Work: add values focus, craft"))

        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.source == SOURCE_OFFLINE
        assert outcome.message == "Adjusted Deep Work: values"
        assert outcome.states == [InterpreterState.SENT, InterpreterState.TIMED_OUT, InterpreterState.RESOLVED]
        assert deep_work.values == ["focus", "craft"]

    @pytest.mark.parametrize(
        "error,status,state",
        [
            (BackendTimeout("slow"), STATUS_TIMED_OUT, InterpreterState.TIMED_OUT),
            (BackendUnreachable("refused"), STATUS_OFFLINE, InterpreterState.FAILED),
            (BackendError("odd"), STATUS_UNAVAILABLE, InterpreterState.FAILED),
        ],
    )
    def test_failure_without_offline_result(self, build, utterance, error, status, state):
        interpreter, _ = build(error)
        outcome = interpreter.handle(utterance("hmm"))

        assert outcome.kind == OutcomeKind.STATUS
        assert outcome.message == status
        assert state in outcome.states
        assert interpreter.pending_clarification is None

    def test_backend_that_never_answers_times_out(self, store, deep_work, utterance):
        """A backend ignoring its own timeout is cut off by the interpreter."""

        class StuckBackend:
            name = "stuck"

            def __init__(self):
                self.release = threading.Event()

            def complete(self, prompt):
                self.release.wait(timeout=5)
                return "too late"

            def ping(self):
                return True

        backend = StuckBackend()
        interpreter = CommandInterpreter(
            backend=backend,
            applier=MindCommandApplier(store),
            store=store,
            backend_timeout=0.05,
        )
        try:
            started = time.monotonic()
            outcome = interpreter.handle(utterance("Deep Work: add values focus"))
            elapsed = time.monotonic() - started
        finally:
            backend.release.set()

        assert elapsed < 2
        assert InterpreterState.TIMED_OUT in outcome.states
        assert outcome.source == SOURCE_OFFLINE
        assert deep_work.values == ["focus"]

    def test_timeout_defaults_to_config(self, build):
        interpreter, _ = build()
        assert interpreter.backend_timeout == config.BACKEND_TIMEOUT_SECONDS

    def test_malformed_reply_falls_back(self, build, store, utterance):
        before = malformed_responses.value
        interpreter, _ = build('Sure! {"action_type": "teleport"}')
        outcome = interpreter.handle(utterance("create a goal to learn piano"))

        assert malformed_responses.value == before + 1
        assert outcome.kind == OutcomeKind.APPLIED
        assert outcome.source == SOURCE_OFFLINE
        assert [g.title for g in store.goals()] == ["Learn piano"]

    def test_plain_text_reply_is_shown_when_nothing_parses(self, build, utterance):
        before = offline_fallbacks.value
        interpreter, _ = build("Have a lovely day!")
        outcome = interpreter.handle(utterance("thanks"))

        assert outcome.kind == OutcomeKind.STATUS
        assert outcome.message == "Have a lovely day!"
        assert offline_fallbacks.value == before + 1


class TestOrdering:
    def test_outcome_per_utterance(self, build, utterance):
        interpreter, _ = build("One.", BackendTimeout("slow"), "Three.")
        outcomes = [interpreter.handle(utterance(text)) for text in ("a", "b", "c")]
        assert [o.states[-1] for o in outcomes] == [InterpreterState.RESOLVED] * 3
        assert len({o.utterance_id for o in outcomes}) == 3

    def test_concurrent_utterances_apply_in_arrival_order(self, store, utterance):
        class GatedBackend:
            name = "gated"

            def __init__(self):
                self.entered = threading.Event()
                self.release = threading.Event()

            def complete(self, prompt):
                self.entered.set()
                self.release.wait(timeout=5)
                raise BackendTimeout("held")

            def ping(self):
                return True

        backend = GatedBackend()
        interpreter = CommandInterpreter(backend=backend, applier=MindCommandApplier(store), store=store)

        first = threading.Thread(target=interpreter.handle, args=(utterance("new goal alpha"),))
        second = threading.Thread(target=interpreter.handle, args=(utterance("new goal beta"),))
        first.start()
        assert backend.entered.wait(timeout=5)
        second.start()
        time.sleep(0.05)
        backend.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert [g.title for g in store.goals()] == ["Alpha", "Beta"]

    def test_outcome_to_dict(self, build, utterance):
        interpreter, _ = build("Hello.")
        data = interpreter.handle(utterance("hi")).to_dict()
        assert data["kind"] == "status"
        assert data["states"][-1] == "resolved"


class TestBuildInterpreter:
    def test_wires_from_config(self, scripted_backend):
        interpreter = build_interpreter(backend=scripted_backend())
        assert interpreter.suggestion_spacing == timedelta(minutes=30)
        assert interpreter.gate.composite.execute_bar == 0.65
        assert interpreter.limits.max_values == 5
        assert interpreter.backend.name == "scripted"
