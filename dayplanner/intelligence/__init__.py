"""
Day Planner conversational intelligence layer.

Turns free-text utterances into changes to goals, pillars, chains and the
calendar:
- Remote backend reply decoding (strict, pydantic)
- Offline rule-based command parsing when the backend fails or abstains
- Confidence gating (execute, stage, clarify)
- Command application against the domain store

Usage:
    from dayplanner.intelligence import build_interpreter
    interpreter = build_interpreter()
    outcome = interpreter.handle(utterance)

    # Individual components
    from dayplanner.intelligence import OfflineCommandParser, ConfidenceGate
"""

from .applier import CommandApplier, MindCommandApplier
from .backend import AnthropicBackend, Backend, LocalBackend, create_backend
from .confidence_gate import ConfidenceGate, GateDecision, GateSignals, GateThreshold
from .entity_resolver import EntityResolver, ResolvedEntity
from .interpreter import (
    CommandInterpreter,
    InterpreterOutcome,
    InterpreterState,
    OutcomeKind,
    build_interpreter,
)
from .offline_parser import OfflineCommandParser
from .response_decoder import decode_reply, normalize_commands

__all__ = [
    # Interpreter
    "CommandInterpreter",
    "InterpreterOutcome",
    "InterpreterState",
    "OutcomeKind",
    "build_interpreter",
    # Applier
    "CommandApplier",
    "MindCommandApplier",
    # Backends
    "Backend",
    "AnthropicBackend",
    "LocalBackend",
    "create_backend",
    # Parsing and gating
    "OfflineCommandParser",
    "EntityResolver",
    "ResolvedEntity",
    "ConfidenceGate",
    "GateDecision",
    "GateSignals",
    "GateThreshold",
    "decode_reply",
    "normalize_commands",
]
