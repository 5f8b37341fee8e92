"""
Per-utterance context for log lines.

One UtteranceContext wraps each CommandInterpreter.handle() call. Log lines
emitted inside it carry the utterance id and which path is answering it:
the remote backend first, the offline parser once the interpreter falls back.
"""

import contextvars
import uuid
from dataclasses import dataclass
from typing import Optional

SOURCE_BACKEND = "backend"
SOURCE_OFFLINE = "offline"


@dataclass
class UtteranceScope:
    utterance_id: str
    source: str = SOURCE_BACKEND


_scope_var: contextvars.ContextVar[Optional[UtteranceScope]] = contextvars.ContextVar(
    "utterance_scope", default=None
)


def generate_utterance_id() -> str:
    return f"utt-{uuid.uuid4().hex[:16]}"


def current_scope() -> Optional[UtteranceScope]:
    return _scope_var.get()


def get_utterance_id() -> Optional[str]:
    """Id of the utterance being interpreted, or None outside handle()."""
    scope = _scope_var.get()
    return scope.utterance_id if scope else None


def mark_source(source: str) -> None:
    """Record that the current utterance is now answered by `source`. No-op outside a scope."""
    scope = _scope_var.get()
    if scope is not None:
        scope.source = source


class UtteranceContext:
    """
    Context manager scoping log lines to one utterance.

    Usage:
        with UtteranceContext(utterance.id):
            logger.info("Interpreting")        # utterance_id=utt-..., source=backend
            mark_source(SOURCE_OFFLINE)
            logger.info("Parsed offline")      # source=offline

    Nested contexts restore the outer scope on exit.
    """

    def __init__(self, utterance_id: Optional[str] = None):
        self.scope = UtteranceScope(utterance_id or generate_utterance_id())
        self._token: Optional[contextvars.Token] = None

    @property
    def utterance_id(self) -> str:
        return self.scope.utterance_id

    def __enter__(self) -> "UtteranceContext":
        self._token = _scope_var.set(self.scope)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _scope_var.reset(self._token)
