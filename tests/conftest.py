"""
Test configuration - repo root on sys.path plus isolation guards.

Every test gets its own PLANNER_HOME and no Anthropic credentials, so no
test can touch a real config file or reach the network.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import dayplanner.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dayplanner.errors import BackendTimeout  # noqa: E402
from dayplanner.models import Utterance  # noqa: E402
from dayplanner.store import InMemoryMindStore, Pillar  # noqa: E402

REFERENCE = datetime(2025, 9, 23, 10, 0)  # a Tuesday


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("PLANNER_HOME", str(tmp_path / "planner"))
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return tmp_path / "planner"


@pytest.fixture
def reference() -> datetime:
    return REFERENCE


@pytest.fixture
def store() -> InMemoryMindStore:
    return InMemoryMindStore()


@pytest.fixture
def deep_work(store) -> Pillar:
    return store.add_pillar(Pillar(name="Deep Work", description="Focused blocks"))


def make_utterance(text: str, when: datetime = REFERENCE, **kwargs) -> Utterance:
    return Utterance(text=text, timestamp=when, reference_date=when.date(), **kwargs)


class ScriptedBackend:
    """Backend double: returns queued replies in order, raising any queued exception."""

    name = "scripted"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else BackendTimeout("no reply scripted")
        if isinstance(reply, Exception):
            raise reply
        return reply

    def ping(self) -> bool:
        return True


@pytest.fixture
def utterance():
    """Factory: utterance("text", when=..., recent_success=...)."""
    return make_utterance


@pytest.fixture
def scripted_backend():
    """Factory: scripted_backend(reply_or_exception, ...)."""
    return ScriptedBackend
