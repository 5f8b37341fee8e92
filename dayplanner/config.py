"""
Centralized configuration for the Day Planner mind engine.

All values that vary by deployment belong here.
Override via environment variables where marked.
"""

import os

# ============================================================
# Remote backend
# ============================================================

BACKEND_PROVIDER: str = os.environ.get("PLANNER_BACKEND", "anthropic")
"""Which remote backend answers utterances: "anthropic" or "local" (OpenAI-compatible server)."""

ANTHROPIC_MODEL: str = os.environ.get("PLANNER_ANTHROPIC_MODEL", "claude-3-haiku-20240307")
"""Model used by the Anthropic backend."""

ANTHROPIC_API_KEY_ENV: str = "ANTHROPIC_API_KEY"
"""Environment variable holding the Anthropic API key. Missing key means the backend is unreachable."""

LOCAL_BASE_URL: str = os.environ.get("PLANNER_LOCAL_BASE_URL", "http://localhost:1234")
"""Base URL of the local OpenAI-compatible server (LM Studio, llama.cpp, Ollama)."""

LOCAL_MODEL: str = os.environ.get("PLANNER_LOCAL_MODEL", "openai/gpt-oss-20b")
"""Model name sent to the local server."""

BACKEND_TIMEOUT_SECONDS: float = float(os.environ.get("PLANNER_BACKEND_TIMEOUT", "20"))
"""Upper bound for one backend round trip. On expiry the offline parser answers instead."""

BACKEND_MAX_TOKENS: int = int(os.environ.get("PLANNER_BACKEND_MAX_TOKENS", "1024"))
"""Completion budget per utterance."""

BACKEND_TEMPERATURE: float = float(os.environ.get("PLANNER_BACKEND_TEMPERATURE", "0.3"))
"""Sampling temperature for the local backend."""

# ============================================================
# Scheduling defaults
# ============================================================

PREFERRED_START_TIME: str = os.environ.get("PLANNER_PREFERRED_START", "08:00")
"""Start time used when an utterance names a day but no time (HH:MM)."""

DEFAULT_BLOCK_MINUTES: int = int(os.environ.get("PLANNER_DEFAULT_BLOCK_MINUTES", "60"))
"""Duration given to an event whose length the user did not state."""

DEFAULT_ENERGY: str = os.environ.get("PLANNER_DEFAULT_ENERGY", "daylight")
"""Energy level reported to the backend when the caller supplies none."""

DEFAULT_MOOD: str = os.environ.get("PLANNER_DEFAULT_MOOD", "clear")
"""Mood reported to the backend when the caller supplies none."""

# ============================================================
# Logging
# ============================================================

LOG_LEVEL: str = os.environ.get("PLANNER_LOG_LEVEL", "INFO")
"""Root log level passed to configure_logging()."""

LOG_JSON: str = os.environ.get("PLANNER_LOG_JSON", "")
"""Force JSON ("1") or human ("0") log output. Empty auto-detects from the TTY."""


def log_json_flag() -> bool | None:
    """Interpret LOG_JSON as a tri-state flag."""
    if LOG_JSON == "":
        return None
    return LOG_JSON.lower() in ("1", "true", "yes")
