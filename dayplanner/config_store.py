"""
Day Planner - Configuration Store

Persistent configuration for the tunable parts of the mind engine:
- Confidence gate thresholds per action type
- Legacy composite scoring weights
- Scheduling preferences
- Pillar field limits
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dayplanner import paths

logger = logging.getLogger(__name__)


def _config_file() -> Path:
    return paths.config_dir() / "config.json"


def _history_file() -> Path:
    return paths.config_dir() / "config_history.json"


def _default_config() -> dict:
    """
    Default configuration.
    Thresholds favor staging and clarifying over acting on a weak signal.
    """
    return {
        "version": 1,
        "created_at": datetime.now(UTC).isoformat(),
        "updated_at": datetime.now(UTC).isoformat(),
        # ===== A) Confidence gate =====
        "gate": {
            "thresholds": {
                "create_event": {"execute": 0.70, "stage": 0.50},
                "create_goal": {"execute": 0.80, "stage": 0.60},
                "create_pillar": {"execute": 0.85, "stage": 0.60},
                "create_chain": {"execute": 0.75, "stage": 0.60},
            },
            "composite": {
                "execute_bar": 0.65,
                "scheduling_bonus": 0.20,
                "explicit_time_bonus": 0.20,
                "urgency_bonus": 0.15,
                "single_suggestion_bonus": 0.10,
                "recent_success_bonus": 0.10,
            },
        },
        # ===== B) Scheduling preferences =====
        "scheduling": {
            "preferred_start": "08:00",
            "suggestion_spacing_minutes": 30,
        },
        # ===== C) Pillar field limits =====
        "pillar_limits": {
            "name_chars": 24,
            "description_chars": 200,
            "wisdom_chars": 100,
            "item_chars": 50,
            "max_values": 5,
            "max_habits": 5,
            "max_constraints": 4,
            "max_quiet_hours": 3,
        },
    }


def load_config() -> dict:
    """Load configuration from disk."""
    config_file = _config_file()
    if config_file.exists():
        try:
            return json.loads(config_file.read_text())
        except json.JSONDecodeError:
            logger.warning(f"Unreadable config at {config_file}, using defaults")
            return _default_config()

    config = _default_config()
    save_config(config, "Initial config creation")
    return config


def save_config(config: dict, reason: str = None) -> None:
    """Save configuration to disk with history."""
    config["updated_at"] = datetime.now(UTC).isoformat()
    _log_config_change(config, reason)
    _config_file().write_text(json.dumps(config, indent=2))


def get(path: str, default: Any = None) -> Any:
    """
    Get a config value by dot-separated path.

    Example: get("gate.thresholds.create_goal.execute")
    """
    value = load_config()
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return default
    return value


def set(path: str, value: Any, reason: str = None) -> dict:
    """
    Set a config value by dot-separated path.

    Example: set("scheduling.preferred_start", "07:30")
    """
    config = load_config()
    parts = path.split(".")

    current = config
    for part in parts[:-1]:
        if part not in current:
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value

    save_config(config, reason or f"Set {path}")
    return config


def _log_config_change(config: dict, reason: str = None) -> None:
    """Append a change record for audit."""
    history_file = _history_file()
    history = []
    if history_file.exists():
        try:
            history = json.loads(history_file.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load config history: {e}")
            history = []

    history.append(
        {
            "timestamp": datetime.now(UTC).isoformat(),
            "reason": reason,
            "config_hash": hash(json.dumps(config, sort_keys=True)),
        }
    )
    history_file.write_text(json.dumps(history[-500:], indent=2))


def validate_config(config: dict) -> tuple[bool, list[str]]:
    """Validate configuration structure and values."""
    errors = []

    for key in ("gate", "scheduling", "pillar_limits"):
        if key not in config:
            errors.append(f"Missing required key: {key}")

    thresholds = config.get("gate", {}).get("thresholds", {})
    for action, bands in thresholds.items():
        execute = bands.get("execute")
        stage = bands.get("stage")
        if execute is None or not (0.0 <= execute <= 1.0):
            errors.append(f"Threshold {action}.execute must be within [0, 1]")
        if stage is not None and execute is not None and stage > execute:
            errors.append(f"Threshold {action}.stage {stage} exceeds execute {execute}")

    preferred = config.get("scheduling", {}).get("preferred_start", "08:00")
    try:
        datetime.strptime(preferred, "%H:%M")
    except (TypeError, ValueError):
        errors.append(f"scheduling.preferred_start is not HH:MM: {preferred!r}")

    return len(errors) == 0, errors
