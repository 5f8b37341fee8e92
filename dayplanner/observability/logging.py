"""
Structured JSON logging tagged with the current utterance.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from dayplanner import config

from .context import current_scope

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {
        "timestamp": "2025-09-23T10:30:00.000Z",
        "level": "INFO",
        "logger": "dayplanner.intelligence.interpreter",
        "message": "Utterance resolved",
        "utterance_id": "utt-abc123",
        "source": "backend",
        "outcome": "applied",
        ...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        scope = current_scope()
        if scope is not None:
            log_obj["utterance_id"] = scope.utterance_id
            log_obj["source"] = scope.source

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_obj[key] = value

        return json.dumps(log_obj, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for local development."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        scope = current_scope()
        tag = f"[{scope.utterance_id[:12]} {scope.source}] " if scope else ""
        return f"{timestamp} [{record.levelname}] {record.name}: {tag}{record.getMessage()}"


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to PLANNER_LOG_LEVEL.
        json_format: Use JSON format. If None, PLANNER_LOG_JSON decides,
            then whether stderr is a terminal.
    """
    level = level or config.LOG_LEVEL
    if json_format is None:
        json_format = config.log_json_flag()
    if json_format is None:
        json_format = not sys.stderr.isatty()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("Staged suggestions", extra={"count": 2})
    """
    return logging.getLogger(name)
