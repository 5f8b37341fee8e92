"""
Observability module: structured logging, utterance context, health checks, metrics.

Usage:
    from dayplanner.observability import get_logger, UtteranceContext, HealthChecker

    logger = get_logger(__name__)

    with UtteranceContext(utterance.id):
        logger.info("Interpreting utterance")

    health = HealthChecker()
    health.add_check("backend", backend_check(backend))
    report = health.run_all()

Metrics:
    from dayplanner.observability import REGISTRY, utterances_total

    utterances_total.inc()
    print(REGISTRY.to_prometheus())
"""

from .context import (
    SOURCE_BACKEND,
    SOURCE_OFFLINE,
    UtteranceContext,
    current_scope,
    generate_utterance_id,
    get_utterance_id,
    mark_source,
)
from .health import HealthChecker, HealthReport, HealthStatus, backend_check, store_check
from .logging import HumanFormatter, JSONFormatter, configure_logging, get_logger
from .metrics import (
    REGISTRY,
    Counter,
    Histogram,
    backend_failures,
    backend_latency,
    malformed_responses,
    offline_fallbacks,
    outcome_counter,
    timed,
    utterances_total,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "JSONFormatter",
    "HumanFormatter",
    # Context
    "UtteranceContext",
    "SOURCE_BACKEND",
    "SOURCE_OFFLINE",
    "current_scope",
    "mark_source",
    "generate_utterance_id",
    "get_utterance_id",
    # Health
    "HealthChecker",
    "HealthReport",
    "HealthStatus",
    "backend_check",
    "store_check",
    # Metrics
    "REGISTRY",
    "Counter",
    "Histogram",
    "timed",
    "outcome_counter",
    "utterances_total",
    "backend_failures",
    "malformed_responses",
    "offline_fallbacks",
    "backend_latency",
]
