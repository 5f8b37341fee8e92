"""
Health check system with component-level checks.

The interpreter has two dependencies worth checking: the remote backend
(an unreachable backend only degrades it, the offline parser keeps
working) and the domain store.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_STATUS_VALUE = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.DEGRADED: 0.5,
    HealthStatus.UNHEALTHY: 0.0,
}


@dataclass
class HealthCheckResult:
    name: str
    status: HealthStatus
    message: str
    latency_ms: float = 0.0
    details: dict = field(default_factory=dict)


@dataclass
class HealthReport:
    status: HealthStatus
    checks: list[HealthCheckResult]
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "message": c.message,
                    "latency_ms": c.latency_ms,
                    **c.details,
                }
                for c in self.checks
            ],
        }

    def to_prometheus(self) -> str:
        """Export health status in Prometheus format."""
        lines = [
            "# HELP health_check_status Overall health status (1=healthy, 0.5=degraded, 0=unhealthy)",
            "# TYPE health_check_status gauge",
            f"health_check_status {_STATUS_VALUE[self.status]}",
            "# HELP health_check_component_status Component health status",
            "# TYPE health_check_component_status gauge",
        ]
        for check in self.checks:
            lines.append(f'health_check_component_status{{component="{check.name}"}} {_STATUS_VALUE[check.status]}')
            lines.append(f'health_check_latency_ms{{component="{check.name}"}} {check.latency_ms}')
        return "\n".join(lines) + "\n"


class HealthChecker:
    """
    Health check orchestrator.

    Usage:
        checker = HealthChecker()
        checker.add_check("backend", backend_check(backend))
        checker.add_check("store", store_check(store))
        report = checker.run_all()
    """

    def __init__(self):
        self._checks: dict[str, Callable[[], HealthCheckResult]] = {}

    def add_check(self, name: str, check_fn: Callable[[], HealthCheckResult]) -> None:
        """Register a health check function."""
        self._checks[name] = check_fn

    def run_all(self) -> HealthReport:
        """Run all health checks and return aggregated report."""
        results = []
        overall_status = HealthStatus.HEALTHY

        for name, check_fn in self._checks.items():
            start = time.monotonic()
            try:
                result = check_fn()
            except Exception as e:
                logger.error(f"Health check '{name}' failed with exception", exc_info=e)
                result = HealthCheckResult(name=name, status=HealthStatus.UNHEALTHY, message=f"Check failed: {e}")

            result.latency_ms = (time.monotonic() - start) * 1000
            results.append(result)

            # Worst wins
            if result.status == HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.UNHEALTHY
            elif result.status == HealthStatus.DEGRADED and overall_status != HealthStatus.UNHEALTHY:
                overall_status = HealthStatus.DEGRADED

        return HealthReport(
            status=overall_status,
            checks=results,
            timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
        )


def backend_check(backend) -> Callable[[], HealthCheckResult]:
    """Reachability of the remote backend. Unreachable is DEGRADED, not UNHEALTHY."""

    def check() -> HealthCheckResult:
        if backend.ping():
            return HealthCheckResult(
                name="backend",
                status=HealthStatus.HEALTHY,
                message=f"{backend.name} backend reachable",
                details={"provider": backend.name},
            )
        logger.warning(f"{backend.name} backend unreachable, offline parser will answer")
        return HealthCheckResult(
            name="backend",
            status=HealthStatus.DEGRADED,
            message=f"{backend.name} backend unreachable",
            details={"provider": backend.name},
        )

    return check


def store_check(store) -> Callable[[], HealthCheckResult]:
    """The store answers a snapshot."""

    def check() -> HealthCheckResult:
        snapshot = store.snapshot()
        return HealthCheckResult(
            name="store",
            status=HealthStatus.HEALTHY,
            message="Store snapshot OK",
            details={
                "goals": len(snapshot.goals),
                "pillars": len(snapshot.pillars),
                "chains": len(snapshot.chains),
                "blocks": len(snapshot.blocks),
            },
        )

    return check
