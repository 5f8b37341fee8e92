"""
Minimal metrics collection for the mind engine.

Counters and timings without external dependencies, exportable in
Prometheus text format by whatever process embeds the interpreter.
"""

import functools
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class Counter:
    """Thread-safe counter metric."""

    name: str
    description: str
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def inc(self, amount: int = 1) -> None:
        """Increment the counter."""
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class Histogram:
    """Simple histogram for timing metrics."""

    name: str
    description: str
    _values: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def observe(self, value: float) -> None:
        """Record an observation, keeping the last 1000."""
        with self._lock:
            self._values.append(value)
            if len(self._values) > 1000:
                self._values = self._values[-1000:]

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._values)

    @property
    def sum(self) -> float:
        with self._lock:
            return sum(self._values) if self._values else 0.0

    @property
    def avg(self) -> float:
        with self._lock:
            return sum(self._values) / len(self._values) if self._values else 0.0


class MetricsRegistry:
    """Central registry for all metrics."""

    def __init__(self) -> None:
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, description: str = "") -> Counter:
        """Get or create a counter."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name, description)
            return self._counters[name]

    def histogram(self, name: str, description: str = "") -> Histogram:
        """Get or create a histogram."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name, description)
            return self._histograms[name]

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines: list[str] = []
        with self._lock:
            for name in sorted(self._counters):
                c = self._counters[name]
                if c.description:
                    lines.append(f"# HELP {name} {c.description}")
                lines.append(f"# TYPE {name} counter")
                lines.append(f"{name} {c.value}")

            for name in sorted(self._histograms):
                h = self._histograms[name]
                if h.description:
                    lines.append(f"# HELP {name} {h.description}")
                lines.append(f"# TYPE {name} summary")
                lines.append(f"{name}_count {h.count}")
                lines.append(f"{name}_sum {h.sum}")

        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, dict[str, float | int | str]]:
        """Export metrics as dictionary."""
        result: dict[str, dict[str, float | int | str]] = {}
        with self._lock:
            for name, c in self._counters.items():
                result[name] = {"type": "counter", "value": c.value}
            for name, h in self._histograms.items():
                result[name] = {"type": "histogram", "count": h.count, "sum": h.sum, "avg": h.avg}
        return result


# Global registry instance
REGISTRY = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return REGISTRY


# Pre-defined metrics
utterances_total = REGISTRY.counter("utterances_total", "Utterances interpreted")
backend_failures = REGISTRY.counter("backend_failures_total", "Backend timeouts and connection failures")
malformed_responses = REGISTRY.counter("malformed_responses_total", "Replies whose JSON failed validation")
offline_fallbacks = REGISTRY.counter("offline_fallbacks_total", "Utterances answered by the offline parser")
backend_latency = REGISTRY.histogram("backend_latency_seconds", "Backend round-trip latency")


def outcome_counter(kind: str) -> Counter:
    """Counter for one outcome kind (applied, staged, clarification, status)."""
    return REGISTRY.counter(f"outcome_{kind}_total", f"Utterances resolved as {kind}")


def timed(histogram: Histogram) -> Callable:
    """Decorator to time function execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                histogram.observe(time.perf_counter() - start)

        return wrapper

    return decorator
