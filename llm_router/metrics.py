"""
Metrics sink for LLM Router.

The router and failover manager report counters, timers and gauges
through any object with ``increment``, ``observe`` and ``set`` methods.
Exporters (Prometheus and friends) live outside this package;
:class:`InMemoryMetrics` keeps values in-process for inspection and tests.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from .clock import DEFAULT_CLOCK

# ── Metric names ──────────────────────────────────────────────────────────────
REQUESTS_TOTAL = "llm_requests_total"
REQUEST_DURATION_SECONDS = "llm_requests_duration_seconds"
REQUEST_COST_TOTAL = "llm_requests_cost_total"
MODEL_REQUESTS_TOTAL = "llm_model_requests_total"
MODEL_SUCCESS_RATE = "llm_model_success_rate"
PROVIDER_REQUESTS_TOTAL = "llm_provider_requests_total"
PROVIDER_ERRORS_TOTAL = "llm_provider_errors_total"
FAILOVER_EVENTS_TOTAL = "llm_failover_events_total"
FAILOVER_DURATION_SECONDS = "llm_failover_duration_seconds"
ROUTING_DECISIONS_TOTAL = "llm_routing_decisions_total"
EVAL_RUNS_TOTAL = "llm_eval_job_runs_total"
EVAL_DURATION_SECONDS = "llm_eval_job_duration_seconds"
EVAL_ERRORS_TOTAL = "llm_eval_job_errors_total"

Labels = Optional[Dict[str, str]]


class MetricsSink(Protocol):
    """Anything that accepts counters, observations and gauges."""

    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None: ...

    def observe(self, name: str, value: float, labels: Labels = None) -> None: ...

    def set(self, name: str, value: float, labels: Labels = None) -> None: ...


class NullMetrics:
    """Sink that discards everything."""

    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None:
        pass

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        pass

    def set(self, name: str, value: float, labels: Labels = None) -> None:
        pass


@dataclass
class MetricSample:
    """A single observed value."""
    value: float
    timestamp: float
    labels: Dict[str, str] = field(default_factory=dict)


def _label_key(labels: Labels) -> Tuple[Tuple[str, str], ...]:
    return tuple(sorted((labels or {}).items()))


class InMemoryMetrics:
    """Thread-safe in-process metrics store.

    Counters and gauges keep one value per label set; observations keep
    every sample. Samples are stamped with ``clock.now()``.
    """

    def __init__(self, clock=None) -> None:
        self.clock = clock if clock is not None else DEFAULT_CLOCK
        self._lock = threading.Lock()
        self._counters: Dict[str, Dict[tuple, float]] = {}
        self._gauges: Dict[str, Dict[tuple, float]] = {}
        self._observations: Dict[str, List[MetricSample]] = {}

    def increment(self, name: str, value: float = 1, labels: Labels = None) -> None:
        key = _label_key(labels)
        with self._lock:
            series = self._counters.setdefault(name, {})
            series[key] = series.get(key, 0.0) + value

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        sample = MetricSample(value=value, timestamp=self.clock.now().timestamp(), labels=dict(labels or {}))
        with self._lock:
            self._observations.setdefault(name, []).append(sample)

    def set(self, name: str, value: float, labels: Labels = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._gauges.setdefault(name, {})[key] = value

    # ── Reading ───────────────────────────────────────────────────────────

    def counter(self, name: str, labels: Labels = None) -> float:
        """Return a counter value (0.0 if never incremented)."""
        with self._lock:
            return self._counters.get(name, {}).get(_label_key(labels), 0.0)

    def counter_total(self, name: str) -> float:
        """Return a counter summed over every label set."""
        with self._lock:
            return sum(self._counters.get(name, {}).values())

    def gauge(self, name: str, labels: Labels = None) -> Optional[float]:
        """Return a gauge value, or None if never set."""
        with self._lock:
            return self._gauges.get(name, {}).get(_label_key(labels))

    def observations(self, name: str) -> List[MetricSample]:
        """Return a copy of all samples observed under *name*."""
        with self._lock:
            return list(self._observations.get(name, []))

    def reset(self) -> None:
        """Drop every recorded value."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._observations.clear()


# ── Recording helpers ─────────────────────────────────────────────────────────

def record_request(
    sink: MetricsSink,
    model_id: str,
    provider: str,
    duration_ms: float,
    cost: Optional[float] = None,
) -> None:
    """Record a completed provider request."""
    labels = {"model": model_id, "provider": provider}
    sink.increment(REQUESTS_TOTAL, 1, labels)
    sink.observe(REQUEST_DURATION_SECONDS, duration_ms / 1000.0, labels)
    if cost:
        sink.increment(REQUEST_COST_TOTAL, cost, labels)
    sink.increment(MODEL_REQUESTS_TOTAL, 1, {"model": model_id})
    sink.increment(PROVIDER_REQUESTS_TOTAL, 1, {"provider": provider})


def record_error(sink: MetricsSink, model_id: str, provider: str, error_type: str) -> None:
    """Record a failed provider request."""
    sink.increment(
        PROVIDER_ERRORS_TOTAL, 1,
        {"model": model_id, "provider": provider, "error_type": error_type},
    )


def record_failover(sink: MetricsSink, model_id: str, duration_ms: float) -> None:
    """Record that a request moved past *model_id* to the next candidate."""
    sink.increment(FAILOVER_EVENTS_TOTAL, 1, {"model": model_id})
    sink.observe(FAILOVER_DURATION_SECONDS, duration_ms / 1000.0, {"model": model_id})
