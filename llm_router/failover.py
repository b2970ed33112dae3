"""
Failover orchestration for LLM Router.

Tries a model and then its failover chain, one candidate at a time,
until a provider call succeeds. Per-model success/failure counts and
latency are kept for reporting.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .clock import DEFAULT_CLOCK
from .config import Config
from .metrics import (
    MODEL_SUCCESS_RATE,
    MetricsSink,
    NullMetrics,
    record_error,
    record_failover,
    record_request,
)
from .providers import ProviderRequest, ProviderResponse
from .registry import ModelDescriptor, ModelRegistry

_log = logging.getLogger(__name__)


@dataclass
class FailoverMetrics:
    """Running counters for one model id."""
    model_id: str
    provider: str = ""
    success_count: int = 0
    failure_count: int = 0
    average_latency_ms: float = 0.0
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    failover_count: int = 0

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        return self.success_count / total if total else 0.0


@dataclass
class FailoverResult:
    """Outcome of a failover chain."""
    success: bool
    model_id: str
    provider: str
    attempts: int
    total_latency_ms: float
    errors: List[str] = field(default_factory=list)
    metrics: Optional[FailoverMetrics] = None
    response: Optional[ProviderResponse] = None


class FailoverManager:
    """Runs provider calls across a model's failover chain.

    ``providers`` passed to :meth:`execute_with_failover` is anything with a
    ``get(provider_type)`` method returning a provider or None, such as a
    :class:`~llm_router.providers.ProviderRegistry` or a plain dict.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        metrics: MetricsSink = None,
        clock=None,
        retry_delay: float = 1.0,
        enabled: bool = True,
    ):
        """Initialize the failover manager.

        Args:
            registry: Model catalog used to resolve ids and chains.
            metrics: Sink for request, error and failover metrics.
            clock: Clock for latency measurement and inter-candidate delays.
            retry_delay: Base delay in seconds; the wait after the n-th
                failed candidate is ``retry_delay * n``.
            enabled: When False only the requested model is tried.
        """
        if retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {retry_delay}")
        self.registry = registry
        self.sink = metrics if metrics is not None else NullMetrics()
        self.clock = clock if clock is not None else DEFAULT_CLOCK
        self.retry_delay = retry_delay
        self.enabled = enabled
        self._metrics: Dict[str, FailoverMetrics] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, registry: ModelRegistry = None,
                    metrics: MetricsSink = None, clock=None) -> FailoverManager:
        settings = config.get_failover_settings()
        return cls(
            registry if registry is not None else ModelRegistry(config),
            metrics=metrics,
            clock=clock,
            retry_delay=float(settings['retry_delay']),
            enabled=bool(settings['enabled']),
        )

    # ── Execution ─────────────────────────────────────────────────────────

    def execute_with_failover(self, model_id: str, request: ProviderRequest, providers) -> FailoverResult:
        """Send *request* to *model_id*, falling back along its chain.

        Args:
            model_id: Primary model id.
            request: Request to send; its ``model`` is replaced by each
                candidate's id.
            providers: Provider lookup (``providers.get(type)``).

        Returns:
            FailoverResult. Never raises for provider failures.
        """
        primary = self.registry.get_model(model_id)
        if primary is None:
            _log.error("Failover requested for unknown model %s", model_id)
            return FailoverResult(
                success=False,
                model_id=model_id,
                provider="",
                attempts=0,
                total_latency_ms=0.0,
                errors=[f"Model {model_id} not found"],
                metrics=self.get_metrics(model_id),
            )

        candidates = [primary]
        if self.enabled:
            candidates.extend(self.registry.get_failover_models(model_id))

        errors: List[str] = []
        total_latency = 0.0
        attempts = 0

        for index, candidate in enumerate(candidates):
            attempts += 1
            is_last = index == len(candidates) - 1

            provider = providers.get(candidate.provider)
            if provider is None:
                message = f"Provider {candidate.provider} not configured"
                errors.append(message)
                _log.warning(message)
                continue

            _log.info("Attempting request with model %s (attempt %d)", candidate.id, attempts)
            start = self.clock.monotonic_ms()
            try:
                response = provider.generate(dataclasses.replace(request, model=candidate.id))
            except Exception as exc:
                latency = self.clock.monotonic_ms() - start
                total_latency += latency
                message = str(exc) or type(exc).__name__
                errors.append(message)
                self._record_failure(candidate, latency, exc, is_last)
                _log.warning(
                    "Request failed with model %s after %.0fms: %s",
                    candidate.id, latency, message,
                )
                if not is_last:
                    self.clock.sleep(self.retry_delay * attempts)
                continue

            latency = self.clock.monotonic_ms() - start
            total_latency += latency
            snapshot = self._record_success(candidate, latency, response)
            _log.info(
                "Request succeeded with model %s (latency=%.0fms, attempts=%d)",
                candidate.id, latency, attempts,
            )
            return FailoverResult(
                success=True,
                model_id=candidate.id,
                provider=candidate.provider,
                attempts=attempts,
                total_latency_ms=total_latency,
                errors=errors,
                metrics=snapshot,
                response=response,
            )

        _log.error("All failover attempts failed for %s (%d attempts): %s", model_id, attempts, errors)
        return FailoverResult(
            success=False,
            model_id=model_id,
            provider=primary.provider,
            attempts=attempts,
            total_latency_ms=total_latency,
            errors=errors,
            metrics=self.get_metrics(model_id),
        )

    # ── Metrics ───────────────────────────────────────────────────────────

    def _lock_for(self, model_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(model_id)
            if lock is None:
                lock = self._locks[model_id] = threading.Lock()
            return lock

    def _existing_lock(self, model_id: str) -> Optional[threading.Lock]:
        with self._guard:
            return self._locks.get(model_id)

    def _entry(self, model: ModelDescriptor) -> FailoverMetrics:
        # Caller holds the model's lock
        with self._guard:
            entry = self._metrics.get(model.id)
            if entry is None:
                entry = self._metrics[model.id] = FailoverMetrics(model_id=model.id, provider=model.provider)
            return entry

    def _record_success(self, model: ModelDescriptor, latency_ms: float,
                        response: ProviderResponse) -> FailoverMetrics:
        with self._lock_for(model.id):
            entry = self._entry(model)
            entry.success_count += 1
            entry.last_success = self.clock.now()
            entry.average_latency_ms += (latency_ms - entry.average_latency_ms) / entry.success_count
            snapshot = dataclasses.replace(entry)

        cost = None
        if response.usage is not None:
            cost = model.estimate_cost(response.usage.prompt_tokens, response.usage.completion_tokens)
        record_request(self.sink, model.id, model.provider, latency_ms, cost)
        self.sink.set(MODEL_SUCCESS_RATE, snapshot.success_rate, {"model": model.id})
        return snapshot

    def _record_failure(self, model: ModelDescriptor, latency_ms: float,
                        error: Exception, is_last: bool) -> None:
        with self._lock_for(model.id):
            entry = self._entry(model)
            entry.failure_count += 1
            entry.failover_count += 1
            entry.last_failure = self.clock.now()
            success_rate = entry.success_rate

        record_error(self.sink, model.id, model.provider, getattr(error, 'code', type(error).__name__))
        if not is_last:
            record_failover(self.sink, model.id, latency_ms)
        self.sink.set(MODEL_SUCCESS_RATE, success_rate, {"model": model.id})

    def _snapshot(self, model_id: str) -> Optional[FailoverMetrics]:
        lock = self._existing_lock(model_id)
        if lock is None:
            return None
        with lock:
            entry = self._metrics.get(model_id)
            return dataclasses.replace(entry) if entry is not None else None

    def get_metrics(self, model_id: str) -> FailoverMetrics:
        """Return a copy of a model's metrics (zeroed if never attempted)."""
        snapshot = self._snapshot(model_id)
        return snapshot if snapshot is not None else FailoverMetrics(model_id=model_id)

    def get_all_metrics(self) -> List[FailoverMetrics]:
        with self._guard:
            model_ids = list(self._metrics)
        snapshots = (self._snapshot(model_id) for model_id in model_ids)
        return [s for s in snapshots if s is not None]

    def reset_metrics(self, model_id: str = None) -> None:
        """Forget metrics for one model, or for every model.

        Waits for in-flight updates to the model(s) being reset.
        """
        if model_id is None:
            with self._guard:
                model_ids = list(self._locks)
        else:
            model_ids = [model_id]
        for target in model_ids:
            lock = self._existing_lock(target)
            if lock is None:
                continue
            with lock:
                with self._guard:
                    self._metrics.pop(target, None)
