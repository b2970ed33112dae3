"""
Quality recalibration for LLM Router.

Collects evaluation samples per model and periodically folds them into
the catalog's quality scores. Samples are kept in memory; where they come
from (human ratings, automated graders) is up to the caller.
"""

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional

from .clock import DEFAULT_CLOCK
from .config import Config
from .metrics import EVAL_DURATION_SECONDS, EVAL_ERRORS_TOTAL, EVAL_RUNS_TOTAL, MetricsSink, NullMetrics
from .registry import ModelRegistry

_log = logging.getLogger(__name__)

METRIC_WEIGHTS = {
    'accuracy': 0.3,
    'relevance': 0.25,
    'completeness': 0.25,
    'clarity': 0.2,
}

# (minimum sample count, confidence), checked in order
CONFIDENCE_STEPS = (
    (100, 0.95),
    (50, 0.9),
    (25, 0.85),
    (10, 0.8),
)
BASE_CONFIDENCE = 0.7


@dataclass
class EvaluationSample:
    """One graded response from a model. All ratings are 0.0–1.0."""
    model_id: str
    accuracy: float
    relevance: float
    completeness: float
    clarity: float
    score: Optional[float] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        for name in METRIC_WEIGHTS:
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be 0.0–1.0, got {value}")


@dataclass
class ModelQualityScore:
    """Aggregated quality for one model."""
    model_id: str
    score: float
    confidence: float
    sample_count: int
    last_updated: datetime
    metrics: Dict[str, float] = field(default_factory=dict)


def average_metrics(samples: List[EvaluationSample]) -> Dict[str, float]:
    count = len(samples)
    return {
        name: sum(getattr(s, name) for s in samples) / count
        for name in METRIC_WEIGHTS
    }


def overall_score(metrics: Dict[str, float]) -> float:
    """Weighted average of the per-metric means."""
    return sum(metrics[name] * weight for name, weight in METRIC_WEIGHTS.items())


def sample_confidence(sample_count: int) -> float:
    for threshold, confidence in CONFIDENCE_STEPS:
        if sample_count >= threshold:
            return confidence
    return BASE_CONFIDENCE


class QualityEvaluator:
    """Recomputes model quality from recent evaluation samples.

    Only the newest ``batch_size`` samples per model are kept. A model
    with fewer than ``min_samples`` samples keeps its current quality.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        metrics: MetricsSink = None,
        clock=None,
        min_samples: int = 10,
        batch_size: int = 100,
        enabled: bool = True,
    ):
        if min_samples < 1:
            raise ValueError(f"min_samples must be >= 1, got {min_samples}")
        if batch_size < min_samples:
            raise ValueError("batch_size must be >= min_samples")
        self.registry = registry
        self.sink = metrics if metrics is not None else NullMetrics()
        self.clock = clock if clock is not None else DEFAULT_CLOCK
        self.min_samples = min_samples
        self.batch_size = batch_size
        self.enabled = enabled
        self._samples: Dict[str, Deque[EvaluationSample]] = defaultdict(
            lambda: deque(maxlen=self.batch_size)
        )
        self._samples_lock = threading.Lock()
        self._run_lock = threading.Lock()
        self.last_run: Optional[datetime] = None

    @classmethod
    def from_config(cls, config: Config, registry: ModelRegistry,
                    metrics: MetricsSink = None, clock=None) -> 'QualityEvaluator':
        settings = config.get_quality_settings()
        return cls(
            registry,
            metrics=metrics,
            clock=clock,
            min_samples=int(settings['min_samples']),
            batch_size=int(settings['batch_size']),
            enabled=bool(settings['enabled']),
        )

    def record_sample(self, sample: EvaluationSample) -> None:
        if sample.created_at is None:
            sample.created_at = self.clock.now()
        with self._samples_lock:
            self._samples[sample.model_id].append(sample)

    def record_samples(self, samples: Iterable[EvaluationSample]) -> None:
        for sample in samples:
            self.record_sample(sample)

    def samples_for(self, model_id: str) -> List[EvaluationSample]:
        with self._samples_lock:
            return list(self._samples.get(model_id, ()))

    def evaluate_model(self, model_id: str) -> Optional[ModelQualityScore]:
        """Score one model from its recorded samples.

        Returns:
            ModelQualityScore, or None if there are fewer than
            ``min_samples`` samples.
        """
        samples = self.samples_for(model_id)
        if len(samples) < self.min_samples:
            _log.debug(
                "Insufficient samples for %s (%d < %d)",
                model_id, len(samples), self.min_samples,
            )
            return None

        metrics = average_metrics(samples)
        return ModelQualityScore(
            model_id=model_id,
            score=overall_score(metrics),
            confidence=sample_confidence(len(samples)),
            sample_count=len(samples),
            last_updated=self.clock.now(),
            metrics=metrics,
        )

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> List[ModelQualityScore]:
        """Re-score every active model and write the scores to the registry.

        Returns an empty list when disabled or when another run is in
        progress.
        """
        if not self.enabled:
            _log.info("Quality evaluation disabled, skipping")
            return []
        if not self._run_lock.acquire(blocking=False):
            _log.warning("Quality evaluation already running, skipping")
            return []

        start = self.clock.monotonic_ms()
        results: List[ModelQualityScore] = []
        try:
            active = self.registry.get_active_models()
            _log.info("Evaluating %d models", len(active))
            for model in active:
                try:
                    result = self._evaluate_and_update(model.id)
                except Exception:
                    self.sink.increment(EVAL_ERRORS_TOTAL, 1, {'model': model.id})
                    _log.exception("Quality evaluation failed for %s", model.id)
                    continue
                if result is not None:
                    results.append(result)
        finally:
            self._run_lock.release()

        duration_ms = self.clock.monotonic_ms() - start
        self.last_run = self.clock.now()
        self.sink.increment(EVAL_RUNS_TOTAL)
        self.sink.observe(EVAL_DURATION_SECONDS, duration_ms / 1000.0)
        _log.info(
            "Quality evaluation completed in %.0fms, %d models updated",
            duration_ms, len(results),
        )
        return results

    def _evaluate_and_update(self, model_id: str) -> Optional[ModelQualityScore]:
        result = self.evaluate_model(model_id)
        if result is None:
            return None
        if self.registry.update_quality(model_id, result.score) is None:
            _log.warning("Model %s disappeared before its quality could be updated", model_id)
            return None
        return result

    def get_status(self) -> Dict[str, object]:
        return {
            'enabled': self.enabled,
            'is_running': self.is_running,
            'last_run': self.last_run.isoformat() if self.last_run else None,
            'min_samples': self.min_samples,
        }
