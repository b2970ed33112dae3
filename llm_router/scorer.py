"""
Constraint filtering and multi-objective scoring for LLM Router.

Models are first filtered against hard constraints (context length,
tool support, caller limits) and then scored on cost, latency and quality
with caller-supplied weights.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from .classifier import PromptAnalysis
from .errors import InvalidPreferences
from .registry import ModelDescriptor

# $1 per request maps to a cost score of 0
COST_CEILING_USD = 1.0
# 10 seconds maps to a latency score of 0
LATENCY_CEILING_MS = 10_000.0
# Expected completion length relative to the prompt
OUTPUT_TOKEN_RATIO = 0.5


@dataclass
class RoutingPreferences:
    """Caller trade-offs and hard limits for model selection.

    Weights need not sum to 1; they are normalised when scoring.

    Attributes:
        cost_weight: Importance of low cost.
        latency_weight: Importance of low latency.
        quality_weight: Importance of high quality.
        max_cost_per_1k_tokens: Reject models whose input or output price
            per 1K tokens exceeds this.
        max_latency_ms: Reject models slower than this on average.
        min_quality: Reject models with lower quality.
        preferred_providers: When non-empty, only these providers qualify.
    """

    cost_weight: float = 0.3
    latency_weight: float = 0.3
    quality_weight: float = 0.4
    max_cost_per_1k_tokens: Optional[float] = None
    max_latency_ms: Optional[float] = None
    min_quality: Optional[float] = None
    preferred_providers: Set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        for name in ('cost_weight', 'latency_weight', 'quality_weight'):
            value = getattr(self, name)
            if value < 0:
                raise InvalidPreferences(f"{name} must be >= 0, got {value}")
        self.preferred_providers = set(self.preferred_providers or ())

    @property
    def total_weight(self) -> float:
        return self.cost_weight + self.latency_weight + self.quality_weight

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RoutingPreferences:
        return cls(
            cost_weight=data.get('cost_weight', 0.3),
            latency_weight=data.get('latency_weight', 0.3),
            quality_weight=data.get('quality_weight', 0.4),
            max_cost_per_1k_tokens=data.get('max_cost_per_1k_tokens'),
            max_latency_ms=data.get('max_latency_ms'),
            min_quality=data.get('min_quality'),
            preferred_providers=set(data.get('preferred_providers') or ()),
        )


def default_preferences() -> RoutingPreferences:
    return RoutingPreferences()


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-objective sub-scores, each 0.0–1.0."""
    cost: float
    latency: float
    quality: float

    def to_dict(self) -> Dict[str, float]:
        return {'cost': self.cost, 'latency': self.latency, 'quality': self.quality}


@dataclass(frozen=True)
class ScoreResult:
    """Weighted score of one model for one prompt."""
    model_id: str
    score: float
    breakdown: ScoreBreakdown
    model: Optional[ModelDescriptor] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_id': self.model_id,
            'score': self.score,
            'breakdown': self.breakdown.to_dict(),
        }


def filter_models(
    models: Iterable[ModelDescriptor],
    analysis: PromptAnalysis,
    preferences: RoutingPreferences,
) -> List[ModelDescriptor]:
    """Keep the models that satisfy every hard constraint, in input order."""
    return [m for m in models if passes_constraints(m, analysis, preferences)]


def passes_constraints(
    model: ModelDescriptor,
    analysis: PromptAnalysis,
    preferences: RoutingPreferences,
) -> bool:
    if analysis.estimated_tokens > model.max_context_length:
        return False
    if analysis.requires_tools and not model.supports_tools:
        return False
    if analysis.requires_function_calling and not model.supports_function_calling:
        return False

    if preferences.max_cost_per_1k_tokens is not None:
        max_cost = max(model.cost_per_1k_input, model.cost_per_1k_output)
        if max_cost > preferences.max_cost_per_1k_tokens:
            return False

    if preferences.max_latency_ms is not None:
        if model.average_latency_ms > preferences.max_latency_ms:
            return False

    if preferences.min_quality is not None:
        if model.quality < preferences.min_quality:
            return False

    if preferences.preferred_providers:
        if model.provider not in preferences.preferred_providers:
            return False

    return True


def normalize_cost(model: ModelDescriptor, estimated_tokens: int) -> float:
    """Estimated request cost scaled to 0–1 against a $1 ceiling."""
    output_tokens = math.ceil(estimated_tokens * OUTPUT_TOKEN_RATIO)
    total_cost = model.estimate_cost(estimated_tokens, output_tokens)
    return min(total_cost / COST_CEILING_USD, 1.0)


def normalize_latency(latency_ms: float) -> float:
    """Latency scaled to 0–1 (0 = instant, 1 = ten seconds or more)."""
    return min(latency_ms / LATENCY_CEILING_MS, 1.0)


def score_model(
    model: ModelDescriptor,
    analysis: PromptAnalysis,
    preferences: RoutingPreferences,
) -> ScoreResult:
    """Score a model for a prompt.

    Args:
        model: Candidate model
        analysis: Classification of the prompt
        preferences: Caller weights

    Returns:
        ScoreResult with the weighted score and its breakdown

    Raises:
        InvalidPreferences: If the weights sum to zero
    """
    total_weight = preferences.total_weight
    if total_weight <= 0:
        raise InvalidPreferences(
            "At least one of cost_weight, latency_weight, quality_weight must be > 0"
        )

    cost_score = 1.0 - normalize_cost(model, analysis.estimated_tokens)
    latency_score = 1.0 - normalize_latency(model.average_latency_ms)
    quality_score = model.quality

    final_score = (
        cost_score * (preferences.cost_weight / total_weight)
        + latency_score * (preferences.latency_weight / total_weight)
        + quality_score * (preferences.quality_weight / total_weight)
    )

    return ScoreResult(
        model_id=model.id,
        score=final_score,
        breakdown=ScoreBreakdown(cost=cost_score, latency=latency_score, quality=quality_score),
        model=model,
    )


def rank_models(
    models: Iterable[ModelDescriptor],
    analysis: PromptAnalysis,
    preferences: RoutingPreferences,
) -> List[ScoreResult]:
    """Score models and sort best-first. Equal scores keep input order."""
    scored = [score_model(m, analysis, preferences) for m in models]
    return sorted(scored, key=lambda r: r.score, reverse=True)
