"""
Main routing interface for LLM Router.

Combines classification, the model registry and weighted scoring to pick
the model that best fits a prompt and the caller's cost/latency/quality
preferences, with ranked alternatives.

Routing outcomes:
    selected:  a model supporting the prompt's task type passed the filter.
    broadened: no task-type match survived, so the filter was re-run over
               every active model (the winner may not list the task type).
    degraded:  routing failed and ``route_with_fallback`` substituted the
               default model with a neutral score.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .classifier import GENERAL, NO_SIGNAL_CONFIDENCE, PromptAnalysis, TaskClassifier, estimate_tokens
from .config import Config
from .errors import NoEligibleModel
from .metrics import ROUTING_DECISIONS_TOTAL, MetricsSink, NullMetrics
from .registry import ModelDescriptor, ModelRegistry
from .scorer import (
    OUTPUT_TOKEN_RATIO,
    RoutingPreferences,
    ScoreBreakdown,
    ScoreResult,
    filter_models,
    rank_models,
)

_log = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3
NEUTRAL_SCORE = 0.5

OUTCOME_SELECTED = "selected"
OUTCOME_BROADENED = "broadened"
OUTCOME_DEGRADED = "degraded"


# ── RoutingResult ─────────────────────────────────────────────────────────────

@dataclass
class RoutingResult:
    """Result of one routing call.

    Attributes:
        selected_model: Chosen model (None only when the catalog is empty
            and routing degraded).
        score: Score of the chosen model.
        analysis: Classification of the prompt.
        alternatives: Up to three runner-up scores, best first.
        broadened: True when selection fell back to the whole catalog.
        degraded: True when produced by the fallback wrapper.
        reasoning: Human-readable trail of routing steps.
    """

    selected_model: Optional[ModelDescriptor]
    score: ScoreResult
    analysis: PromptAnalysis
    alternatives: List[ScoreResult] = field(default_factory=list)
    broadened: bool = False
    degraded: bool = False
    reasoning: List[str] = field(default_factory=list)

    @property
    def model_id(self) -> str:
        return self.score.model_id

    @property
    def outcome(self) -> str:
        if self.degraded:
            return OUTCOME_DEGRADED
        if self.broadened:
            return OUTCOME_BROADENED
        return OUTCOME_SELECTED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "selected_model": self.selected_model.to_dict() if self.selected_model else None,
            "score": self.score.to_dict(),
            "analysis": self.analysis.to_dict(),
            "alternatives": [alt.to_dict() for alt in self.alternatives],
            "broadened": self.broadened,
            "degraded": self.degraded,
            "outcome": self.outcome,
            "reasoning": self.reasoning,
        }


# ── Router ────────────────────────────────────────────────────────────────────

class Router:
    """Selects a model for a prompt.

    Classification, filtering and scoring are pure, so one Router can serve
    any number of concurrent callers.
    """

    def __init__(
        self,
        config: Config = None,
        registry: ModelRegistry = None,
        classifier: TaskClassifier = None,
        metrics: MetricsSink = None,
        default_model_id: str = None,
        preferences: RoutingPreferences = None,
    ):
        """Initialize the router.

        Args:
            config: Configuration; the packaged defaults when omitted.
            registry: Model catalog; built from ``config`` when omitted.
            classifier: Prompt classifier; built from ``config`` when omitted.
            metrics: Metrics sink for routing decisions.
            default_model_id: Model used by :meth:`route_with_fallback`
                when routing fails.
            preferences: Preferences used when a call passes none.
        """
        self.config = config if config is not None else Config()
        self.registry = registry if registry is not None else ModelRegistry(self.config)
        self.classifier = classifier if classifier is not None else TaskClassifier(self.config)
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.default_model_id = default_model_id or self.config.get_default_model_id()
        self.default_preferences = (
            preferences if preferences is not None
            else RoutingPreferences.from_dict(self.config.get_default_preferences())
        )

    # ── Public routing interface ──────────────────────────────────────────

    def classify(self, prompt: str) -> PromptAnalysis:
        return self.classifier.classify(prompt)

    def route(
        self,
        prompt: str,
        preferences: RoutingPreferences = None,
        models: Iterable[ModelDescriptor] = None,
    ) -> RoutingResult:
        """Route a prompt to the best-scoring model.

        Args:
            prompt: The text prompt to route.
            preferences: Weights and hard limits; router defaults if omitted.
            models: Catalog to choose from; the registry if omitted.
                Inactive models are ignored.

        Returns:
            :class:`RoutingResult` with the selected model and alternatives.

        Raises:
            InvalidInput: Empty prompt.
            InvalidPreferences: Weights sum to zero.
            NoEligibleModel: No active model satisfies the constraints.
        """
        preferences = preferences if preferences is not None else self.default_preferences
        analysis = self.classifier.classify(prompt)

        if models is None:
            pool = self.registry.get_active_models()
        else:
            pool = [m for m in models if m.is_active]

        reasoning = [
            f"Classified as '{analysis.task_type}' "
            f"(confidence {analysis.confidence:.2f}, ~{analysis.estimated_tokens} tokens)"
        ]
        if analysis.requires_tools:
            reasoning.append("Prompt requires tool use")
        if analysis.requires_function_calling:
            reasoning.append("Prompt requires function calling")

        candidates = [m for m in pool if m.supports_task_type(analysis.task_type)]
        eligible = filter_models(candidates, analysis, preferences)
        broadened = False

        if eligible:
            reasoning.append(
                f"{len(eligible)} of {len(candidates)} '{analysis.task_type}' models meet constraints"
            )
        else:
            # Deliberately not task-type gated: any active model that meets
            # the constraints may win here.
            eligible = filter_models(pool, analysis, preferences)
            if not eligible:
                raise NoEligibleModel(
                    "No models available that meet the specified constraints",
                    {"task_type": analysis.task_type, "catalog_size": len(pool)},
                )
            broadened = True
            reasoning.append(
                f"No '{analysis.task_type}' model meets constraints; "
                f"broadened to {len(eligible)} model(s) from the full catalog"
            )

        ranked = rank_models(eligible, analysis, preferences)
        best = ranked[0]
        reasoning.append(f"Selected {best.model_id} (score {best.score:.3f})")

        result = RoutingResult(
            selected_model=best.model,
            score=best,
            analysis=analysis,
            alternatives=ranked[1:1 + MAX_ALTERNATIVES],
            broadened=broadened,
            reasoning=reasoning,
        )
        self._record_decision(result)
        _log.info(
            "Routed %s prompt to %s (score=%.3f, outcome=%s)",
            analysis.task_type, best.model_id, best.score, result.outcome,
        )
        return result

    def route_with_fallback(
        self,
        prompt: str,
        preferences: RoutingPreferences = None,
        models: Iterable[ModelDescriptor] = None,
    ) -> RoutingResult:
        """Route like :meth:`route`, but never raise.

        Any routing failure yields a degraded result pointing at the
        default model with a neutral 0.5 score and no alternatives.
        """
        catalog = list(models) if models is not None else None
        try:
            return self.route(prompt, preferences, catalog)
        except Exception as exc:
            _log.warning("Routing failed, using default model: %s", exc)
            return self._degraded_result(prompt, catalog, str(exc))

    # ── Internals ─────────────────────────────────────────────────────────

    def _degraded_result(
        self,
        prompt: str,
        catalog: Optional[List[ModelDescriptor]],
        error: str,
    ) -> RoutingResult:
        model = self._default_model(catalog)
        try:
            analysis = self.classifier.classify(prompt)
        except Exception:
            analysis = PromptAnalysis(
                task_type=GENERAL,
                confidence=NO_SIGNAL_CONFIDENCE,
                estimated_tokens=max(1, estimate_tokens(prompt if isinstance(prompt, str) else "")),
                requires_tools=False,
                requires_function_calling=False,
            )

        score = ScoreResult(
            model_id=model.id if model else "",
            score=NEUTRAL_SCORE,
            breakdown=ScoreBreakdown(cost=NEUTRAL_SCORE, latency=NEUTRAL_SCORE, quality=NEUTRAL_SCORE),
            model=model,
        )
        result = RoutingResult(
            selected_model=model,
            score=score,
            analysis=analysis,
            alternatives=[],
            degraded=True,
            reasoning=[
                f"Routing failed ({error})",
                f"Using default model {score.model_id or '<none>'}",
            ],
        )
        self._record_decision(result)
        return result

    def _default_model(self, catalog: Optional[List[ModelDescriptor]]) -> Optional[ModelDescriptor]:
        """Default model id, else the first active model, else the first model."""
        models = catalog if catalog is not None else self.registry.list_models()
        for model in models:
            if model.id == self.default_model_id:
                return model
        for model in models:
            if model.is_active:
                return model
        return models[0] if models else None

    def _record_decision(self, result: RoutingResult) -> None:
        self.metrics.increment(
            ROUTING_DECISIONS_TOTAL,
            1,
            {
                "task_type": result.analysis.task_type,
                "model": result.model_id,
                "outcome": result.outcome,
            },
        )


# ── Summary ───────────────────────────────────────────────────────────────────

def routing_summary(result: RoutingResult) -> Dict[str, Any]:
    """Summarise a routing result for display.

    Returns:
        Dict with prompt_type, confidence (percent), selected_model,
        estimated_cost, estimated_latency and quality.
    """
    analysis = result.analysis
    model = result.selected_model
    summary: Dict[str, Any] = {
        "prompt_type": analysis.task_type,
        "confidence": round(analysis.confidence * 100),
        "selected_model": model.name if model else None,
        "estimated_cost": None,
        "estimated_latency": None,
        "quality": None,
    }
    if model is not None:
        output_tokens = math.ceil(analysis.estimated_tokens * OUTPUT_TOKEN_RATIO)
        total_cost = model.estimate_cost(analysis.estimated_tokens, output_tokens)
        summary["estimated_cost"] = f"${total_cost:.4f}"
        summary["estimated_latency"] = f"{model.average_latency_ms}ms"
        summary["quality"] = f"{round(model.quality * 100)}%"
    return summary
