"""
LLM Router: pick the right model for a prompt, then call it with failover.

Prompts are classified by task type with deterministic rules, candidate
models are filtered on hard constraints and scored on cost, latency and
quality, and the winner is called through its provider with automatic
fallback along the model's failover chain.

Usage:
    from llm_router import Router, RoutingPreferences, routing_summary

    router = Router()
    result = router.route(
        "Write a Python function to parse CSV files",
        RoutingPreferences(cost_weight=0.6, latency_weight=0.2, quality_weight=0.2),
    )
    print(f"Use {result.model_id} ({result.analysis.task_type}, score {result.score.score:.2f})")
    print(routing_summary(result))

Calling the model (API keys from OPENAI_API_KEY, ANTHROPIC_API_KEY, ...):
    from llm_router import Config, FailoverManager, ProviderRegistry, ProviderRequest

    config = Config()
    providers = ProviderRegistry.from_config(config)
    failover = FailoverManager.from_config(config, router.registry)
    outcome = failover.execute_with_failover(
        result.model_id,
        ProviderRequest(model=result.model_id, messages=[{"role": "user", "content": "..."}]),
        providers,
    )
"""

__version__ = "1.0.0"

from .classifier import (
    TASK_TYPES,
    PromptAnalysis,
    TaskClassifier,
    classify,
    estimate_tokens,
    task_type_display_name,
)
from .clock import SystemClock
from .config import Config
from .errors import (
    InvalidInput,
    InvalidPreferences,
    NoEligibleModel,
    ProviderError,
    ProviderTimeout,
    ProviderUnconfigured,
    RouterError,
)
from .failover import FailoverManager, FailoverMetrics, FailoverResult
from .metrics import InMemoryMetrics, MetricsSink, NullMetrics
from .providers import (
    AnthropicProvider,
    BaseProvider,
    NotDiamondProvider,
    OpenAIProvider,
    OpenRouterProvider,
    ProviderConfig,
    ProviderFactory,
    ProviderRegistry,
    ProviderRequest,
    ProviderResponse,
)
from .quality import EvaluationSample, ModelQualityScore, QualityEvaluator
from .registry import ModelDescriptor, ModelRegistry
from .router import Router, RoutingResult, routing_summary
from .scorer import RoutingPreferences, ScoreResult, filter_models, rank_models, score_model

__all__ = [
    # Routing
    "Router",
    "RoutingResult",
    "RoutingPreferences",
    "ScoreResult",
    "routing_summary",
    "filter_models",
    "score_model",
    "rank_models",

    # Classification
    "TaskClassifier",
    "PromptAnalysis",
    "TASK_TYPES",
    "classify",
    "estimate_tokens",
    "task_type_display_name",

    # Catalog and configuration
    "ModelRegistry",
    "ModelDescriptor",
    "Config",

    # Execution
    "FailoverManager",
    "FailoverMetrics",
    "FailoverResult",
    "BaseProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "OpenRouterProvider",
    "NotDiamondProvider",
    "ProviderConfig",
    "ProviderFactory",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderResponse",

    # Quality and metrics
    "QualityEvaluator",
    "EvaluationSample",
    "ModelQualityScore",
    "MetricsSink",
    "NullMetrics",
    "InMemoryMetrics",
    "SystemClock",

    # Errors
    "RouterError",
    "InvalidInput",
    "InvalidPreferences",
    "NoEligibleModel",
    "ProviderError",
    "ProviderTimeout",
    "ProviderUnconfigured",
]
