#!/usr/bin/env python3
"""
LLM Router Quickstart Example

Demonstrates classification, routing under different preferences, the
degraded fallback path and a routing summary. Calling a provider needs an
API key, e.g. OPENAI_API_KEY; without one that step is skipped.
"""

import logging

from llm_router import (
    Config,
    FailoverManager,
    InMemoryMetrics,
    ProviderRegistry,
    ProviderRequest,
    Router,
    RoutingPreferences,
    routing_summary,
    task_type_display_name,
)


def main():
    """Run quickstart demonstration."""
    logging.basicConfig(level=logging.WARNING)
    print("=== LLM Router Quickstart ===\n")

    config = Config()
    metrics = InMemoryMetrics()

    print("1. Initializing router...")
    router = Router(config, metrics=metrics)
    print(f"   Loaded {len(router.registry.list_models())} models")
    print(f"   Available providers: {', '.join(router.registry.get_providers())}")
    print()

    test_prompts = [
        "Summarize the following article about AI.",
        "Write code to implement a sorting algorithm",
        "Translate this text to Spanish: Hello",
        "What is the capital of France?",
        "Write a story about a lighthouse keeper",
        "Compare PostgreSQL and MySQL for analytics workloads",
        "Hello there",
    ]

    print("2. Routing prompts with default preferences...")
    for prompt in test_prompts:
        result = router.route(prompt)
        analysis = result.analysis
        print(f'   "{prompt[:50]}"')
        print(f"     {task_type_display_name(analysis.task_type)} "
              f"(confidence {analysis.confidence:.2f}) -> {result.model_id} "
              f"(score {result.score.score:.3f})")
    print()

    print("3. Same prompt, different trade-offs...")
    prompt = "Explain how TCP congestion control works"
    for label, prefs in [
        ("cheapest", RoutingPreferences(cost_weight=1, latency_weight=0, quality_weight=0)),
        ("fastest", RoutingPreferences(cost_weight=0, latency_weight=1, quality_weight=0)),
        ("best", RoutingPreferences(cost_weight=0, latency_weight=0, quality_weight=1)),
        ("anthropic only", RoutingPreferences(preferred_providers={'anthropic'})),
    ]:
        result = router.route(prompt, prefs)
        alternatives = ', '.join(alt.model_id for alt in result.alternatives) or 'none'
        print(f"   {label:>15}: {result.model_id} (alternatives: {alternatives})")
    print()

    print("4. Fallback when nothing qualifies...")
    result = router.route_with_fallback(prompt, RoutingPreferences(min_quality=0.99))
    print(f"   degraded={result.degraded} model={result.model_id} score={result.score.score}")
    print()

    print("5. Routing summary...")
    for key, value in routing_summary(router.route(prompt)).items():
        print(f"   {key}: {value}")
    print()

    print("6. Calling the selected model...")
    providers = ProviderRegistry.from_config(config)
    if not providers.provider_types():
        print("   No provider API keys found, skipping")
    else:
        result = router.route_with_fallback(
            prompt, RoutingPreferences(preferred_providers=set(providers.provider_types())))
        failover = FailoverManager.from_config(config, router.registry, metrics=metrics)
        outcome = failover.execute_with_failover(
            result.model_id,
            ProviderRequest(model=result.model_id, messages=[{'role': 'user', 'content': prompt}]),
            providers,
        )
        if outcome.success:
            print(f"   {outcome.model_id} answered in {outcome.total_latency_ms:.0f}ms "
                  f"after {outcome.attempts} attempt(s)")
            print(f"   {outcome.response.content[:200]}")
        else:
            print(f"   All attempts failed: {outcome.errors}")
    print()

    print("=== Quickstart Complete ===")


if __name__ == "__main__":
    main()
