"""Dependency injection container for the eligibility engine."""

from __future__ import annotations

from typing import Any

from dependency_injector import containers, providers

from .core import (
    DecisionResolver,
    DependencyResolver,
    EligibilityEngine,
    EvaluationCache,
    GroupEvaluator,
    InputValidator,
    MemoryCacheBackend,
    RedisCacheBackend,
    RuleEvaluator,
    ScoringEngine,
    ValueComparator,
)
from .pipeline import CriteriaLoader, EvaluationPipeline
from .repository import CriteriaRepository
from .schemas.config import load_config
from .workflow import WorkflowDispatcher


class EligibilityContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    config = providers.Configuration()

    comparator = providers.Singleton(ValueComparator)
    rule_evaluator = providers.Singleton(RuleEvaluator, comparator=comparator)
    dependency_resolver = providers.Singleton(DependencyResolver, comparator=comparator)
    group_evaluator = providers.Singleton(GroupEvaluator, rule_evaluator=rule_evaluator)
    scoring_engine = providers.Singleton(ScoringEngine)
    input_validator = providers.Singleton(
        InputValidator,
        enabled=config.security.validate_input,
        max_field_length=config.security.max_field_length,
        max_value_length=config.security.max_value_length,
    )
    decision_resolver = providers.Singleton(
        DecisionResolver,
        default_label=config.scoring.default_decision,
    )

    cache_backend = providers.Singleton(MemoryCacheBackend, max_entries=config.cache.max_entries)
    evaluation_cache = providers.Singleton(
        EvaluationCache,
        backend=cache_backend,
        ttl_seconds=config.cache.ttl_seconds,
        prefix=config.cache.prefix,
        enabled=config.cache.enabled,
    )

    repository = providers.Singleton(
        CriteriaRepository,
        listeners=providers.List(evaluation_cache.provided.invalidate),
    )

    engine = providers.Singleton(
        EligibilityEngine,
        rule_evaluator=rule_evaluator,
        dependency_resolver=dependency_resolver,
        group_evaluator=group_evaluator,
        scoring_engine=scoring_engine,
        decision_resolver=decision_resolver,
        cache=evaluation_cache,
        input_validator=input_validator,
        source=repository,
        max_workers=config.batch.max_workers,
        chunk_size=config.batch.chunk_size,
    )

    dispatcher = providers.Singleton(
        WorkflowDispatcher,
        enabled=config.workflow.enabled,
        fail_on_error=config.workflow.fail_on_error,
        excellent_score=config.workflow.excellent_score,
        good_score=config.workflow.good_score,
    )

    criteria_loader = providers.Singleton(
        CriteriaLoader,
        pass_threshold=config.scoring.pass_threshold,
        scoring_method=config.scoring.method,
    )

    pipeline = providers.Factory(
        EvaluationPipeline,
        engine=engine,
        dispatcher=dispatcher,
        criteria_loader=criteria_loader,
    )


def create_container(*, settings: dict[str, Any] | None = None) -> EligibilityContainer:
    """Instantiate container with validated settings and backend overrides."""

    app_config = load_config(settings or None)

    container = EligibilityContainer()
    container.config.from_dict(app_config.to_settings())

    cache_settings = app_config.cache
    if cache_settings.backend == "redis":
        container.cache_backend.override(
            providers.Singleton(
                RedisCacheBackend.from_url,
                cache_settings.redis_url,
                namespace=cache_settings.prefix,
            )
        )

    return container


__all__ = ["EligibilityContainer", "create_container"]
