"""Core evaluation engine components."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from ..schemas.criteria import Criteria
from .cache import CacheBackend, CacheStats, EvaluationCache, MemoryCacheBackend, RedisCacheBackend
from .compiler import CompiledCriteria, CriteriaCompiler
from .decisions import DecisionResolver
from .dependencies import DependencyResolver
from .engine import EligibilityEngine
from .groups import GroupEvaluator, combine_logic
from .operators import ABSENT, Comparison, ValueComparator, resolve_field
from .results import (
    BatchEntry,
    BatchResult,
    EvaluationResult,
    GroupOutcome,
    OutcomeStatus,
    RuleOutcome,
)
from .rules import RuleEvaluator
from .scoring import ScoringEngine
from .validation import InputValidator


@runtime_checkable
class CriteriaSource(Protocol):
    """Lookup of stored criteria snapshots by name or id."""

    def get(self, name: str) -> Criteria:
        """Return the latest snapshot or raise ``CriteriaNotFoundError``."""

    def get_version(self, name: str, version: int) -> Criteria:
        """Return one immutable snapshot or raise ``CriteriaNotFoundError``."""


@runtime_checkable
class ResultRecorder(Protocol):
    """Receives every completed evaluation, e.g. for audit trails."""

    def record(self, result: EvaluationResult, record: Mapping[str, Any]) -> None:
        ...


__all__ = [
    "ABSENT",
    "BatchEntry",
    "BatchResult",
    "CacheBackend",
    "CacheStats",
    "Comparison",
    "CompiledCriteria",
    "CriteriaCompiler",
    "CriteriaSource",
    "DecisionResolver",
    "DependencyResolver",
    "EligibilityEngine",
    "EvaluationCache",
    "EvaluationResult",
    "GroupEvaluator",
    "GroupOutcome",
    "InputValidator",
    "MemoryCacheBackend",
    "OutcomeStatus",
    "RedisCacheBackend",
    "ResultRecorder",
    "RuleEvaluator",
    "RuleOutcome",
    "ScoringEngine",
    "ValueComparator",
    "combine_logic",
    "resolve_field",
]
