"""Evaluation orchestration: compile, cache, evaluate, score, decide."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Union

import pendulum
import structlog

from ..errors import ConfigurationError, CriteriaNotFoundError
from ..hashing import input_fingerprint
from ..schemas.criteria import Criteria, load_criteria
from .cache import EvaluationCache
from .compiler import CompiledCriteria, CriteriaCompiler
from .decisions import DecisionResolver
from .dependencies import DependencyResolver
from .groups import GroupEvaluator
from .operators import ValueComparator
from .results import BatchEntry, BatchResult, EvaluationResult, failed_outcomes
from .rules import RuleEvaluator
from .scoring import ScoringEngine
from .validation import InputValidator

if TYPE_CHECKING:
    from . import CriteriaSource, ResultRecorder

CriteriaLike = Union[Criteria, Mapping[str, Any], str]


def _utc_now() -> str:
    return pendulum.now("UTC").to_iso8601_string()


class EligibilityEngine:
    """Evaluates records against criteria snapshots."""

    def __init__(
        self,
        *,
        rule_evaluator: RuleEvaluator | None = None,
        dependency_resolver: DependencyResolver | None = None,
        group_evaluator: GroupEvaluator | None = None,
        scoring_engine: ScoringEngine | None = None,
        decision_resolver: DecisionResolver | None = None,
        cache: EvaluationCache | None = None,
        compiler: CriteriaCompiler | None = None,
        input_validator: InputValidator | None = None,
        source: CriteriaSource | None = None,
        recorder: ResultRecorder | None = None,
        max_workers: int = 4,
        chunk_size: int = 100,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        comparator = ValueComparator()
        self.rule_evaluator = rule_evaluator or RuleEvaluator(comparator)
        self.dependency_resolver = dependency_resolver or DependencyResolver(comparator)
        self.group_evaluator = group_evaluator or GroupEvaluator(self.rule_evaluator)
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.decision_resolver = decision_resolver or DecisionResolver()
        self.cache = cache
        self.compiler = compiler or CriteriaCompiler()
        self.input_validator = input_validator or InputValidator()
        self.source = source
        self.recorder = recorder
        self.max_workers = max(1, max_workers)
        self.chunk_size = max(1, chunk_size)
        self._clock = clock
        self._logger = structlog.get_logger(__name__)

    def evaluate(
        self,
        criteria: CriteriaLike,
        record: Mapping[str, Any],
        *,
        use_cache: bool | None = None,
        record_result: bool = True,
    ) -> EvaluationResult:
        compiled = self.compile(criteria)
        result = self._evaluate_compiled(compiled, record, use_cache=use_cache)
        if record_result and self.recorder is not None:
            self.recorder.record(result, record)
        return result

    def evaluate_version(
        self,
        name: str,
        version: int,
        record: Mapping[str, Any],
        *,
        use_cache: bool | None = None,
        record_result: bool = True,
    ) -> EvaluationResult:
        snapshot = self._require_source().get_version(name, version)
        return self.evaluate(snapshot, record, use_cache=use_cache, record_result=record_result)

    def evaluate_batch(
        self,
        criteria: CriteriaLike,
        records: Iterable[Mapping[str, Any]],
        *,
        use_cache: bool | None = None,
        record_result: bool = True,
    ) -> BatchResult:
        compiled = self.compile(criteria)
        items = list(records)
        entries: list[BatchEntry] = []

        def run(index: int, record: Mapping[str, Any]) -> BatchEntry:
            try:
                data_hash = input_fingerprint(record)
                result = self._evaluate_compiled(compiled, record, use_cache=use_cache)
                if record_result and self.recorder is not None:
                    self.recorder.record(result, record)
            except Exception as exc:  # noqa: BLE001
                self._logger.error(
                    "batch.record_failed",
                    criteria_id=compiled.criteria.id,
                    index=index,
                    error=str(exc),
                )
                return BatchEntry(index=index, data_hash=_safe_hash(record), error=str(exc))
            return BatchEntry(index=index, data_hash=data_hash, result=result)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for start in range(0, len(items), self.chunk_size):
                chunk = items[start : start + self.chunk_size]
                futures = [executor.submit(run, start + offset, record) for offset, record in enumerate(chunk)]
                entries.extend(future.result() for future in futures)

        total_passed = sum(1 for entry in entries if entry.passed)
        batch = BatchResult(
            criteria_id=compiled.criteria.id,
            total_evaluated=len(entries),
            total_passed=total_passed,
            total_failed=len(entries) - total_passed,
            results=tuple(entries),
        )
        self._logger.info(
            "batch.completed",
            criteria_id=batch.criteria_id,
            total_evaluated=batch.total_evaluated,
            total_passed=batch.total_passed,
            total_failed=batch.total_failed,
        )
        return batch

    def invalidate(self, criteria_id: str) -> None:
        if self.cache is not None:
            self.cache.invalidate(criteria_id)

    def warmup(self, criteria: CriteriaLike, records: Iterable[Mapping[str, Any]]) -> int:
        """Evaluate ``records`` into the cache and return how many succeeded.

        Results are not forwarded to the recorder. Records that fail to
        evaluate are logged and skipped.
        """
        if self.cache is None:
            self._logger.warning("cache.warmup_skipped", reason="no cache configured")
            return 0
        compiled = self.compile(criteria)
        warmed = 0
        for index, record in enumerate(records):
            try:
                self._evaluate_compiled(compiled, record, use_cache=True)
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "cache.warmup_failed",
                    criteria_id=compiled.criteria.id,
                    index=index,
                    error=str(exc),
                )
                continue
            warmed += 1
        self._logger.info("cache.warmed", criteria_id=compiled.criteria.id, warmed=warmed)
        return warmed

    def is_cached(self, criteria: CriteriaLike, record: Mapping[str, Any]) -> bool:
        if self.cache is None:
            return False
        compiled = self.compile(criteria)
        return self.cache.is_cached(compiled.criteria.id, compiled.fingerprint, input_fingerprint(record))

    def execution_plan(self, criteria: CriteriaLike) -> dict[str, Any]:
        """Describe what would be evaluated, without touching any record."""
        compiled = self.compile(criteria)
        snapshot = compiled.criteria
        plan = snapshot.structure()
        plan.update(
            {
                "name": snapshot.name,
                "active": snapshot.active,
                "fingerprint": compiled.fingerprint,
                "rule_count": len(compiled.rules),
                "group_gate": compiled.has_groups,
                "dependent_rules": [rule.id for rule in compiled.rules if rule.dependencies],
            }
        )
        return plan

    def compile(self, criteria: CriteriaLike) -> CompiledCriteria:
        return self.compiler.compile(self._resolve(criteria))

    def _resolve(self, criteria: CriteriaLike) -> Criteria:
        if isinstance(criteria, Criteria):
            return criteria
        if isinstance(criteria, str):
            snapshot = self._require_source().get(criteria)
            if not snapshot.active:
                raise CriteriaNotFoundError(f"Criteria '{criteria}' is not active")
            return snapshot
        if isinstance(criteria, Mapping):
            return load_criteria(criteria)
        raise ConfigurationError(f"Cannot evaluate criteria of type {type(criteria).__name__}")

    def _require_source(self) -> CriteriaSource:
        if self.source is None:
            raise CriteriaNotFoundError("No criteria source configured for lookups by name")
        return self.source

    def _evaluate_compiled(
        self,
        compiled: CompiledCriteria,
        record: Mapping[str, Any],
        *,
        use_cache: bool | None,
    ) -> EvaluationResult:
        criteria = compiled.criteria
        if not isinstance(record, Mapping):
            raise TypeError(f"Input record must be a mapping, got {type(record).__name__}")
        self.input_validator.validate(record)
        if not criteria.active:
            self._logger.warning("evaluation.inactive_criteria", criteria_id=criteria.id)

        caching = self.cache is not None and (use_cache if use_cache is not None else self.cache.enabled)
        data_hash = input_fingerprint(record)
        if caching:
            cached = self.cache.get(criteria.id, compiled.fingerprint, data_hash)
            if cached is not None:
                return cached.as_cached()

        skip = self.dependency_resolver.resolve(compiled.rules, record)
        outcome = self.group_evaluator.evaluate_top_level(criteria, record, skip)
        execution_log = tuple(outcome.iter_rule_outcomes())
        raw_score = self.scoring_engine.raw_score(execution_log, criteria.scoring_method)
        score = round(raw_score, 2)
        passed = raw_score >= criteria.pass_threshold
        if compiled.has_groups:
            passed = passed and outcome.passed
        decision = self.decision_resolver.resolve(raw_score, criteria.decision_thresholds, criteria.default_decision)

        result = EvaluationResult(
            criteria_id=criteria.id,
            criteria_name=criteria.name,
            version=criteria.version,
            passed=passed,
            score=score,
            decision=decision,
            execution_log=execution_log,
            failed_rules=failed_outcomes(execution_log),
            outcome=outcome,
            fingerprint=compiled.fingerprint,
            evaluated_at=self._clock(),
        )
        if caching:
            self.cache.put(criteria.id, compiled.fingerprint, data_hash, result)

        self._logger.info(
            "evaluation.completed",
            criteria_id=criteria.id,
            version=criteria.version,
            passed=passed,
            score=score,
            decision=decision,
            skipped_rules=len(skip),
            failed_rules=len(result.failed_rules),
        )
        return result


def _safe_hash(record: Any) -> str:
    try:
        return input_fingerprint(record)
    except Exception:  # noqa: BLE001
        return ""


__all__ = ["EligibilityEngine"]
