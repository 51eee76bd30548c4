"""Single-rule evaluation."""

from __future__ import annotations

import copy
import threading
import time
from typing import Any, Mapping

import structlog

from ..schemas.criteria import Rule
from .operators import ABSENT, ValueComparator, resolve_field
from .results import OutcomeStatus, RuleOutcome


class RuleEvaluator:
    """Turns one rule plus one record into a ``RuleOutcome``."""

    def __init__(self, comparator: ValueComparator | None = None) -> None:
        self._comparator = comparator or ValueComparator()
        self._logger = structlog.get_logger(__name__)
        self._lock = threading.Lock()
        self._invocations = 0

    @property
    def invocations(self) -> int:
        """Number of rules actually compared since construction."""
        return self._invocations

    def evaluate(self, rule: Rule, record: Mapping[str, Any], *, skipped: bool = False) -> RuleOutcome:
        if skipped:
            return RuleOutcome(
                rule_id=rule.id,
                field=rule.field,
                operator=rule.operator.value,
                expected=copy.deepcopy(rule.value),
                actual=None,
                passed=True,
                weight=rule.weight,
                score=0.0,
                skipped=True,
                status=OutcomeStatus.SKIPPED,
            )

        with self._lock:
            self._invocations += 1

        started = time.perf_counter()
        actual: Any = None
        try:
            value = resolve_field(record, rule.field)
            actual = None if value is ABSENT else value
            comparison = self._comparator.compare(value, rule.operator, rule.value)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("rule.evaluation_failed", rule_id=rule.id, field=rule.field, error=str(exc))
            return self._outcome(rule, actual, False, OutcomeStatus.ERROR, str(exc), started)
        return self._outcome(rule, actual, comparison.passed, comparison.status, comparison.error, started)

    @staticmethod
    def _outcome(
        rule: Rule,
        actual: Any,
        passed: bool,
        status: OutcomeStatus,
        error: str | None,
        started: float,
    ) -> RuleOutcome:
        return RuleOutcome(
            rule_id=rule.id,
            field=rule.field,
            operator=rule.operator.value,
            expected=copy.deepcopy(rule.value),
            actual=copy.deepcopy(actual),
            passed=passed,
            weight=rule.weight,
            score=rule.weight if passed else 0.0,
            status=status,
            error=error,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )
