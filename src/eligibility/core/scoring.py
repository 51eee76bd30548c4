"""Score aggregation over rule outcomes."""

from __future__ import annotations

from typing import Iterable

from ..schemas.criteria import ScoringMethod
from .results import RuleOutcome


class ScoringEngine:
    """Aggregates non-skipped rule outcomes into a single score."""

    def score(self, outcomes: Iterable[RuleOutcome], method: ScoringMethod | str = ScoringMethod.WEIGHTED) -> float:
        return round(self.raw_score(outcomes, method), 2)

    def raw_score(
        self, outcomes: Iterable[RuleOutcome], method: ScoringMethod | str = ScoringMethod.WEIGHTED
    ) -> float:
        """Unrounded score, used for threshold comparisons."""
        scoring_method = ScoringMethod(method)
        considered = [outcome for outcome in outcomes if not outcome.skipped]

        if scoring_method is ScoringMethod.WEIGHTED:
            value = self._weighted(considered)
        elif scoring_method is ScoringMethod.PASS_FAIL:
            value = 100.0 if all(outcome.passed for outcome in considered) else 0.0
        elif scoring_method is ScoringMethod.SUM:
            value = sum(outcome.weight for outcome in considered if outcome.passed)
        else:
            value = self._average(considered)

        if scoring_method.normalized:
            value = min(100.0, max(0.0, value))
        return float(value)

    @staticmethod
    def _weighted(outcomes: list[RuleOutcome]) -> float:
        total_weight = sum(outcome.weight for outcome in outcomes)
        # No weighted constraints means trivially eligible.
        if total_weight <= 0:
            return 100.0
        earned = sum(outcome.weight for outcome in outcomes if outcome.passed)
        return 100.0 * earned / total_weight

    @staticmethod
    def _average(outcomes: list[RuleOutcome]) -> float:
        if not outcomes:
            return 100.0
        return 100.0 * sum(1 for outcome in outcomes if outcome.passed) / len(outcomes)
