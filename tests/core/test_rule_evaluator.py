from __future__ import annotations

from eligibility.core import Comparison, OutcomeStatus, RuleEvaluator, ValueComparator
from eligibility.schemas import build_rule


class ExplodingComparator(ValueComparator):
    def compare(self, actual, operator, expected) -> Comparison:
        raise RuntimeError("comparator exploded")


def test_passing_rule_contributes_its_weight():
    evaluator = RuleEvaluator()
    rule = build_rule({"field": "income", "operator": ">=", "value": 3000, "weight": 40})

    outcome = evaluator.evaluate(rule, {"income": 5000})

    assert outcome.passed is True
    assert outcome.score == 40
    assert outcome.actual == 5000
    assert outcome.status is OutcomeStatus.PASSED
    assert outcome.duration_ms >= 0
    assert evaluator.invocations == 1


def test_missing_field_reports_none_actual():
    evaluator = RuleEvaluator()
    rule = build_rule({"field": "credit_score", "operator": ">=", "value": 650})

    outcome = evaluator.evaluate(rule, {})

    assert outcome.passed is False
    assert outcome.actual is None
    assert outcome.score == 0
    assert outcome.status is OutcomeStatus.FIELD_MISSING


def test_skipped_rule_is_not_compared():
    evaluator = RuleEvaluator()
    rule = build_rule({"field": "income", "operator": ">=", "value": 3000, "weight": 5})

    outcome = evaluator.evaluate(rule, {"income": 0}, skipped=True)

    assert outcome.skipped is True
    assert outcome.passed is True
    assert outcome.score == 0
    assert outcome.status is OutcomeStatus.SKIPPED
    assert evaluator.invocations == 0


def test_unexpected_error_becomes_failed_outcome():
    evaluator = RuleEvaluator(ExplodingComparator())
    rule = build_rule({"field": "income", "operator": ">=", "value": 3000})

    outcome = evaluator.evaluate(rule, {"income": 5000})

    assert outcome.passed is False
    assert outcome.status is OutcomeStatus.ERROR
    assert outcome.error == "comparator exploded"
    assert outcome.actual == 5000
