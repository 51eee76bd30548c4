from __future__ import annotations

import pytest

from eligibility.core import DecisionResolver, OutcomeStatus, RuleOutcome, ScoringEngine
from eligibility.schemas import load_criteria


def outcome(passed: bool, weight: float = 1.0, skipped: bool = False) -> RuleOutcome:
    return RuleOutcome(
        rule_id=f"r-{weight}-{passed}-{skipped}",
        field="f",
        operator="==",
        expected=1,
        actual=1 if passed else 0,
        passed=passed or skipped,
        weight=weight,
        score=weight if passed and not skipped else 0.0,
        skipped=skipped,
        status=OutcomeStatus.SKIPPED if skipped else OutcomeStatus.PASSED,
    )


OUTCOMES = [outcome(True, 40), outcome(False, 40), outcome(True, 20), outcome(False, 100, skipped=True)]


@pytest.mark.parametrize(
    "method, expected",
    [
        ("weighted", 60.0),
        ("pass_fail", 0.0),
        ("sum", 60.0),
        ("average", 66.67),
        ("percentage", 66.67),
    ],
)
def test_scoring_methods_ignore_skipped_rules(method, expected):
    assert ScoringEngine().score(OUTCOMES, method) == expected


def test_weighted_score_with_zero_total_weight_is_trivially_eligible():
    assert ScoringEngine().score([outcome(False, 0), outcome(True, 0)], "weighted") == 100.0
    assert ScoringEngine().score([], "weighted") == 100.0


def test_pass_fail_all_passed():
    assert ScoringEngine().score([outcome(True), outcome(True)], "pass_fail") == 100.0


def test_sum_is_not_normalised():
    assert ScoringEngine().score([outcome(True, 80), outcome(True, 70)], "sum") == 150.0


def test_decision_band_selection():
    criteria = load_criteria(
        {"name": "Bands", "decision_thresholds": {90: "approved", 60: "review", 0: "rejected"}}
    )
    resolver = DecisionResolver()

    assert resolver.resolve(75, criteria.decision_thresholds) == "review"
    assert resolver.resolve(90, criteria.decision_thresholds) == "approved"
    assert resolver.resolve(0, criteria.decision_thresholds) == "rejected"


def test_decision_falls_back_to_default_label():
    criteria = load_criteria({"name": "Narrow", "decision_thresholds": {50: "ok"}})

    assert DecisionResolver().resolve(10, criteria.decision_thresholds) == "Under Review"
    assert DecisionResolver("Pending").resolve(10, criteria.decision_thresholds) == "Pending"
    assert DecisionResolver().resolve(10, criteria.decision_thresholds, "Manual") == "Manual"


def test_raw_score_keeps_precision_for_threshold_checks():
    outcomes = [outcome(True, 79.996), outcome(False, 20.004)]

    assert ScoringEngine().raw_score(outcomes) < 80
    assert ScoringEngine().score(outcomes) == 80.0
