from __future__ import annotations

import pytest
from pydantic import ValidationError

from eligibility.errors import ConfigurationError
from eligibility.schemas import (
    CombinationLogic,
    Criteria,
    RuleOperator,
    RulePriority,
    ScoringMethod,
    build_rule,
    load_criteria,
)


def test_operator_aliases_and_case_insensitive_logic():
    assert RuleOperator("gte") is RuleOperator.GREATER_THAN_OR_EQUAL
    assert RuleOperator("matches") is RuleOperator.REGEX
    assert RuleOperator("NOT IN") is RuleOperator.NOT_IN
    assert CombinationLogic("AND") is CombinationLogic.AND
    assert CombinationLogic("min_required") is CombinationLogic.MIN
    assert RulePriority.HIGH.weight == 75
    assert not ScoringMethod.SUM.normalized


def test_unknown_operator_is_rejected_at_load_time():
    with pytest.raises(ConfigurationError) as exc_info:
        load_criteria({"name": "Bad", "rules": [{"field": "age", "operator": "approximately", "value": 3}]})

    assert exc_info.value.errors
    assert "Bad" in str(exc_info.value)


@pytest.mark.parametrize(
    "operator, value",
    [
        ("in", "gold"),
        ("between", 5),
        ("not_in", []),
        (">=", [1, 2]),
        ("regex", "([unclosed"),
    ],
)
def test_rule_value_shape_is_validated(operator, value):
    with pytest.raises(ConfigurationError):
        build_rule({"field": "x", "operator": operator, "value": value})


def test_equality_accepts_list_values():
    rule = build_rule({"field": "tags", "operator": "==", "value": ["a", "b"]})

    assert rule.value == ["a", "b"]


def test_rule_ids_are_stable_and_single_dependency_is_normalised():
    payload = {
        "field": "employment.years",
        "operator": ">=",
        "value": 2,
        "dependency": {"field": "employed", "operator": "==", "value": True},
    }

    first = build_rule(payload)
    second = build_rule(dict(payload))

    assert first.id == second.id
    assert first.id.startswith("rule-")
    assert len(first.dependencies) == 1
    assert first.dependencies[0].operator is RuleOperator.EQUAL


def test_criteria_defaults_and_threshold_mapping():
    criteria = load_criteria(
        {
            "name": "Loan Approval",
            "decision_thresholds": {90: "approved", 60: "review", 0: "rejected"},
            "rules": [{"field": "income", "operator": ">=", "value": 3000}],
        }
    )

    assert criteria.id == "loan-approval"
    assert criteria.pass_threshold == 65
    assert criteria.scoring_method is ScoringMethod.WEIGHTED
    assert [t.label for t in criteria.decision_thresholds] == ["approved", "review", "rejected"]


def test_pass_threshold_scale_depends_on_scoring_method():
    with pytest.raises(ConfigurationError):
        load_criteria({"name": "Too high", "pass_threshold": 150})

    criteria = load_criteria({"name": "Raw sum", "pass_threshold": 150, "scoring_method": "sum"})
    assert criteria.pass_threshold == 150


def test_fingerprint_tracks_active_definitions_only():
    base = {
        "name": "Scholarship",
        "rules": [
            {"field": "gpa", "operator": ">=", "value": 3.5},
            {"field": "hours", "operator": ">=", "value": 50, "active": False},
        ],
    }
    original = load_criteria(base)
    inactive_changed = load_criteria(
        {**base, "rules": [base["rules"][0], {**base["rules"][1], "value": 80}]}
    )
    changed = load_criteria({**base, "rules": [{**base["rules"][0], "value": 3.7}, base["rules"][1]]})

    assert original.fingerprint() == inactive_changed.fingerprint()
    assert original.fingerprint() != changed.fingerprint()


def test_criteria_is_immutable():
    criteria = load_criteria({"name": "Frozen"})

    with pytest.raises(ValidationError):
        criteria.pass_threshold = 10  # type: ignore[misc]

    assert isinstance(criteria, Criteria)


def test_threshold_declaration_order_does_not_change_fingerprint():
    ascending = load_criteria(
        {"name": "Bands", "decision_thresholds": [{"min_score": 0, "label": "rejected"}, {"min_score": 90, "label": "approved"}]}
    )
    descending = load_criteria({"name": "Bands", "decision_thresholds": {90: "approved", 0: "rejected"}})

    assert [t.min_score for t in ascending.decision_thresholds] == [90, 0]
    assert ascending.decision_thresholds == descending.decision_thresholds
    assert ascending.fingerprint() == descending.fingerprint()
