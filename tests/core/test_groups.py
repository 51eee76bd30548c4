from __future__ import annotations

import pytest

from eligibility.core import GroupEvaluator, GroupOutcome, combine_logic
from eligibility.schemas import CombinationLogic, load_criteria
from eligibility.schemas.criteria import RuleGroup


def two_rule_group(logic: str) -> RuleGroup:
    return RuleGroup.model_validate(
        {
            "name": f"{logic} group",
            "logic": logic,
            "rules": [
                {"field": "a", "operator": "==", "value": True, "order": 1},
                {"field": "b", "operator": "==", "value": True, "order": 2},
            ],
        }
    )


@pytest.mark.parametrize(
    "logic, table",
    [
        ("xor", {(True, True): False, (True, False): True, (False, True): True, (False, False): False}),
        ("nand", {(True, True): False, (True, False): True, (False, True): True, (False, False): True}),
        ("nor", {(True, True): False, (True, False): False, (False, True): False, (False, False): True}),
        ("and", {(True, True): True, (True, False): False, (False, True): False, (False, False): False}),
        ("or", {(True, True): True, (True, False): True, (False, True): True, (False, False): False}),
    ],
)
def test_two_rule_truth_tables(logic, table):
    evaluator = GroupEvaluator()
    group = two_rule_group(logic)

    for (a, b), expected in table.items():
        outcome = evaluator.evaluate(group, {"a": a, "b": b})
        assert outcome.passed is expected, (logic, a, b)
        assert outcome.considered == 2


def test_combine_logic_counts():
    assert combine_logic(CombinationLogic.MAJORITY, 2, 3) is True
    assert combine_logic(CombinationLogic.MAJORITY, 2, 4) is False
    assert combine_logic(CombinationLogic.MIN, 2, 5, min_required=2) is True
    assert combine_logic(CombinationLogic.MIN, 0, 5) is False
    assert combine_logic(CombinationLogic.ALL, 0, 0) is True
    assert combine_logic(CombinationLogic.BOOLEAN, 1, 2) is False


def test_skipped_rules_are_excluded_from_group_counts():
    evaluator = GroupEvaluator()
    group = two_rule_group("all")
    skipped_id = group.rules[1].id

    outcome = evaluator.evaluate(group, {"a": True, "b": False}, frozenset({skipped_id}))

    assert outcome.passed is True
    assert outcome.considered == 1
    assert outcome.passed_count == 1
    assert outcome.score == 100


def test_nested_group_contributes_only_its_verdict():
    group = RuleGroup.model_validate(
        {
            "name": "outer",
            "logic": "all",
            "rules": [{"field": "income", "operator": ">=", "value": 3000}],
            "groups": [
                {
                    "name": "inner",
                    "logic": "any",
                    "rules": [
                        {"field": "x", "operator": "==", "value": 1, "order": 1},
                        {"field": "y", "operator": "==", "value": 1, "order": 2},
                        {"field": "z", "operator": "==", "value": 1, "order": 3},
                    ],
                }
            ],
        }
    )

    outcome = GroupEvaluator().evaluate(group, {"income": 5000, "x": 0, "y": 0, "z": 1})

    inner = outcome.children[-1]
    assert isinstance(inner, GroupOutcome)
    assert inner.passed is True
    assert inner.passed_count == 1
    assert outcome.considered == 2
    assert outcome.passed is True
    assert len(list(outcome.iter_rule_outcomes())) == 4


def test_top_level_wraps_ungrouped_rules_in_default_group():
    criteria = load_criteria(
        {
            "name": "Mixed",
            "group_logic": "any",
            "rules": [{"field": "age", "operator": ">=", "value": 18}],
            "groups": [{"name": "Residency", "rules": [{"field": "country", "operator": "==", "value": "NL"}]}],
        }
    )

    outcome = GroupEvaluator().evaluate_top_level(criteria, {"age": 16, "country": "NL"})

    assert [child.group_id for child in outcome.children] == ["default", "residency"]
    assert outcome.logic == "any"
    assert outcome.passed is True
    assert outcome.passed_count == 1


@pytest.mark.parametrize(
    "logic, expected",
    [
        ("all", True),
        ("and", True),
        ("boolean", True),
        ("any", False),
        ("or", False),
        ("majority", False),
        ("min", False),
        ("nand", False),
        ("nor", True),
        ("xor", False),
    ],
)
def test_fully_skipped_group_still_counts_in_parent(logic, expected):
    group = RuleGroup.model_validate(
        {
            "name": "outer",
            "logic": "all",
            "rules": [{"field": "income", "operator": ">=", "value": 3000}],
            "groups": [{"name": "inner", "logic": logic, "rules": [{"field": "x", "operator": "==", "value": 1}]}],
        }
    )
    inner_rule_id = group.groups[0].rules[0].id

    outcome = GroupEvaluator().evaluate(group, {"income": 5000}, frozenset({inner_rule_id}))

    inner = outcome.children[-1]
    assert inner.considered == 0
    assert inner.passed is expected
    assert outcome.considered == 2
    assert outcome.passed is expected


def test_skipped_any_group_blocks_all_top_level():
    criteria = load_criteria(
        {
            "name": "Alternatives",
            "group_logic": "all",
            "groups": [
                {"id": "fin", "name": "Financial", "rules": [{"field": "income", "operator": ">=", "value": 3000}]},
                {
                    "id": "alt",
                    "name": "Alternative",
                    "logic": "any",
                    "rules": [
                        {
                            "field": "guarantor",
                            "operator": "exists",
                            "dependency": {"field": "needs_guarantor", "operator": "==", "value": True},
                        }
                    ],
                },
            ],
        }
    )
    alt_rule_id = criteria.groups[1].rules[0].id

    outcome = GroupEvaluator().evaluate_top_level(criteria, {"income": 5000}, frozenset({alt_rule_id}))

    alt = next(child for child in outcome.children if child.group_id == "alt")
    assert alt.passed is False
    assert outcome.passed is False
