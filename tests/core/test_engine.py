from __future__ import annotations

from typing import Any

import pytest

from eligibility.core import EligibilityEngine, EvaluationResult
from eligibility.core import InputValidator
from eligibility.errors import ConfigurationError, CriteriaNotFoundError, InputValidationError
from eligibility.repository import CriteriaRepository
from eligibility.schemas import load_criteria


def fixed_clock() -> str:
    return "2024-01-01T00:00:00Z"


def build_engine(**kwargs: Any) -> EligibilityEngine:
    return EligibilityEngine(clock=fixed_clock, **kwargs)


LOAN = {
    "name": "Loan Approval",
    "pass_threshold": 80,
    "scoring_method": "weighted",
    "rules": [
        {"field": "income", "operator": ">=", "value": 3000, "weight": 40, "order": 1},
        {"field": "credit_score", "operator": ">=", "value": 650, "weight": 40, "order": 2},
        {"field": "active_loans", "operator": "<=", "value": 2, "weight": 20, "order": 3},
    ],
}

GROUPED = {
    "name": "Grouped Loan",
    "pass_threshold": 50,
    "group_logic": "all",
    "groups": [
        {
            "name": "Financial",
            "logic": "all",
            "order": 1,
            "rules": [
                {"field": "income", "operator": ">=", "value": 3000, "order": 1},
                {"field": "debt_ratio", "operator": "<=", "value": 0.3, "order": 2},
            ],
        },
        {
            "name": "Credit",
            "logic": "any",
            "order": 2,
            "rules": [
                {"field": "credit_score", "operator": ">=", "value": 650, "order": 1},
                {"field": "no_defaults", "operator": "==", "value": True, "order": 2},
            ],
        },
    ],
}


class RecordingRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple[EvaluationResult, dict]] = []

    def record(self, result: EvaluationResult, record: dict) -> None:
        self.calls.append((result, record))


def test_weighted_scenario_full_pass():
    result = build_engine().evaluate(LOAN, {"income": 5000, "credit_score": 780, "active_loans": 1})

    assert result.score == 100
    assert result.passed is True
    assert result.failed_rules == ()
    assert result.version == 1


def test_weighted_scenario_full_fail():
    result = build_engine().evaluate(LOAN, {"income": 2000, "credit_score": 600, "active_loans": 5})

    assert result.score == 0
    assert result.passed is False
    assert [failure["field"] for failure in result.to_dict()["failed_rules"]] == [
        "income",
        "credit_score",
        "active_loans",
    ]


def test_grouped_scenario_passes_via_second_credit_rule():
    record = {"income": 4000, "debt_ratio": 0.2, "credit_score": 500, "no_defaults": True}

    result = build_engine().evaluate(GROUPED, record)

    assert result.passed is True
    assert result.outcome.passed is True
    assert result.score == 75
    groups = result.to_dict()["groups"]
    assert [group["group_id"] for group in groups] == ["financial", "credit"]
    assert groups[1]["passed_count"] == 1


def test_grouped_combination_gates_verdict_even_with_high_score():
    record = {"income": 4000, "debt_ratio": 0.5, "credit_score": 700, "no_defaults": True}

    result = build_engine().evaluate(GROUPED, record)

    assert result.score == 75
    assert result.outcome.passed is False
    assert result.passed is False


def test_decision_band_for_intermediate_score():
    criteria = {
        **LOAN,
        "pass_threshold": 70,
        "decision_thresholds": {90: "approved", 60: "review", 0: "rejected"},
    }

    result = build_engine().evaluate(criteria, {"income": 5000, "credit_score": 700, "active_loans": 4})

    assert result.score == 80
    assert result.decision == "review"


def test_default_decision_label():
    result = build_engine().evaluate(LOAN, {"income": 5000, "credit_score": 780, "active_loans": 1})

    assert result.decision == "Under Review"


def test_evaluation_is_deterministic_without_cache():
    engine = build_engine()
    record = {"income": 3500, "credit_score": 640, "active_loans": 2}

    first = engine.evaluate(LOAN, record)
    second = engine.evaluate(LOAN, record)

    assert first == second
    assert first.to_dict() == second.to_dict()
    assert engine.rule_evaluator.invocations == 6


def test_unmet_dependency_excludes_rule_everywhere():
    criteria = {
        "name": "Employment",
        "pass_threshold": 100,
        "rules": [
            {"field": "age", "operator": ">=", "value": 18, "weight": 1, "order": 1},
            {
                "field": "employment_years",
                "operator": ">=",
                "value": 2,
                "weight": 3,
                "order": 2,
                "dependency": {"field": "employed", "operator": "==", "value": True},
            },
        ],
    }
    engine = build_engine()

    for method in ("weighted", "pass_fail", "average", "percentage"):
        result = engine.evaluate({**criteria, "scoring_method": method}, {"age": 30, "employed": False})
        assert result.score == 100, method
        assert result.passed is True
        assert result.failed_rules == ()
        skipped = [entry for entry in result.to_dict()["execution_log"] if entry["skipped"]]
        assert [entry["field"] for entry in skipped] == ["employment_years"]


def test_dependency_on_absent_field_skips_rule():
    criteria = {
        "name": "Dependent",
        "rules": [
            {
                "field": "salary",
                "operator": ">=",
                "value": 1000,
                "dependency": {"field": "employed", "operator": "==", "value": True},
            }
        ],
    }

    result = build_engine().evaluate(criteria, {"salary": 10})

    assert result.execution_log[0].skipped is True
    assert result.score == 100


def test_raising_weight_of_passing_rule_never_lowers_score():
    record = {"income": 5000, "credit_score": 600, "active_loans": 1}
    engine = build_engine()
    previous = None
    for weight in (1, 10, 40, 100):
        rules = [dict(LOAN["rules"][0], weight=weight), *LOAN["rules"][1:]]
        score = engine.evaluate({**LOAN, "rules": rules}, record).score
        if previous is not None:
            assert score >= previous
        previous = score


def test_raising_threshold_never_turns_fail_into_pass():
    record = {"income": 5000, "credit_score": 600, "active_loans": 1}
    engine = build_engine()
    verdicts = [engine.evaluate({**LOAN, "pass_threshold": t}, record).passed for t in (40, 60, 80, 100)]

    assert verdicts == sorted(verdicts, reverse=True)


def test_malformed_rule_fails_without_aborting():
    criteria = {
        "name": "Range",
        "rules": [
            {"field": "age", "operator": "between", "value": [18], "order": 1},
            {"field": "age", "operator": ">=", "value": 18, "order": 2},
        ],
    }

    result = build_engine().evaluate(criteria, {"age": 30})

    statuses = [entry["status"] for entry in result.to_dict()["execution_log"]]
    assert statuses == ["malformed_rule", "passed"]
    assert result.score == 50


def test_recorder_receives_results_unless_disabled():
    recorder = RecordingRecorder()
    engine = build_engine(recorder=recorder)
    record = {"income": 5000, "credit_score": 780, "active_loans": 1}

    engine.evaluate(LOAN, record)
    engine.evaluate(LOAN, record, record_result=False)

    assert len(recorder.calls) == 1
    assert recorder.calls[0][1] is record


def test_evaluate_version_uses_stored_snapshot():
    repository = CriteriaRepository()
    repository.save(LOAN)
    repository.save({**LOAN, "pass_threshold": 100})
    engine = build_engine(source=repository)
    record = {"income": 5000, "credit_score": 780, "active_loans": 5}

    first = engine.evaluate_version("Loan Approval", 1, record)
    latest = engine.evaluate("loan-approval", record)

    assert first.version == 1 and first.passed is True
    assert latest.version == 2 and latest.passed is False
    with pytest.raises(CriteriaNotFoundError):
        engine.evaluate_version("Loan Approval", 9, record)
    with pytest.raises(CriteriaNotFoundError):
        engine.evaluate("Unknown", record)


def test_duplicate_rule_ids_with_different_definitions_are_rejected():
    criteria = {
        "name": "Duplicates",
        "rules": [
            {"id": "r1", "field": "a", "operator": "==", "value": 1},
            {"id": "r1", "field": "b", "operator": "==", "value": 2},
        ],
    }

    with pytest.raises(ConfigurationError):
        build_engine().evaluate(criteria, {"a": 1})


def test_group_nested_inside_itself_is_rejected():
    criteria = {
        "name": "Cycle",
        "groups": [{"id": "g", "name": "g", "groups": [{"id": "g", "name": "g again"}]}],
    }

    with pytest.raises(ConfigurationError):
        build_engine().execution_plan(criteria)


def test_execution_plan_describes_structure():
    plan = build_engine().execution_plan(GROUPED)

    assert plan["name"] == "Grouped Loan"
    assert plan["rule_count"] == 4
    assert plan["group_gate"] is True
    assert [group["id"] for group in plan["groups"]] == ["financial", "credit"]
    assert plan["fingerprint"] == load_criteria(GROUPED).fingerprint()


def test_pass_gate_uses_unrounded_score():
    criteria = {
        "name": "Borderline",
        "pass_threshold": 80,
        "decision_thresholds": {80: "approved", 0: "rejected"},
        "rules": [
            {"field": "income", "operator": ">=", "value": 3000, "weight": 79.996, "order": 1},
            {"field": "credit_score", "operator": ">=", "value": 650, "weight": 20.004, "order": 2},
        ],
    }

    result = build_engine().evaluate(criteria, {"income": 5000, "credit_score": 600})

    assert result.score == 80.0
    assert result.passed is False
    assert result.decision == "rejected"


def test_inactive_criteria_is_not_resolved_by_name():
    repository = CriteriaRepository()
    repository.save({**LOAN, "active": False})
    engine = build_engine(source=repository)

    with pytest.raises(CriteriaNotFoundError):
        engine.evaluate("Loan Approval", {"income": 5000})

    result = engine.evaluate(repository.get("Loan Approval"), {"income": 5000, "credit_score": 700, "active_loans": 0})
    assert result.passed is True


def test_input_limits_reject_oversized_records():
    engine = build_engine(input_validator=InputValidator(max_field_length=10, max_value_length=5))

    with pytest.raises(InputValidationError) as long_name:
        engine.evaluate(LOAN, {"x" * 11: 1})
    with pytest.raises(InputValidationError) as long_value:
        engine.evaluate(LOAN, {"profile": {"notes": ["ok", "too long"]}})

    assert long_value.value.field == "profile.notes.1"
    assert "exceeds maximum length of 10" in str(long_name.value)
    batch = engine.evaluate_batch(LOAN, [{"income": 5000}, {"income": "123456"}])
    assert batch.results[1].error is not None
    assert batch.results[0].error is None


def test_disabled_input_validation_accepts_long_values():
    engine = build_engine(input_validator=InputValidator(enabled=False, max_value_length=1))

    assert engine.evaluate(LOAN, {"income": 5000, "note": "long text"}).score == 40
