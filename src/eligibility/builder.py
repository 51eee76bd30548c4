"""Fluent authoring API for criteria definitions."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .errors import ConfigurationError
from .schemas.criteria import (
    CombinationLogic,
    Criteria,
    RulePriority,
    ScoringMethod,
    build_rule,
    load_criteria,
    slugify,
)
from .workflow import Trigger, TriggerCondition, TriggerEvent

PRESETS: dict[str, dict[str, Any]] = {
    "loan_approval": {
        "name": "Loan Approval",
        "description": "Standard loan approval criteria",
        "pass_threshold": 70,
        "rules": [
            {"field": "credit_score", "operator": ">=", "value": 650, "weight": 8},
            {"field": "income", "operator": ">=", "value": 30000, "weight": 7},
            {"field": "debt_to_income_ratio", "operator": "<=", "value": 0.4, "weight": 6},
            {"field": "employment_years", "operator": ">=", "value": 2, "weight": 5},
            {"field": "active_bankruptcies", "operator": "==", "value": 0, "weight": 10},
        ],
    },
    "scholarship_eligibility": {
        "name": "Scholarship Eligibility",
        "description": "Academic scholarship criteria",
        "pass_threshold": 75,
        "rules": [
            {"field": "gpa", "operator": ">=", "value": 3.5, "weight": 9},
            {"field": "family_income", "operator": "<=", "value": 60000, "weight": 6},
            {"field": "community_service_hours", "operator": ">=", "value": 50, "weight": 4},
            {"field": "enrollment_status", "operator": "==", "value": "full_time", "weight": 7},
        ],
    },
    "job_application": {
        "name": "Job Application",
        "description": "Standard job application screening",
        "pass_threshold": 65,
        "rules": [
            {"field": "years_experience", "operator": ">=", "value": 3, "weight": 8},
            {"field": "education_level", "operator": "in", "value": ["bachelor", "master", "phd"], "weight": 6},
            {"field": "skills_match_percentage", "operator": ">=", "value": 70, "weight": 7},
            {"field": "background_check", "operator": "==", "value": "passed", "weight": 9},
        ],
    },
}


def _rule_payload(
    field: str,
    operator: str,
    value: Any,
    weight: float | None,
    priority: RulePriority | str,
    order: int,
    dependency: Mapping[str, Any] | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "field": field,
        "operator": operator,
        "value": value,
        "weight": RulePriority(priority).weight if weight is None else weight,
        "priority": RulePriority(priority).value,
        "order": order,
    }
    if dependency is not None:
        payload["dependency"] = dict(dependency)
    # Raises ConfigurationError on an invalid rule.
    build_rule(payload)
    return payload


class GroupBuilder:
    """Collects rules and nested groups for one ``RuleGroup``."""

    def __init__(self, parent: CriteriaBuilder | GroupBuilder, name: str, logic: CombinationLogic | str) -> None:
        self._parent = parent
        self._data: dict[str, Any] = {
            "id": slugify(name),
            "name": name,
            "logic": CombinationLogic(logic).value,
        }
        self._rules: list[dict[str, Any]] = []
        self._groups: list[GroupBuilder] = []

    def add_rule(
        self,
        field: str,
        operator: str,
        value: Any = None,
        weight: float | None = None,
        *,
        priority: RulePriority | str = RulePriority.MEDIUM,
        dependency: Mapping[str, Any] | None = None,
    ) -> GroupBuilder:
        self._rules.append(_rule_payload(field, operator, value, weight, priority, len(self._rules) + 1, dependency))
        return self

    def add_rules(self, rules: Iterable[Mapping[str, Any]]) -> GroupBuilder:
        for rule in rules:
            self.add_rule(
                rule["field"],
                rule["operator"],
                rule.get("value"),
                rule.get("weight"),
                priority=rule.get("priority", RulePriority.MEDIUM),
                dependency=rule.get("dependency"),
            )
        return self

    def require_all(self) -> GroupBuilder:
        self._data["logic"] = CombinationLogic.ALL.value
        return self

    def require_any(self) -> GroupBuilder:
        self._data["logic"] = CombinationLogic.ANY.value
        return self

    def require_majority(self) -> GroupBuilder:
        self._data["logic"] = CombinationLogic.MAJORITY.value
        return self

    def require_min(self, count: int) -> GroupBuilder:
        if count < 1:
            raise ConfigurationError("Minimum required rules must be at least 1")
        self._data["logic"] = CombinationLogic.MIN.value
        self._data["min_required"] = count
        return self

    min_required = require_min

    def weight(self, weight: float) -> GroupBuilder:
        self._data["weight"] = weight
        return self

    def description(self, text: str) -> GroupBuilder:
        self._data["description"] = text
        return self

    def group(self, name: str, logic: CombinationLogic | str = CombinationLogic.ALL) -> GroupBuilder:
        child = GroupBuilder(self, name, logic)
        self._groups.append(child)
        return child

    def end(self) -> Any:
        """Return to the enclosing builder."""
        return self._parent

    def to_dict(self, order: int) -> dict[str, Any]:
        return {
            **self._data,
            "order": order,
            "rules": list(self._rules),
            "groups": [group.to_dict(index) for index, group in enumerate(self._groups, start=1)],
        }


class CriteriaBuilder:
    """Builds an immutable ``Criteria`` through chained calls."""

    def __init__(self, name: str) -> None:
        self._data: dict[str, Any] = {"name": name}
        self._rules: list[dict[str, Any]] = []
        self._groups: list[GroupBuilder] = []
        self._triggers: list[Trigger] = []

    @classmethod
    def criteria(cls, name: str) -> CriteriaBuilder:
        return cls(name)

    @classmethod
    def from_preset(cls, name: str) -> CriteriaBuilder:
        try:
            preset = PRESETS[name]
        except KeyError as exc:
            raise ConfigurationError(
                f"Unknown preset '{name}'", errors=[f"available: {', '.join(sorted(PRESETS))}"]
            ) from exc
        builder = cls(preset["name"]).description(preset["description"]).pass_threshold(preset["pass_threshold"])
        return builder.add_rules(preset["rules"])

    def description(self, text: str) -> CriteriaBuilder:
        self._data["description"] = text
        return self

    def pass_threshold(self, threshold: float) -> CriteriaBuilder:
        if threshold < 0:
            raise ConfigurationError("Pass threshold must not be negative")
        self._data["pass_threshold"] = threshold
        return self

    def scoring_method(self, method: ScoringMethod | str) -> CriteriaBuilder:
        self._data["scoring_method"] = ScoringMethod(method).value
        return self

    def group_logic(self, logic: CombinationLogic | str, min_required: int | None = None) -> CriteriaBuilder:
        self._data["group_logic"] = CombinationLogic(logic).value
        if min_required is not None:
            self._data["group_min_required"] = min_required
        return self

    def decision_thresholds(self, thresholds: Mapping[float, str]) -> CriteriaBuilder:
        self._data["decision_thresholds"] = [
            {"min_score": score, "label": label} for score, label in thresholds.items()
        ]
        return self

    def default_decision(self, label: str) -> CriteriaBuilder:
        self._data["default_decision"] = label
        return self

    def active(self, active: bool = True) -> CriteriaBuilder:
        self._data["active"] = active
        return self

    def add_rule(
        self,
        field: str,
        operator: str,
        value: Any = None,
        weight: float | None = None,
        *,
        priority: RulePriority | str = RulePriority.MEDIUM,
        dependency: Mapping[str, Any] | None = None,
    ) -> CriteriaBuilder:
        self._rules.append(_rule_payload(field, operator, value, weight, priority, len(self._rules) + 1, dependency))
        return self

    def add_rules(self, rules: Iterable[Mapping[str, Any]]) -> CriteriaBuilder:
        for rule in rules:
            self.add_rule(
                rule["field"],
                rule["operator"],
                rule.get("value"),
                rule.get("weight"),
                priority=rule.get("priority", RulePriority.MEDIUM),
                dependency=rule.get("dependency"),
            )
        return self

    def group(self, name: str, logic: CombinationLogic | str = CombinationLogic.ALL) -> GroupBuilder:
        builder = GroupBuilder(self, name, logic)
        self._groups.append(builder)
        return builder

    def on_pass(self, action: str) -> CriteriaBuilder:
        return self.on(TriggerEvent.ON_PASS, action)

    def on_fail(self, action: str) -> CriteriaBuilder:
        return self.on(TriggerEvent.ON_FAIL, action)

    def on_excellent(self, action: str) -> CriteriaBuilder:
        return self.on(TriggerEvent.ON_EXCELLENT, action)

    def on_good(self, action: str) -> CriteriaBuilder:
        return self.on(TriggerEvent.ON_GOOD, action)

    def after_evaluation(self, action: str) -> CriteriaBuilder:
        return self.on(TriggerEvent.AFTER_EVALUATION, action)

    def on_score_range(self, min_score: float, max_score: float, action: str) -> CriteriaBuilder:
        condition = TriggerCondition(score_range=(min_score, max_score))
        return self.on(TriggerEvent.ON_CONDITION, action, condition)

    def on(
        self,
        event: TriggerEvent | str,
        action: str,
        condition: TriggerCondition | None = None,
    ) -> CriteriaBuilder:
        self._triggers.append(Trigger(event=TriggerEvent(event), action=action, condition=condition))
        return self

    @property
    def triggers(self) -> tuple[Trigger, ...]:
        return tuple(self._triggers)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self._data,
            "rules": list(self._rules),
            "groups": [group.to_dict(index) for index, group in enumerate(self._groups, start=1)],
        }

    def build(self) -> Criteria:
        return load_criteria(self.to_dict())


__all__ = ["PRESETS", "CriteriaBuilder", "GroupBuilder"]
