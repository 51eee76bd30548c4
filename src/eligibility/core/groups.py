"""Recursive group evaluation and combination logic."""

from __future__ import annotations

from typing import Any, Mapping

from ..schemas.criteria import CombinationLogic, Criteria, Rule, RuleGroup
from .results import GroupOutcome, RuleOutcome
from .rules import RuleEvaluator

DEFAULT_GROUP_ID = "default"
ROOT_GROUP_ID = "root"


def combine_logic(logic: CombinationLogic, passed: int, considered: int, min_required: int | None = None) -> bool:
    """Apply a combination truth table to ``passed`` of ``considered`` members."""
    if logic in (CombinationLogic.ALL, CombinationLogic.AND, CombinationLogic.BOOLEAN):
        return passed == considered
    if logic in (CombinationLogic.ANY, CombinationLogic.OR):
        return passed >= 1
    if logic is CombinationLogic.MAJORITY:
        return passed > considered / 2
    if logic is CombinationLogic.MIN:
        return passed >= (1 if min_required is None else min_required)
    if logic is CombinationLogic.NAND:
        return passed != considered
    if logic is CombinationLogic.NOR:
        return passed == 0
    if logic is CombinationLogic.XOR:
        return passed == 1
    raise ValueError(f"Unsupported combination logic: {logic}")


class GroupEvaluator:
    """Evaluates rule groups depth-first, children in declared order."""

    def __init__(self, rule_evaluator: RuleEvaluator | None = None) -> None:
        self._rules = rule_evaluator or RuleEvaluator()

    def evaluate(self, group: RuleGroup, record: Mapping[str, Any], skip: frozenset[str] = frozenset()) -> GroupOutcome:
        children: list[RuleOutcome | GroupOutcome] = [
            self._rules.evaluate(rule, record, skipped=rule.id in skip) for rule in group.active_rules()
        ]
        children.extend(self.evaluate(child, record, skip) for child in group.active_groups())
        return self._combine(
            group_id=group.id,
            name=group.name,
            logic=group.logic,
            min_required=group.min_required,
            weight=group.weight,
            children=children,
        )

    def evaluate_top_level(
        self,
        criteria: Criteria,
        record: Mapping[str, Any],
        skip: frozenset[str] = frozenset(),
    ) -> GroupOutcome:
        """Evaluate ungrouped rules and every active group under one root."""
        children: list[RuleOutcome | GroupOutcome] = []
        ungrouped = criteria.active_rules()
        if ungrouped:
            children.append(self._implicit_group(ungrouped, record, skip))
        children.extend(self.evaluate(group, record, skip) for group in criteria.active_groups())
        return self._combine(
            group_id=ROOT_GROUP_ID,
            name=criteria.name,
            logic=criteria.group_logic,
            min_required=criteria.group_min_required,
            weight=1.0,
            children=children,
        )

    def _implicit_group(
        self,
        rules: tuple[Rule, ...],
        record: Mapping[str, Any],
        skip: frozenset[str],
    ) -> GroupOutcome:
        outcomes = [self._rules.evaluate(rule, record, skipped=rule.id in skip) for rule in rules]
        return self._combine(
            group_id=DEFAULT_GROUP_ID,
            name=DEFAULT_GROUP_ID,
            logic=CombinationLogic.ALL,
            min_required=None,
            weight=1.0,
            children=outcomes,
        )

    @staticmethod
    def _combine(
        *,
        group_id: str,
        name: str,
        logic: CombinationLogic,
        min_required: int | None,
        weight: float,
        children: list[RuleOutcome | GroupOutcome],
    ) -> GroupOutcome:
        considered = 0
        passed_count = 0
        for child in children:
            # A nested group always counts once, by its verdict.
            if isinstance(child, RuleOutcome) and child.skipped:
                continue
            considered += 1
            passed_count += int(child.passed)

        passed = combine_logic(logic, passed_count, considered, min_required)
        score = round(100.0 * passed_count / considered, 2) if considered else 100.0
        return GroupOutcome(
            group_id=group_id,
            name=name,
            logic=logic.value,
            passed=passed,
            score=score,
            children=tuple(children),
            considered=considered,
            passed_count=passed_count,
            weight=weight,
        )

