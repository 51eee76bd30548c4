"""Dependency gating between rules."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..schemas.criteria import Rule
from .operators import ValueComparator, resolve_field


class DependencyResolver:
    """Computes which rules must be skipped for a record.

    A rule is skipped when any of its dependency predicates does not hold.
    A dependency on a field missing from the record counts as unmet.
    """

    def __init__(self, comparator: ValueComparator | None = None) -> None:
        self._comparator = comparator or ValueComparator()

    def resolve(self, rules: Iterable[Rule], record: Mapping[str, Any]) -> frozenset[str]:
        skipped: set[str] = set()
        for rule in rules:
            if not self.is_satisfied(rule, record):
                skipped.add(rule.id)
        return frozenset(skipped)

    def is_satisfied(self, rule: Rule, record: Mapping[str, Any]) -> bool:
        return all(
            self._comparator.matches(resolve_field(record, dependency.field), dependency.operator, dependency.value)
            for dependency in rule.dependencies
        )
