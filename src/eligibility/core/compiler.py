"""Structural validation of criteria before evaluation."""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ConfigurationError
from ..schemas.criteria import Criteria, Rule, RuleGroup


@dataclass(frozen=True, slots=True)
class CompiledCriteria:
    """Validated criteria plus the values derived from it once."""

    criteria: Criteria
    fingerprint: str
    rules: tuple[Rule, ...]
    has_groups: bool


class CriteriaCompiler:
    """Rejects cyclic group nesting and conflicting rule identifiers."""

    def compile(self, criteria: Criteria) -> CompiledCriteria:
        errors: list[str] = []
        for group in criteria.active_groups():
            self._check_nesting(group, (), errors)

        rules = tuple(criteria.iter_active_rules())
        seen: dict[str, Rule] = {}
        for rule in rules:
            previous = seen.setdefault(rule.id, rule)
            if previous is not rule and previous.structure() != rule.structure():
                errors.append(f"duplicate rule id '{rule.id}' with different definitions")

        if errors:
            raise ConfigurationError(f"Criteria '{criteria.name}' is not evaluable", errors=errors)

        return CompiledCriteria(
            criteria=criteria,
            fingerprint=criteria.fingerprint(),
            rules=rules,
            has_groups=criteria.has_groups,
        )

    def _check_nesting(self, group: RuleGroup, ancestors: tuple[str, ...], errors: list[str]) -> None:
        if group.id in ancestors:
            errors.append(f"group '{group.id}' is nested inside itself ({' > '.join((*ancestors, group.id))})")
            return
        path = (*ancestors, group.id)
        for child in group.active_groups():
            self._check_nesting(child, path, errors)
