"""Field resolution and operator semantics."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping, Sequence

from ..errors import ConfigurationError
from ..schemas.criteria import RuleOperator, compile_pattern
from .results import OutcomeStatus


class _Absent:
    """Marker for a field path that does not resolve in the record."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def resolve_field(record: Mapping[str, Any], path: str) -> Any:
    """Return the value at ``path`` or ``ABSENT``.

    A literal dotted key on the top-level mapping wins over nested traversal,
    so flattened records and nested records address fields the same way.
    """
    if path in record:
        return record[path]
    current: Any = record
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return ABSENT
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return ABSENT
        else:
            return ABSENT
    return current


@dataclass(frozen=True, slots=True)
class Comparison:
    passed: bool
    status: OutcomeStatus
    error: str | None = None


class _MalformedOperand(Exception):
    pass


class ValueComparator:
    """Applies a single operator to an actual and an expected value."""

    def __init__(self) -> None:
        self._handlers: dict[RuleOperator, Callable[[Any, Any], bool]] = {
            RuleOperator.EQUAL: self._equals,
            RuleOperator.NOT_EQUAL: lambda actual, expected: not self._equals(actual, expected),
            RuleOperator.GREATER_THAN: lambda actual, expected: self._order(actual, expected, lambda a, b: a > b),
            RuleOperator.GREATER_THAN_OR_EQUAL: lambda actual, expected: self._order(
                actual, expected, lambda a, b: a >= b
            ),
            RuleOperator.LESS_THAN: lambda actual, expected: self._order(actual, expected, lambda a, b: a < b),
            RuleOperator.LESS_THAN_OR_EQUAL: lambda actual, expected: self._order(
                actual, expected, lambda a, b: a <= b
            ),
            RuleOperator.IN: self._member,
            RuleOperator.NOT_IN: lambda actual, expected: not self._member(actual, expected),
            RuleOperator.BETWEEN: self._between,
            RuleOperator.NOT_BETWEEN: lambda actual, expected: not self._between(actual, expected),
            RuleOperator.CONTAINS: self._contains,
            RuleOperator.STARTS_WITH: lambda actual, expected: isinstance(actual, str)
            and isinstance(expected, str)
            and actual.startswith(expected),
            RuleOperator.ENDS_WITH: lambda actual, expected: isinstance(actual, str)
            and isinstance(expected, str)
            and actual.endswith(expected),
            RuleOperator.EXISTS: lambda actual, expected: actual is not None and actual != "",
            RuleOperator.REGEX: self._regex,
        }

    def compare(self, actual: Any, operator: RuleOperator | str, expected: Any) -> Comparison:
        op = self._coerce_operator(operator)
        if op is RuleOperator.NOT_EXISTS:
            empty = actual is ABSENT or actual is None or actual == ""
            return self._verdict(empty)
        if actual is ABSENT:
            return Comparison(False, OutcomeStatus.FIELD_MISSING)
        try:
            return self._verdict(self._handlers[op](actual, expected))
        except _MalformedOperand as exc:
            return Comparison(False, OutcomeStatus.MALFORMED_RULE, str(exc))

    def matches(self, actual: Any, operator: RuleOperator | str, expected: Any) -> bool:
        return self.compare(actual, operator, expected).passed

    @staticmethod
    def _verdict(passed: bool) -> Comparison:
        return Comparison(bool(passed), OutcomeStatus.PASSED if passed else OutcomeStatus.VALUE_MISMATCH)

    @staticmethod
    def _coerce_operator(operator: RuleOperator | str) -> RuleOperator:
        if isinstance(operator, RuleOperator):
            return operator
        try:
            return RuleOperator(operator)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown operator '{operator}'") from exc

    @staticmethod
    def _as_number(value: Any) -> float | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                return None
        else:
            return None
        return number if math.isfinite(number) else None

    def _equals(self, actual: Any, expected: Any) -> bool:
        left, right = self._as_number(actual), self._as_number(expected)
        if left is not None and right is not None:
            return left == right
        if isinstance(actual, bool) != isinstance(expected, bool):
            return False
        if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
            return len(actual) == len(expected) and all(
                self._equals(a, b) for a, b in zip(actual, expected)
            )
        return actual == expected

    def _order(self, actual: Any, expected: Any, predicate: Callable[[Any, Any], bool]) -> bool:
        left, right = self._as_number(actual), self._as_number(expected)
        if left is not None and right is not None:
            return predicate(left, right)
        if actual is None or expected is None or isinstance(actual, bool) or isinstance(expected, bool):
            return False
        try:
            return bool(predicate(actual, expected))
        except TypeError:
            return False

    def _member(self, actual: Any, expected: Any) -> bool:
        if not isinstance(expected, (list, tuple)):
            raise _MalformedOperand("membership requires a list of candidate values")
        return any(self._equals(actual, candidate) for candidate in expected)

    def _between(self, actual: Any, expected: Any) -> bool:
        if not isinstance(expected, (list, tuple)) or len(expected) != 2:
            raise _MalformedOperand("range requires exactly two bounds [min, max]")
        low, high = expected
        return self._order(actual, low, lambda a, b: a >= b) and self._order(actual, high, lambda a, b: a <= b)

    def _contains(self, actual: Any, expected: Any) -> bool:
        if isinstance(actual, str):
            return isinstance(expected, str) and expected in actual
        if isinstance(actual, Mapping):
            try:
                return expected in actual
            except TypeError:
                return False
        if isinstance(actual, (list, tuple, set, frozenset)):
            return any(self._equals(item, expected) for item in actual)
        return False

    @staticmethod
    def _regex(actual: Any, expected: Any) -> bool:
        if not isinstance(expected, str):
            raise _MalformedOperand("regex requires a string pattern")
        try:
            pattern = compile_pattern(expected)
        except re.error as exc:
            raise _MalformedOperand(f"invalid regular expression: {exc}") from exc
        if not isinstance(actual, str):
            if actual is None or isinstance(actual, (Mapping, list, tuple)):
                return False
            actual = str(actual)
        return pattern.search(actual) is not None


__all__ = ["ABSENT", "Comparison", "ValueComparator", "resolve_field"]
