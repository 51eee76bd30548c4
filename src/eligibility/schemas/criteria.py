"""Immutable criteria definitions consumed by the evaluation engine."""

from __future__ import annotations

import re
from enum import Enum
from functools import lru_cache
from typing import Any, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError
from ..hashing import content_hash


class RuleOperator(str, Enum):
    """Comparison operators supported by rules and dependencies."""

    EQUAL = "=="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    REGEX = "regex"

    @classmethod
    def _missing_(cls, value: object) -> RuleOperator | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        normalized = _OPERATOR_ALIASES.get(normalized, normalized)
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def requires_multiple_values(self) -> bool:
        return self in _MULTI_VALUE_OPERATORS

    @property
    def is_numeric_comparison(self) -> bool:
        return self in _NUMERIC_OPERATORS

    @property
    def is_string_operation(self) -> bool:
        return self in _STRING_OPERATORS

    @property
    def label(self) -> str:
        return _OPERATOR_LABELS[self]


_OPERATOR_ALIASES: dict[str, str] = {
    "=": "==",
    "eq": "==",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "matches": "regex",
    "not in": "not_in",
    "not between": "not_between",
}

_MULTI_VALUE_OPERATORS = frozenset(
    {RuleOperator.IN, RuleOperator.NOT_IN, RuleOperator.BETWEEN, RuleOperator.NOT_BETWEEN}
)

_NUMERIC_OPERATORS = frozenset(
    {
        RuleOperator.EQUAL,
        RuleOperator.NOT_EQUAL,
        RuleOperator.GREATER_THAN,
        RuleOperator.GREATER_THAN_OR_EQUAL,
        RuleOperator.LESS_THAN,
        RuleOperator.LESS_THAN_OR_EQUAL,
        RuleOperator.BETWEEN,
        RuleOperator.NOT_BETWEEN,
    }
)

_STRING_OPERATORS = frozenset(
    {RuleOperator.CONTAINS, RuleOperator.STARTS_WITH, RuleOperator.ENDS_WITH, RuleOperator.REGEX}
)

# Operators whose expected value must not be a collection.
_SCALAR_OPERATORS = frozenset(
    {
        RuleOperator.GREATER_THAN,
        RuleOperator.GREATER_THAN_OR_EQUAL,
        RuleOperator.LESS_THAN,
        RuleOperator.LESS_THAN_OR_EQUAL,
        RuleOperator.STARTS_WITH,
        RuleOperator.ENDS_WITH,
        RuleOperator.REGEX,
    }
)

_OPERATOR_LABELS: dict[RuleOperator, str] = {
    RuleOperator.EQUAL: "Equal To",
    RuleOperator.NOT_EQUAL: "Not Equal To",
    RuleOperator.GREATER_THAN: "Greater Than",
    RuleOperator.GREATER_THAN_OR_EQUAL: "Greater Than or Equal",
    RuleOperator.LESS_THAN: "Less Than",
    RuleOperator.LESS_THAN_OR_EQUAL: "Less Than or Equal",
    RuleOperator.IN: "In List",
    RuleOperator.NOT_IN: "Not In List",
    RuleOperator.BETWEEN: "Between",
    RuleOperator.NOT_BETWEEN: "Not Between",
    RuleOperator.CONTAINS: "Contains",
    RuleOperator.STARTS_WITH: "Starts With",
    RuleOperator.ENDS_WITH: "Ends With",
    RuleOperator.EXISTS: "Exists",
    RuleOperator.NOT_EXISTS: "Does Not Exist",
    RuleOperator.REGEX: "Regular Expression",
}


class CombinationLogic(str, Enum):
    """How the members of a group (or the top-level groups) combine."""

    ALL = "all"
    ANY = "any"
    MAJORITY = "majority"
    MIN = "min"
    BOOLEAN = "boolean"
    AND = "and"
    OR = "or"
    NAND = "nand"
    NOR = "nor"
    XOR = "xor"

    @classmethod
    def _missing_(cls, value: object) -> CombinationLogic | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "min_required":
            normalized = "min"
        for member in cls:
            if member.value == normalized:
                return member
        return None


class ScoringMethod(str, Enum):
    """Aggregation applied to rule outcomes to produce the final score."""

    WEIGHTED = "weighted"
    PASS_FAIL = "pass_fail"
    SUM = "sum"
    AVERAGE = "average"
    PERCENTAGE = "percentage"

    @property
    def normalized(self) -> bool:
        """Whether scores produced by this method live on the 0-100 scale."""
        return self is not ScoringMethod.SUM


class RulePriority(str, Enum):
    """Authoring shorthand mapping importance to a default weight."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def weight(self) -> float:
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS: dict[RulePriority, float] = {
    RulePriority.CRITICAL: 100.0,
    RulePriority.HIGH: 75.0,
    RulePriority.MEDIUM: 50.0,
    RulePriority.LOW: 25.0,
    RulePriority.INFO: 0.0,
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE, "u": 0}


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a pattern, accepting ``/body/flags`` delimited notation."""
    if len(pattern) > 2 and pattern[0] == "/":
        end = pattern.rfind("/")
        suffix = pattern[end + 1 :]
        if end > 0 and all(flag in _REGEX_FLAGS for flag in suffix):
            flags = 0
            for flag in suffix:
                flags |= _REGEX_FLAGS[flag]
            return re.compile(pattern[1:end], flags)
    return re.compile(pattern)


def check_operator_value(operator: RuleOperator, value: Any) -> None:
    """Validate that ``value`` has the shape ``operator`` expects.

    Raises ``ValueError`` so pydantic can attach field locations.
    """
    if operator.requires_multiple_values:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"operator '{operator.value}' requires a list value, got {type(value).__name__}")
        if operator in (RuleOperator.IN, RuleOperator.NOT_IN) and not value:
            raise ValueError(f"operator '{operator.value}' requires a non-empty list")
        return
    if operator in _SCALAR_OPERATORS and isinstance(value, (list, tuple, dict)):
        raise ValueError(f"operator '{operator.value}' requires a scalar value")
    if operator is RuleOperator.REGEX:
        if not isinstance(value, str):
            raise ValueError("operator 'regex' requires a string pattern")
        try:
            compile_pattern(value)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc


class Dependency(BaseModel):
    """Data predicate that must hold before a rule is evaluated."""

    field: str = Field(min_length=1)
    operator: RuleOperator
    value: Any = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_value_shape(self) -> Dependency:
        check_operator_value(self.operator, self.value)
        return self


class Rule(BaseModel):
    """Single field/operator/value condition with a weight."""

    id: str
    field: str = Field(min_length=1)
    operator: RuleOperator
    value: Any = None
    weight: float = Field(default=1.0, ge=0)
    active: bool = True
    dependencies: tuple[Dependency, ...] = ()
    order: int = 0
    priority: RulePriority | None = None
    description: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        single = payload.pop("dependency", None)
        if single is not None:
            payload["dependencies"] = [*payload.get("dependencies", ()), single]
        if not payload.get("id"):
            payload["id"] = _derive_rule_id(payload)
        return payload

    @model_validator(mode="after")
    def _check_value_shape(self) -> Rule:
        check_operator_value(self.operator, self.value)
        return self

    def structure(self) -> dict[str, Any]:
        return self.model_dump(
            mode="json",
            include={"id", "field", "operator", "value", "weight", "dependencies", "order"},
        )


class RuleGroup(BaseModel):
    """Ordered rules and nested groups combined under one logic."""

    id: str
    name: str
    logic: CombinationLogic = CombinationLogic.ALL
    min_required: int | None = Field(default=None, ge=0)
    weight: float = Field(default=1.0, ge=0)
    order: int = 0
    active: bool = True
    description: str | None = None
    rules: tuple[Rule, ...] = ()
    groups: tuple[RuleGroup, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _default_identity(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        if not payload.get("id") and payload.get("name"):
            payload["id"] = slugify(str(payload["name"]))
        if not payload.get("name") and payload.get("id"):
            payload["name"] = str(payload["id"])
        return payload

    def active_rules(self) -> tuple[Rule, ...]:
        return tuple(sorted((rule for rule in self.rules if rule.active), key=lambda rule: rule.order))

    def active_groups(self) -> tuple[RuleGroup, ...]:
        return tuple(sorted((group for group in self.groups if group.active), key=lambda group: group.order))

    def iter_active_rules(self) -> Iterator[Rule]:
        yield from self.active_rules()
        for group in self.active_groups():
            yield from group.iter_active_rules()

    def structure(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "logic": self.logic.value,
            "min_required": self.min_required,
            "weight": self.weight,
            "order": self.order,
            "rules": [rule.structure() for rule in self.active_rules()],
            "groups": [group.structure() for group in self.active_groups()],
        }


class DecisionThreshold(BaseModel):
    """Score band mapped to a decision label."""

    min_score: float
    label: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class Criteria(BaseModel):
    """Named, versioned rule set with scoring and decision configuration."""

    id: str
    name: str = Field(min_length=1)
    description: str | None = None
    version: int = Field(default=1, ge=1)
    active: bool = True
    pass_threshold: float = Field(default=65.0, ge=0)
    scoring_method: ScoringMethod = ScoringMethod.WEIGHTED
    decision_thresholds: tuple[DecisionThreshold, ...] = ()
    group_logic: CombinationLogic = CombinationLogic.ALL
    group_min_required: int | None = Field(default=None, ge=0)
    default_decision: str | None = None
    rules: tuple[Rule, ...] = ()
    groups: tuple[RuleGroup, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)
        if not payload.get("id") and payload.get("name"):
            payload["id"] = slugify(str(payload["name"]))
        thresholds = payload.get("decision_thresholds")
        if isinstance(thresholds, Mapping):
            payload["decision_thresholds"] = [
                {"min_score": score, "label": label} for score, label in thresholds.items()
            ]
        return payload

    @field_validator("decision_thresholds")
    @classmethod
    def _order_thresholds(cls, value: tuple[DecisionThreshold, ...]) -> tuple[DecisionThreshold, ...]:
        return tuple(sorted(value, key=lambda threshold: threshold.min_score, reverse=True))

    @model_validator(mode="after")
    def _check_threshold_scale(self) -> Criteria:
        if self.scoring_method.normalized and self.pass_threshold > 100:
            raise ValueError(
                f"pass_threshold must be within 0-100 for scoring method '{self.scoring_method.value}'"
            )
        return self

    @property
    def has_groups(self) -> bool:
        return bool(self.active_groups())

    def active_rules(self) -> tuple[Rule, ...]:
        """Active ungrouped rules in declaration order."""
        return tuple(sorted((rule for rule in self.rules if rule.active), key=lambda rule: rule.order))

    def active_groups(self) -> tuple[RuleGroup, ...]:
        return tuple(sorted((group for group in self.groups if group.active), key=lambda group: group.order))

    def iter_active_rules(self) -> Iterator[Rule]:
        """Every active rule reachable through active groups."""
        yield from self.active_rules()
        for group in self.active_groups():
            yield from group.iter_active_rules()

    def structure(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "pass_threshold": self.pass_threshold,
            "scoring_method": self.scoring_method.value,
            "group_logic": self.group_logic.value,
            "group_min_required": self.group_min_required,
            "default_decision": self.default_decision,
            "decision_thresholds": [
                threshold.model_dump(mode="json") for threshold in self.decision_thresholds
            ],
            "rules": [rule.structure() for rule in self.active_rules()],
            "groups": [group.structure() for group in self.active_groups()],
        }

    def fingerprint(self) -> str:
        """Content hash of every active definition and the scoring setup."""
        return content_hash(self.structure())


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "criteria"


def load_criteria(raw: Any) -> Criteria:
    """Validate a raw mapping into a ``Criteria``, raising ``ConfigurationError``."""
    if isinstance(raw, Criteria):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Criteria definition must be a mapping, got {type(raw).__name__}")
    try:
        return Criteria.model_validate(raw)
    except ValidationError as exc:
        name = raw.get("name") or raw.get("id") or "<unnamed>"
        raise ConfigurationError(
            f"Invalid criteria definition '{name}'",
            errors=format_validation_errors(exc),
        ) from exc


def build_rule(raw: Mapping[str, Any]) -> Rule:
    """Validate a single rule mapping, raising ``ConfigurationError``."""
    try:
        return Rule.model_validate(raw)
    except ValidationError as exc:
        field = raw.get("field", "<unknown>")
        raise ConfigurationError(f"Invalid rule for field '{field}'", errors=format_validation_errors(exc)) from exc


def format_validation_errors(exc: ValidationError) -> list[str]:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return messages


def _derive_rule_id(payload: Mapping[str, Any]) -> str:
    operator = payload.get("operator")
    digest = content_hash(
        [
            payload.get("field"),
            getattr(operator, "value", operator),
            payload.get("value"),
            payload.get("weight", 1.0),
            payload.get("order", 0),
            payload.get("dependencies", []),
        ]
    )
    return f"rule-{digest[:12]}"


RuleGroup.model_rebuild()
