"""Immutable outcome types produced by a single evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterator, Union


class OutcomeStatus(str, Enum):
    """Why a rule outcome ended the way it did."""

    PASSED = "passed"
    VALUE_MISMATCH = "value_mismatch"
    FIELD_MISSING = "field_missing"
    MALFORMED_RULE = "malformed_rule"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    """Result of evaluating one rule against one record."""

    rule_id: str
    field: str
    operator: str
    expected: Any
    actual: Any
    passed: bool
    weight: float
    score: float
    skipped: bool = False
    status: OutcomeStatus = OutcomeStatus.PASSED
    error: str | None = None
    duration_ms: float = field(default=0.0, compare=False)

    def to_log_entry(self) -> dict[str, Any]:
        entry = {
            "rule_id": self.rule_id,
            "field": self.field,
            "operator": self.operator,
            "expected": self.expected,
            "actual": self.actual,
            "passed": self.passed,
            "weight": self.weight,
            "score": self.score,
            "skipped": self.skipped,
            "status": self.status.value,
        }
        if self.error:
            entry["error"] = self.error
        return entry

    def to_failure(self) -> dict[str, Any]:
        failure = {
            "field": self.field,
            "operator": self.operator,
            "expected": self.expected,
            "actual": self.actual,
            "status": self.status.value,
        }
        if self.error:
            failure["error"] = self.error
        return failure

    def to_payload(self) -> dict[str, Any]:
        payload = self.to_log_entry()
        payload["kind"] = "rule"
        payload["error"] = self.error
        payload["duration_ms"] = self.duration_ms
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RuleOutcome:
        return cls(
            rule_id=payload["rule_id"],
            field=payload["field"],
            operator=payload["operator"],
            expected=payload.get("expected"),
            actual=payload.get("actual"),
            passed=bool(payload["passed"]),
            weight=float(payload["weight"]),
            score=float(payload["score"]),
            skipped=bool(payload.get("skipped", False)),
            status=OutcomeStatus(payload.get("status", OutcomeStatus.PASSED.value)),
            error=payload.get("error"),
            duration_ms=float(payload.get("duration_ms", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class GroupOutcome:
    """Result of combining the members of one group."""

    group_id: str
    name: str
    logic: str
    passed: bool
    score: float
    children: tuple[Union[RuleOutcome, "GroupOutcome"], ...]
    considered: int
    passed_count: int
    weight: float = 1.0

    def iter_rule_outcomes(self) -> Iterator[RuleOutcome]:
        """Depth-first walk over every rule outcome under this group."""
        for child in self.children:
            if isinstance(child, GroupOutcome):
                yield from child.iter_rule_outcomes()
            else:
                yield child

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "name": self.name,
            "logic": self.logic,
            "passed": self.passed,
            "score": self.score,
            "considered": self.considered,
            "passed_count": self.passed_count,
            "groups": [child.to_dict() for child in self.children if isinstance(child, GroupOutcome)],
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": "group",
            "group_id": self.group_id,
            "name": self.name,
            "logic": self.logic,
            "passed": self.passed,
            "score": self.score,
            "considered": self.considered,
            "passed_count": self.passed_count,
            "weight": self.weight,
            "children": [child.to_payload() for child in self.children],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GroupOutcome:
        children: list[RuleOutcome | GroupOutcome] = []
        for child in payload.get("children", []):
            if child.get("kind") == "group":
                children.append(GroupOutcome.from_payload(child))
            else:
                children.append(RuleOutcome.from_payload(child))
        return cls(
            group_id=payload["group_id"],
            name=payload["name"],
            logic=payload["logic"],
            passed=bool(payload["passed"]),
            score=float(payload["score"]),
            children=tuple(children),
            considered=int(payload["considered"]),
            passed_count=int(payload["passed_count"]),
            weight=float(payload.get("weight", 1.0)),
        )


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Complete verdict for one record under one criteria snapshot."""

    criteria_id: str
    criteria_name: str
    version: int
    passed: bool
    score: float
    decision: str
    execution_log: tuple[RuleOutcome, ...]
    failed_rules: tuple[RuleOutcome, ...]
    outcome: GroupOutcome
    fingerprint: str
    evaluated_at: str = field(compare=False)
    cached: bool = field(default=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "criteria": self.criteria_name,
            "criteria_id": self.criteria_id,
            "version": self.version,
            "passed": self.passed,
            "score": self.score,
            "decision": self.decision,
            "failed_rules": [outcome.to_failure() for outcome in self.failed_rules],
            "execution_log": [outcome.to_log_entry() for outcome in self.execution_log],
            "groups": self.outcome.to_dict()["groups"],
            "fingerprint": self.fingerprint,
            "evaluated_at": self.evaluated_at,
            "cached": self.cached,
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            "criteria_id": self.criteria_id,
            "criteria_name": self.criteria_name,
            "version": self.version,
            "passed": self.passed,
            "score": self.score,
            "decision": self.decision,
            "outcome": self.outcome.to_payload(),
            "fingerprint": self.fingerprint,
            "evaluated_at": self.evaluated_at,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EvaluationResult:
        outcome = GroupOutcome.from_payload(payload["outcome"])
        execution_log = tuple(outcome.iter_rule_outcomes())
        return cls(
            criteria_id=payload["criteria_id"],
            criteria_name=payload["criteria_name"],
            version=int(payload["version"]),
            passed=bool(payload["passed"]),
            score=float(payload["score"]),
            decision=payload["decision"],
            execution_log=execution_log,
            failed_rules=failed_outcomes(execution_log),
            outcome=outcome,
            fingerprint=payload["fingerprint"],
            evaluated_at=payload["evaluated_at"],
        )

    def as_cached(self) -> EvaluationResult:
        return replace(self, cached=True)


@dataclass(frozen=True, slots=True)
class BatchEntry:
    """One record's slot in a batch run."""

    index: int
    data_hash: str
    result: EvaluationResult | None = None
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.result is not None and self.result.passed

    def to_dict(self) -> dict[str, Any]:
        if self.result is None:
            return {
                "index": self.index,
                "data_hash": self.data_hash,
                "passed": False,
                "score": 0,
                "error": self.error,
            }
        payload = self.result.to_dict()
        payload["index"] = self.index
        payload["data_hash"] = self.data_hash
        return payload


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Aggregated outcome of evaluating many records against one criteria."""

    criteria_id: str
    total_evaluated: int
    total_passed: int
    total_failed: int
    results: tuple[BatchEntry, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "criteria_id": self.criteria_id,
            "total_evaluated": self.total_evaluated,
            "total_passed": self.total_passed,
            "total_failed": self.total_failed,
            "results": [entry.to_dict() for entry in self.results],
        }


def failed_outcomes(outcomes: tuple[RuleOutcome, ...]) -> tuple[RuleOutcome, ...]:
    return tuple(outcome for outcome in outcomes if not outcome.passed and not outcome.skipped)
