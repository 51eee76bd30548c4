"""Post-evaluation trigger dispatch.

Triggers are plain data: an event, an action name and an optional
condition. The dispatcher runs after the engine has returned a result and
looks up caller-supplied handlers by action name, so evaluation itself never
performs side effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .core.operators import ValueComparator, resolve_field
from .core.results import EvaluationResult
from .errors import WorkflowError
from .schemas.criteria import RuleOperator


class TriggerEvent(str, Enum):
    AFTER_EVALUATION = "after_evaluation"
    ON_PASS = "on_pass"
    ON_FAIL = "on_fail"
    ON_EXCELLENT = "on_excellent"
    ON_GOOD = "on_good"
    ON_CONDITION = "on_condition"


class TriggerCondition(BaseModel):
    """Conjunction of result and record predicates; unset fields match anything."""

    passed: bool | None = None
    min_score: float | None = None
    max_score: float | None = None
    score_range: tuple[float, float] | None = None
    decision: str | None = None
    failed_rules_count: int | None = Field(default=None, ge=0)
    field_equals: tuple[str, Any] | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_range(self) -> TriggerCondition:
        if self.score_range is not None and self.score_range[0] > self.score_range[1]:
            raise ValueError("score_range lower bound must not exceed upper bound")
        return self

    def matches(self, result: EvaluationResult, record: Mapping[str, Any]) -> bool:
        if self.passed is not None and result.passed is not self.passed:
            return False
        if self.min_score is not None and result.score < self.min_score:
            return False
        if self.max_score is not None and result.score > self.max_score:
            return False
        if self.score_range is not None:
            low, high = self.score_range
            if not low <= result.score <= high:
                return False
        if self.decision is not None and result.decision != self.decision:
            return False
        if self.failed_rules_count is not None and len(result.failed_rules) != self.failed_rules_count:
            return False
        if self.field_equals is not None:
            path, expected = self.field_equals
            if not _COMPARATOR.matches(resolve_field(record, path), RuleOperator.EQUAL, expected):
                return False
        return True


class Trigger(BaseModel):
    event: TriggerEvent
    action: str = Field(min_length=1)
    condition: TriggerCondition | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


@dataclass(frozen=True, slots=True)
class WorkflowContext:
    event: TriggerEvent
    trigger: Trigger
    result: EvaluationResult
    record: Mapping[str, Any]


@runtime_checkable
class ActionHandler(Protocol):
    """Callable invoked for a matching trigger."""

    def __call__(self, context: WorkflowContext) -> Any:
        ...


@dataclass(slots=True)
class DispatchReport:
    events: list[TriggerEvent] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


_COMPARATOR = ValueComparator()


class WorkflowDispatcher:
    """Routes evaluation results to registered action handlers."""

    def __init__(
        self,
        triggers: Iterable[Trigger] = (),
        handlers: Mapping[str, ActionHandler] | None = None,
        *,
        enabled: bool = True,
        fail_on_error: bool = False,
        excellent_score: float = 90.0,
        good_score: float = 80.0,
    ) -> None:
        self._triggers: list[Trigger] = list(triggers)
        self._handlers: dict[str, ActionHandler] = dict(handlers or {})
        self.enabled = enabled
        self.fail_on_error = fail_on_error
        self.excellent_score = excellent_score
        self.good_score = good_score
        self._logger = structlog.get_logger(__name__)

    def register(self, action: str, handler: ActionHandler) -> None:
        self._handlers[action] = handler

    def add_trigger(self, trigger: Trigger) -> None:
        self._triggers.append(trigger)

    def add_triggers(self, triggers: Iterable[Trigger]) -> None:
        self._triggers.extend(triggers)

    @property
    def triggers(self) -> tuple[Trigger, ...]:
        return tuple(self._triggers)

    def events_for(self, result: EvaluationResult) -> list[TriggerEvent]:
        """Lifecycle events raised by ``result``, in dispatch order."""
        events = [TriggerEvent.AFTER_EVALUATION]
        if result.passed:
            events.append(TriggerEvent.ON_PASS)
            if result.score >= self.excellent_score:
                events.append(TriggerEvent.ON_EXCELLENT)
            elif result.score >= self.good_score:
                events.append(TriggerEvent.ON_GOOD)
        else:
            events.append(TriggerEvent.ON_FAIL)
        events.append(TriggerEvent.ON_CONDITION)
        return events

    def dispatch(self, result: EvaluationResult, record: Mapping[str, Any]) -> DispatchReport:
        report = DispatchReport()
        if not self.enabled:
            return report
        report.events = self.events_for(result)
        for event in report.events:
            for trigger in self._triggers:
                if trigger.event is not event:
                    continue
                if trigger.condition is not None and not trigger.condition.matches(result, record):
                    continue
                self._run(trigger, WorkflowContext(event, trigger, result, record), report)
        self._logger.info(
            "workflow.dispatched",
            criteria_id=result.criteria_id,
            events=[event.value for event in report.events],
            executed=report.executed,
            errors=len(report.errors),
        )
        return report

    def _run(self, trigger: Trigger, context: WorkflowContext, report: DispatchReport) -> None:
        handler = self._handlers.get(trigger.action)
        try:
            if handler is None:
                raise LookupError(f"no handler registered for action '{trigger.action}'")
            handler(context)
        except Exception as exc:  # noqa: BLE001
            self._logger.error(
                "workflow.handler_failed",
                action=trigger.action,
                trigger_event=context.event.value,
                error=str(exc),
            )
            report.errors.append({"action": trigger.action, "event": context.event.value, "error": str(exc)})
            if self.fail_on_error:
                raise WorkflowError(
                    f"Action '{trigger.action}' failed: {exc}",
                    action=trigger.action,
                    event=context.event.value,
                ) from exc
            return
        report.executed.append(trigger.action)


__all__ = [
    "ActionHandler",
    "DispatchReport",
    "Trigger",
    "TriggerCondition",
    "TriggerEvent",
    "WorkflowContext",
    "WorkflowDispatcher",
]
