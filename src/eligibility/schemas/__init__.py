"""Pydantic schema definitions for criteria and settings."""

from __future__ import annotations

from .criteria import (
    CombinationLogic,
    Criteria,
    DecisionThreshold,
    Dependency,
    Rule,
    RuleGroup,
    RuleOperator,
    RulePriority,
    ScoringMethod,
    build_rule,
    load_criteria,
)
from .config import AppConfig, load_config

__all__ = [
    "AppConfig",
    "CombinationLogic",
    "Criteria",
    "DecisionThreshold",
    "Dependency",
    "Rule",
    "RuleGroup",
    "RuleOperator",
    "RulePriority",
    "ScoringMethod",
    "build_rule",
    "load_config",
    "load_criteria",
]
