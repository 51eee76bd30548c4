"""Pydantic configuration schema for YAML settings."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..errors import ConfigurationError
from .criteria import ScoringMethod, format_validation_errors


class ScoringSettings(BaseModel):
    pass_threshold: float = Field(default=65.0, ge=0)
    method: ScoringMethod = ScoringMethod.WEIGHTED
    default_decision: str = "Under Review"

    model_config = ConfigDict(extra="forbid")


class CacheSettings(BaseModel):
    enabled: bool = True
    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = Field(default=3600, gt=0)
    max_entries: int = Field(default=10_000, gt=0)
    prefix: str = "eligibility"
    redis_url: str | None = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _require_redis_url(self) -> CacheSettings:
        if self.backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when backend is 'redis'")
        return self


class BatchSettings(BaseModel):
    max_workers: int = Field(default=4, ge=1)
    chunk_size: int = Field(default=100, ge=1)

    model_config = ConfigDict(extra="forbid")


class WorkflowSettings(BaseModel):
    enabled: bool = True
    fail_on_error: bool = False
    excellent_score: float = 90.0
    good_score: float = 80.0

    model_config = ConfigDict(extra="forbid")


class SecuritySettings(BaseModel):
    validate_input: bool = True
    max_field_length: int = Field(default=255, ge=1)
    max_value_length: int = Field(default=1000, ge=1)

    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    model_config = ConfigDict(extra="forbid")

    def to_settings(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def load_config(raw: Any) -> AppConfig:
    if raw is None:
        return AppConfig()
    if not isinstance(raw, dict):
        raise ConfigurationError("Config must be a mapping")
    try:
        return AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError("Invalid configuration", errors=format_validation_errors(exc)) from exc
