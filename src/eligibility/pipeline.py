"""Evaluation pipeline assembly and execution."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Mapping

import pendulum
import structlog

from . import __version__
from .config import load_document
from .core import EligibilityEngine, EvaluationResult
from .errors import ConfigurationError
from .hashing import input_fingerprint
from .schemas.criteria import Criteria, ScoringMethod, load_criteria
from .workflow import WorkflowDispatcher


class RecordLoadError(ValueError):
    """Raised when record loading encounters invalid lines."""

    def __init__(self, errors: list[str], partial: list[dict[str, Any]]):
        super().__init__("Record loading failed")
        self.errors = errors
        self.partial = partial

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Record loading failed: {self.errors}"


class CriteriaLoader:
    """Load a criteria definition from YAML or JSON.

    Keys the file leaves out fall back to the configured scoring defaults.
    """

    def __init__(
        self,
        *,
        pass_threshold: float | None = None,
        scoring_method: ScoringMethod | str | None = None,
    ) -> None:
        self._defaults: dict[str, Any] = {}
        if pass_threshold is not None:
            self._defaults["pass_threshold"] = pass_threshold
        if scoring_method is not None:
            self._defaults["scoring_method"] = ScoringMethod(scoring_method).value

    def load(self, path: Path) -> Criteria:
        data = load_document(path)
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Criteria file {path.name} must contain a mapping")
        return load_criteria({**self._defaults, **data})


class RecordLoader:
    """Load input records from a JSON Lines file."""

    def load(self, path: Path) -> list[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        errors: list[str] = []
        with path.open("r", encoding="utf-8") as handle:
            for idx, line in enumerate(handle, start=1):
                raw = line.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw)
                except json.JSONDecodeError as exc:
                    errors.append(f"line {idx}: invalid JSON ({exc})")
                    continue
                if not isinstance(record, dict):
                    errors.append(f"line {idx}: record must be a JSON object")
                    continue
                records.append(record)
        if errors:
            raise RecordLoadError(errors, records)
        return records


class OutputWriter:
    """Persist evaluation outcomes."""

    def write(self, path: Path, payload: dict | list[dict]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, default=_json_default),
            encoding="utf-8",
        )


class AuditLogger:
    """Append-only audit logger writing JSON lines.

    Also usable as the engine's result recorder.
    """

    def __init__(self, path: Path):
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, entry: dict) -> None:
        line = json.dumps(entry, ensure_ascii=False, default=_json_default)
        with self._lock, self._path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.write("\n")

    def record(self, result: EvaluationResult, record: Mapping[str, Any]) -> None:
        self.append(
            {
                "event": "evaluation_completed",
                "criteria_id": result.criteria_id,
                "version": result.version,
                "data_hash": input_fingerprint(record),
                "passed": result.passed,
                "score": result.score,
                "decision": result.decision,
                "failed_rules": [outcome.to_failure() for outcome in result.failed_rules],
                "fingerprint": result.fingerprint,
                "cached": result.cached,
                "evaluated_at": result.evaluated_at,
                "recorded_at": pendulum.now().to_iso8601_string(),
            }
        )


class EvaluationPipeline:
    """End-to-end evaluation orchestrator over files."""

    def __init__(
        self,
        *,
        engine: EligibilityEngine,
        dispatcher: WorkflowDispatcher | None = None,
        criteria_loader: CriteriaLoader | None = None,
        record_loader: RecordLoader | None = None,
        writer: OutputWriter | None = None,
    ) -> None:
        self._engine = engine
        self._dispatcher = dispatcher
        self._criteria = criteria_loader or CriteriaLoader()
        self._records = record_loader or RecordLoader()
        self._writer = writer or OutputWriter()
        self._logger = structlog.get_logger(__name__)

    def run(
        self,
        *,
        criteria_path: Path,
        records_path: Path,
        output_path: Path,
        audit_logger: AuditLogger | None = None,
    ) -> list[dict]:
        criteria = self._criteria.load(criteria_path)
        load_errors: list[str] = []
        try:
            records = self._records.load(records_path)
        except RecordLoadError as exc:
            records = exc.partial
            load_errors.extend(exc.errors)
            self._logger.warning("records.partial_load", errors=exc.errors)

        batch = self._engine.evaluate_batch(criteria, records, record_result=False)

        serialized_results: list[dict] = []
        workflow_errors: list[dict[str, str]] = []
        for entry in batch.results:
            serialized_results.append(entry.to_dict())
            if entry.result is None:
                continue
            record = records[entry.index]
            if audit_logger:
                audit_logger.record(entry.result, record)
            if self._dispatcher is not None:
                report = self._dispatcher.dispatch(entry.result, record)
                workflow_errors.extend(report.errors)

        metadata = {
            "criteria_id": criteria.id,
            "criteria_version": criteria.version,
            "fingerprint": criteria.fingerprint(),
            "record_count": len(records),
            "total_passed": batch.total_passed,
            "total_failed": batch.total_failed,
            "errors": load_errors,
            "workflow_errors": workflow_errors,
            "timestamp": pendulum.now().to_iso8601_string(),
            "app_version": __version__,
        }
        self._writer.write(output_path, {"metadata": metadata, "results": serialized_results})
        self._logger.info(
            "pipeline.completed",
            criteria_id=criteria.id,
            record_count=len(records),
            total_passed=batch.total_passed,
        )
        return serialized_results


def _json_default(value: Any) -> Any:
    if isinstance(value, pendulum.DateTime):
        return value.to_iso8601_string()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


__all__ = [
    "AuditLogger",
    "CriteriaLoader",
    "EvaluationPipeline",
    "OutputWriter",
    "RecordLoadError",
    "RecordLoader",
]
