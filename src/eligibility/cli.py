"""Typer CLI entrypoint for the eligibility engine."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
import yaml

from .container import EligibilityContainer, create_container
from .errors import ConfigurationError
from .logging import configure_logging
from .pipeline import AuditLogger, RecordLoader, RecordLoadError
from .schemas.criteria import Criteria

app = typer.Typer(help="Rule-based eligibility evaluation CLI.")
cache_app = typer.Typer(help="Inspect and maintain the evaluation cache.")
app.add_typer(cache_app, name="cache")

_JSON_LOGS = typer.Option(True, "--json-logs/--console-logs", help="Render logs as JSON or as plain console lines.")


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise typer.BadParameter("Config file must be a YAML object", param_name="config")
    return loaded


def _bootstrap(config: Optional[Path], log_level: str, json_logs: bool = True) -> EligibilityContainer:
    settings = _load_settings(config)
    configure_logging(log_level, json_output=json_logs)
    try:
        return create_container(settings=settings)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_name="config") from exc


def _load_criteria(container: EligibilityContainer, path: Path) -> Criteria:
    try:
        return container.criteria_loader().load(path)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_name="criteria") from exc


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


@app.command()
def evaluate(
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Criteria YAML/JSON path."),
    record: Optional[str] = typer.Option(None, help="Input record as inline JSON."),
    record_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, dir_okay=False, help="Input record JSON path."
    ),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    log_level: str = typer.Option("WARNING", help="Log level for structured logging."),
    json_logs: bool = _JSON_LOGS,
    audit_log: Optional[Path] = typer.Option(None, dir_okay=False, help="Audit log output (JSONL)."),
) -> None:
    """Evaluate a single record and print the result."""
    if (record is None) == (record_file is None):
        raise typer.BadParameter("Provide exactly one of --record or --record-file", param_name="record")
    raw = record if record is not None else record_file.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Invalid record JSON: {exc}", param_name="record") from exc
    if not isinstance(data, dict):
        raise typer.BadParameter("Record must be a JSON object", param_name="record")

    container = _bootstrap(config, log_level, json_logs)
    definition = _load_criteria(container, criteria)
    engine = container.engine()
    if audit_log:
        engine.recorder = AuditLogger(audit_log)

    result = engine.evaluate(definition, data)
    _echo_json(result.to_dict())
    container.dispatcher().dispatch(result, data)


@app.command()
def batch(
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Criteria YAML/JSON path."),
    records: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Records JSONL path."),
    output: Path = typer.Option(
        ...,
        exists=False,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Output JSON path.",
    ),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    log_level: str = typer.Option("INFO", help="Log level for structured logging."),
    json_logs: bool = _JSON_LOGS,
    audit_log: Optional[Path] = typer.Option(None, dir_okay=False, help="Audit log output (JSONL)."),
) -> None:
    """Evaluate every record in a JSONL file and write the results."""
    container = _bootstrap(config, log_level, json_logs)
    pipeline = container.pipeline()
    audit_logger = AuditLogger(audit_log) if audit_log else None

    try:
        results = pipeline.run(
            criteria_path=criteria,
            records_path=records,
            output_path=output,
            audit_logger=audit_logger,
        )
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_name="criteria") from exc
    passed = sum(1 for entry in results if entry.get("passed"))
    typer.echo(f"Evaluated {len(results)} records ({passed} passed). Results saved to {output}.")


@app.command()
def plan(
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Criteria YAML/JSON path."),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
) -> None:
    """Print the execution plan of a criteria without evaluating anything."""
    container = _bootstrap(config, "WARNING")
    definition = _load_criteria(container, criteria)
    try:
        _echo_json(container.engine().execution_plan(definition))
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_name="criteria") from exc


@app.command()
def fingerprint(
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Criteria YAML/JSON path."),
) -> None:
    """Print the structural fingerprint of a criteria."""
    container = _bootstrap(None, "WARNING")
    typer.echo(_load_criteria(container, criteria).fingerprint())


@cache_app.command("warmup")
def cache_warmup(
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Criteria YAML/JSON path."),
    records: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Sample records JSONL path."),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    log_level: str = typer.Option("INFO", help="Log level for structured logging."),
    json_logs: bool = _JSON_LOGS,
) -> None:
    """Evaluate sample records so their results are cached, then print cache stats."""
    container = _bootstrap(config, log_level, json_logs)
    definition = _load_criteria(container, criteria)
    try:
        samples = RecordLoader().load(records)
    except RecordLoadError as exc:
        raise typer.BadParameter(str(exc), param_name="records") from exc

    warmed = container.engine().warmup(definition, samples)
    _echo_json({"criteria_id": definition.id, "warmed": warmed, "cache": container.evaluation_cache().describe()})


@cache_app.command("stats")
def cache_stats(
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
) -> None:
    """Print cache backend details, entry count and counters."""
    container = _bootstrap(config, "WARNING")
    _echo_json(container.evaluation_cache().describe())


@cache_app.command("clear")
def cache_clear(
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
) -> None:
    """Drop every cached evaluation result."""
    container = _bootstrap(config, "WARNING")
    if not container.evaluation_cache().flush():
        typer.echo("Cache flush failed; see logs.", err=True)
        raise typer.Exit(code=1)
    typer.echo("Cache flushed.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
