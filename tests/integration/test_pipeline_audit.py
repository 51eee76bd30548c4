from __future__ import annotations

import json
from pathlib import Path

import yaml

from eligibility.container import create_container
from eligibility.pipeline import AuditLogger
from eligibility.workflow import Trigger, WorkflowContext


class RecordingHandler:
    def __init__(self) -> None:
        self.calls: list[WorkflowContext] = []

    def __call__(self, context: WorkflowContext) -> None:
        self.calls.append(context)


def test_pipeline_writes_audit_log_and_dispatches_triggers(tmp_path: Path) -> None:
    criteria_path = tmp_path / "scholarship.yaml"
    records_path = tmp_path / "records.jsonl"
    output_path = tmp_path / "results.json"
    audit_path = tmp_path / "audit.jsonl"

    criteria_path.write_text(
        yaml.safe_dump(
            {
                "name": "Scholarship",
                "pass_threshold": 75,
                "rules": [
                    {"field": "student.gpa", "operator": ">=", "value": 3.5, "weight": 9, "order": 1},
                    {"field": "family_income", "operator": "<=", "value": 60000, "weight": 6, "order": 2},
                    {"field": "enrollment_status", "operator": "==", "value": "full_time", "weight": 7, "order": 3},
                ],
            }
        ),
        encoding="utf-8",
    )
    records = [
        {"student": {"gpa": 3.9}, "family_income": 40000, "enrollment_status": "full_time"},
        {"student": {"gpa": 3.0}, "family_income": 90000, "enrollment_status": "part_time"},
    ]
    records_path.write_text(
        "\n".join(json.dumps(record) for record in records) + "\n{broken",
        encoding="utf-8",
    )

    container = create_container()
    dispatcher = container.dispatcher()
    awarded = RecordingHandler()
    dispatcher.register("award", awarded)
    dispatcher.add_trigger(Trigger(event="on_pass", action="award"))

    pipeline = container.pipeline()
    results = pipeline.run(
        criteria_path=criteria_path,
        records_path=records_path,
        output_path=output_path,
        audit_logger=AuditLogger(audit_path),
    )

    assert [entry["passed"] for entry in results] == [True, False]
    assert results[0]["score"] == 100
    assert results[1]["score"] == 0

    audit_entries = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    assert [entry["passed"] for entry in audit_entries] == [True, False]
    assert all(entry["criteria_id"] == "scholarship" for entry in audit_entries)

    assert len(awarded.calls) == 1
    assert awarded.calls[0].record == records[0]

    payload = json.loads(output_path.read_text(encoding="utf-8"))
    metadata = payload["metadata"]
    assert metadata["record_count"] == 2
    assert metadata["errors"] and "invalid JSON" in metadata["errors"][0]
    assert metadata["app_version"]
    assert metadata["workflow_errors"] == []
