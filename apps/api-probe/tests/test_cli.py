from __future__ import annotations

import json
from pathlib import Path
import xml.etree.ElementTree as ET

import pytest
import yaml
from typer.testing import CliRunner

from api_probe.database import build_engine
from api_probe.main import app
from api_probe.recorder import SqlExecutionRecorder

runner = CliRunner()


def _suite(tmp_path: Path, base_url: str | None = None) -> Path:
    suite = {
        "suite_id": "orders-smoke",
        "test_plan_id": "plan-orders",
        "metadata": {"tags": ["smoke"]},
        "probes": [
            {
                "name": "fetch-order",
                "endpoint_id": "ep-orders-get",
                "method": "GET",
                "path": "/ok",
                "assertions": [
                    {"type": "status", "expected": "200"},
                    {"type": "json_path", "path": "data.id", "expected": "abc"},
                    {"type": "header_exists", "key": "x-request-id"},
                ],
            },
            {
                "name": "missing-order",
                "endpoint_id": "ep-orders-missing",
                "method": "GET",
                "path": "/nope",
                "assertions": [{"type": "status", "expected": "200"}],
            },
        ],
    }
    if base_url:
        suite["base_url"] = base_url
    path = tmp_path / "suite.yaml"
    path.write_text(yaml.safe_dump(suite, sort_keys=False), encoding="utf-8")
    return path


def test_run_produces_summary_events_and_junit(tmp_path: Path, target_url: str) -> None:
    output_dir = tmp_path / "runs"
    result = runner.invoke(
        app,
        [
            "run",
            "--suite",
            str(_suite(tmp_path)),
            "--base-url",
            target_url,
            "--output-dir",
            str(output_dir),
            "--run-id",
            "run-1",
            "--output-format",
            "plain",
        ],
    )

    assert result.exit_code == 1, result.output
    assert "Total: 2 | Passed: 1 | Failed: 1" in result.output

    run_dir = output_dir / "run-1"
    summary = json.loads((run_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["suite_id"] == "orders-smoke"
    assert summary["test_plan_id"] == "plan-orders"
    assert summary["total_probes"] == 2
    assert summary["passed_probes"] == 1
    assert summary["failed_probes"] == 1
    assert summary["failures"][0]["probe_name"] == "missing-order"
    assert summary["failures"][0]["failed_assertions"] == [
        {"assertion": "status: 200", "passed": False, "actual": "404"}
    ]

    events = [json.loads(line) for line in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [event["endpoint_id"] for event in events] == ["ep-orders-get", "ep-orders-missing"]
    assert [event["status"] for event in events] == ["passed", "failed"]
    assert all(event["executor_id"] == "cli" for event in events)
    assert events[0]["assertion_results"][1] == {"assertion": "json_path: abc", "passed": True, "actual": "abc"}

    junit = ET.parse(run_dir / "results.junit.xml").getroot()
    assert junit.attrib["tests"] == "2"
    assert junit.attrib["failures"] == "1"
    assert len(junit.findall("testcase/failure")) == 1


def test_run_records_to_database(tmp_path: Path, target_url: str, database_url: str) -> None:
    result = runner.invoke(
        app,
        [
            "run",
            "--suite",
            str(_suite(tmp_path, base_url=target_url)),
            "--output-dir",
            str(tmp_path / "runs"),
            "--database-url",
            database_url,
            "--executor",
            "ci-bot",
            "--output-format",
            "json",
        ],
    )
    assert result.exit_code == 1, result.output

    engine = build_engine(database_url)
    try:
        assert SqlExecutionRecorder(engine).count() == 2
    finally:
        engine.dispose()


def test_run_reads_base_url_from_environment(
    tmp_path: Path, target_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("QUALIXA_PROBE_BASE_URL", target_url)
    result = runner.invoke(
        app,
        ["run", "--suite", str(_suite(tmp_path)), "--output-dir", str(tmp_path / "runs"), "--output-format", "plain"],
    )

    assert result.exit_code == 1, result.output
    assert "Passed: 1" in result.output


def test_run_without_base_url_is_a_usage_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("QUALIXA_PROBE_BASE_URL", raising=False)
    result = runner.invoke(
        app,
        ["run", "--suite", str(_suite(tmp_path)), "--output-dir", str(tmp_path / "runs"), "--output-format", "plain"],
    )

    assert result.exit_code == 2


def test_probe_passes_with_plain_output(target_url: str) -> None:
    result = runner.invoke(
        app,
        [
            "probe",
            "--base-url",
            target_url,
            "--path",
            "/ok",
            "--assert",
            "status=200",
            "--assert",
            "json_path=data.id=abc",
            "--assert",
            "header_exists=X-Request-Id",
            "--output-format",
            "plain",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "PASSED status=200" in result.output


def test_probe_failure_exits_non_zero(target_url: str) -> None:
    result = runner.invoke(
        app,
        ["probe", "--base-url", target_url, "--path", "/ok", "-a", "status=201", "--output-format", "plain"],
    )

    assert result.exit_code == 1
    assert "FAILED" in result.output


def test_probe_json_output_is_the_response_envelope(target_url: str) -> None:
    result = runner.invoke(
        app,
        [
            "probe",
            "--base-url",
            target_url,
            "--path",
            "/echo",
            "--method",
            "POST",
            "--body",
            '{"name": "widget"}',
            "-H",
            "X-Test=yes",
            "--output-format",
            "json",
        ],
    )

    assert result.exit_code == 0, result.output
    envelope = json.loads(result.stdout)
    assert envelope["success"] is True
    echoed = json.loads(envelope["execution"]["responseBody"])
    assert json.loads(echoed["body"]) == {"name": "widget"}
    assert echoed["x_test"] == "yes"


def test_run_with_an_invalid_probe_writes_no_artifacts(tmp_path: Path, target_url: str) -> None:
    suite_path = _suite(tmp_path, base_url=target_url)
    suite = yaml.safe_load(suite_path.read_text(encoding="utf-8"))
    suite["probes"][1]["path"] = ""
    suite_path.write_text(yaml.safe_dump(suite, sort_keys=False), encoding="utf-8")
    output_dir = tmp_path / "runs"

    result = runner.invoke(
        app,
        [
            "run",
            "--suite",
            str(suite_path),
            "--output-dir",
            str(output_dir),
            "--run-id",
            "run-bad",
            "--output-format",
            "plain",
        ],
    )

    assert result.exit_code == 2
    assert not (output_dir / "run-bad").exists()
