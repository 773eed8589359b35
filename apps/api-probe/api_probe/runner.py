"""Probe suite execution engine."""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import structlog

from .config import BASE_URL_ENV
from .console_reporter import ConsoleReporter
from .dispatcher import HttpProbeDispatcher
from .errors import ProbeValidationError
from .loader import load_suite
from .models import ExecutionRecord, ProbeCase, ProbeCaseResult, ProbeSuite, SuiteResult
from .output_config import OutputFormat
from .recorder import ExecutionRecorder, JsonlExecutionRecorder
from .request_builder import validate_probe_input
from .service import ProbeService

LOGGER = structlog.get_logger("api_probe.runner")


@dataclass
class RunArtifacts:
    run_dir: Path
    events_file: Path
    summary_file: Path
    junit_file: Path


class SuiteRunner:
    """Runs every probe of a suite in order and records artifacts."""

    def __init__(
        self,
        *,
        suite_file: Path,
        output_root: Path,
        run_id: str,
        executor_id: str = "cli",
        base_url: Optional[str] = None,
        dispatcher: Optional[HttpProbeDispatcher] = None,
        recorders: Sequence[ExecutionRecorder] = (),
        output_format: OutputFormat = OutputFormat.AUTO,
    ) -> None:
        if not suite_file.exists():
            raise FileNotFoundError(f"Suite file not found: {suite_file}")
        self.suite_file = suite_file
        self.output_root = output_root
        self.run_id = run_id
        self.executor_id = executor_id
        self.base_url_override = base_url
        self._service = ProbeService(dispatcher=dispatcher)
        self._extra_recorders = list(recorders)
        self._reporter = ConsoleReporter(output_format=output_format)

    def run(self) -> SuiteResult:
        suite = load_suite(self.suite_file)
        base_url = self.base_url_override or suite.base_url or os.getenv(BASE_URL_ENV)
        if not base_url:
            raise ValueError(f"No base URL: set base_url in the suite, pass --base-url or export {BASE_URL_ENV}")
        _validate_cases(suite, base_url)

        artifacts = self._prepare_artifacts()
        recorders: list[ExecutionRecorder] = [JsonlExecutionRecorder(artifacts.events_file)]
        recorders.extend(self._extra_recorders)
        log = LOGGER.bind(suite=suite.suite_id, run_id=self.run_id)
        log.info("suite_started", probes=len(suite.probes), base_url=base_url)

        suite_start = datetime.now(timezone.utc)
        results: list[ProbeCaseResult] = []
        self._reporter.start_suite(total_probes=len(suite.probes), suite_name=suite.suite_id)
        for index, case in enumerate(suite.probes, start=1):
            self._reporter.report_probe_start(index, case.method.upper(), case.path)
            started_at = datetime.now(timezone.utc)
            record = self._execute_case(suite, case, base_url)
            for recorder in recorders:
                recorder.record(record)
            result = _case_result(index, case, record, started_at)
            results.append(result)
            self._reporter.report_probe_result(index, record, case.path)
        suite_end = datetime.now(timezone.utc)

        summary = self._build_summary(
            suite=suite,
            suite_start=suite_start,
            suite_end=suite_end,
            results=results,
            artifacts=artifacts,
        )
        artifacts.summary_file.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
        self._write_junit(results, suite, artifacts.junit_file)
        self._reporter.finish_suite(
            total=summary.total_probes,
            passed=summary.passed_probes,
            failed=summary.failed_probes,
            duration_ms=summary.duration_ms,
        )
        log.info("suite_finished", passed=summary.passed_probes, failed=summary.failed_probes)
        return summary

    def _execute_case(self, suite: ProbeSuite, case: ProbeCase, base_url: str) -> ExecutionRecord:
        record, _ = self._service.execute(
            endpoint_id=case.endpoint_id,
            requester_id=self.executor_id,
            base_url=base_url,
            method=case.method,
            path=case.path,
            headers=case.headers,
            body=case.body,
            assertions=case.assertions,
            test_plan_id=suite.test_plan_id,
        )
        return record

    def _prepare_artifacts(self) -> RunArtifacts:
        run_dir = self.output_root / self.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        events_file = run_dir / "events.jsonl"
        events_file.write_text("", encoding="utf-8")
        return RunArtifacts(
            run_dir=run_dir,
            events_file=events_file,
            summary_file=run_dir / "summary.json",
            junit_file=run_dir / "results.junit.xml",
        )

    def _build_summary(
        self,
        *,
        suite: ProbeSuite,
        suite_start: datetime,
        suite_end: datetime,
        results: list[ProbeCaseResult],
        artifacts: RunArtifacts,
    ) -> SuiteResult:
        failed = [result for result in results if result.status != "passed"]
        failures_payload = [
            {
                "probe_name": result.name,
                "execution_id": result.execution_id,
                "error": result.error,
                "failed_assertions": [
                    item.model_dump(by_alias=True) for item in result.assertion_results if not item.passed
                ],
            }
            for result in failed
        ]
        duration_ms = (suite_end - suite_start).total_seconds() * 1000
        return SuiteResult(
            suite_id=suite.suite_id,
            test_plan_id=suite.test_plan_id,
            run_id=self.run_id,
            started_at=suite_start,
            finished_at=suite_end,
            duration_ms=round(duration_ms, 3),
            total_probes=len(results),
            passed_probes=len(results) - len(failed),
            failed_probes=len(failed),
            failures=failures_payload,
            metadata=suite.metadata,
            events_file=str(artifacts.events_file),
            summary_file=str(artifacts.summary_file),
            junit_file=str(artifacts.junit_file),
        )

    def _write_junit(self, results: list[ProbeCaseResult], suite: ProbeSuite, junit_file: Path) -> None:
        testsuite = ET.Element(
            "testsuite",
            attrib={
                "name": suite.suite_id,
                "tests": str(len(results)),
                "failures": str(len([r for r in results if r.status != "passed"])),
            },
        )
        for result in results:
            case = ET.SubElement(
                testsuite,
                "testcase",
                attrib={
                    "classname": suite.suite_id,
                    "name": result.name,
                    "time": str(result.response_time_ms / 1000),
                },
            )
            if result.status != "passed":
                failure = ET.SubElement(
                    case,
                    "failure",
                    attrib={"message": result.error or "Probe failed"},
                )
                failure.text = "\n".join(
                    f"{item.description}: actual={item.actual!r}"
                    for item in result.assertion_results
                    if not item.passed
                ) or (result.error or "")
        ET.ElementTree(testsuite).write(junit_file, encoding="utf-8", xml_declaration=True)


def _validate_cases(suite: ProbeSuite, base_url: str) -> None:
    """Validate every probe before any artifact is written."""

    for index, case in enumerate(suite.probes, start=1):
        try:
            validate_probe_input(case.endpoint_id, base_url, case.method, case.path)
        except ProbeValidationError as exc:
            raise ProbeValidationError(f"Probe {index} ({case.name}): {exc}") from exc


def _case_result(
    index: int, case: ProbeCase, record: ExecutionRecord, started_at: datetime
) -> ProbeCaseResult:
    failed_count = len([item for item in record.assertion_results if not item.passed])
    error = record.notes
    if error is None and failed_count:
        error = f"{failed_count} assertion(s) failed"
    return ProbeCaseResult(
        index=index,
        name=case.name,
        endpoint_id=case.endpoint_id,
        execution_id=record.id,
        status=record.status,
        method=record.method,
        url=record.url,
        response_status=record.response_status,
        response_time_ms=record.response_time_ms,
        started_at=started_at,
        finished_at=record.executed_at,
        assertion_results=record.assertion_results,
        error=error,
    )
