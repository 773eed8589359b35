"""Probe orchestration: validate, build, dispatch, evaluate, persist, respond."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

import structlog

from .assertions import evaluate_assertions
from .dispatcher import HttpProbeDispatcher, ProbeResult
from .models import (
    AssertionResult,
    AssertionSpec,
    ExecutionRecord,
    ExecutionSummary,
    ProbeOutcome,
)
from .recorder import ExecutionRecorder
from .request_builder import ProbeRequest, build_probe_request, serialize_body, validate_probe_input

LOGGER = structlog.get_logger("api_probe.service")


class ProbeService:
    """Runs probes for authenticated callers and records every completed attempt."""

    def __init__(
        self,
        recorder: Optional[ExecutionRecorder] = None,
        *,
        dispatcher: Optional[HttpProbeDispatcher] = None,
    ) -> None:
        self._recorder = recorder
        self._dispatcher = dispatcher or HttpProbeDispatcher()

    def execute(
        self,
        *,
        endpoint_id: Optional[str],
        requester_id: str,
        base_url: Optional[str],
        method: Optional[str],
        path: Optional[str],
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        assertions: Optional[Sequence[AssertionSpec]] = None,
        test_plan_id: Optional[str] = None,
    ) -> tuple[ExecutionRecord, ProbeResult]:
        """Run one probe and assemble its record without persisting it.

        Raises ProbeValidationError before any network activity when a
        required field is missing. Transport failures never raise; they
        yield a failed record with ``response_status == 0``.
        """

        validate_probe_input(endpoint_id, base_url, method, path)
        specs = list(assertions or [])
        probe = build_probe_request(base_url=base_url, method=method, path=path, headers=headers, body=body)
        result = self._dispatcher.dispatch(probe)

        if result.transport_failed:
            results: list[AssertionResult] = []
            status = "failed"
            notes = f"Error: {result.error_message}"
        else:
            report = evaluate_assertions(result, specs)
            results = report.results
            status = "passed" if report.passed else "failed"
            notes = None

        record = self._assemble(
            endpoint_id=endpoint_id,
            test_plan_id=test_plan_id,
            requester_id=requester_id,
            probe=probe,
            submitted_body=body,
            result=result,
            specs=specs,
            results=results,
            status=status,
            notes=notes,
        )
        return record, result

    def run_probe(self, **kwargs: Any) -> ProbeOutcome:
        """Execute, persist exactly one record, and build the caller envelope."""

        if self._recorder is None:
            raise RuntimeError("ProbeService.run_probe requires a recorder")
        record, result = self.execute(**kwargs)
        execution_id = self._recorder.record(record)
        LOGGER.info(
            "probe_completed",
            execution_id=execution_id,
            endpoint_id=record.endpoint_id,
            status=record.status,
            response_status=record.response_status,
            response_time_ms=record.response_time_ms,
        )
        return build_outcome(record, result)

    @staticmethod
    def _assemble(
        *,
        endpoint_id: str,
        test_plan_id: Optional[str],
        requester_id: str,
        probe: ProbeRequest,
        submitted_body: Any,
        result: ProbeResult,
        specs: list[AssertionSpec],
        results: list[AssertionResult],
        status: str,
        notes: Optional[str],
    ) -> ExecutionRecord:
        return ExecutionRecord(
            endpoint_id=endpoint_id,
            test_plan_id=test_plan_id or None,
            executor_id=requester_id,
            method=probe.method,
            url=probe.url,
            request_headers=dict(probe.headers),
            request_body=serialize_body(submitted_body),
            response_status=result.status,
            response_headers=dict(result.headers),
            response_body=result.body,
            response_time_ms=result.elapsed_ms,
            status=status,
            assertions=[spec.model_dump(by_alias=True, exclude_none=True) for spec in specs],
            assertion_results=results,
            notes=notes,
        )


def build_outcome(record: ExecutionRecord, result: ProbeResult) -> ProbeOutcome:
    if result.transport_failed:
        return ProbeOutcome(
            success=False,
            error=result.error_message,
            execution=ExecutionSummary(
                status="failed",
                response_status=0,
                response_time=record.response_time_ms,
            ),
            record=record,
        )
    return ProbeOutcome(
        success=True,
        execution=ExecutionSummary(
            id=record.id,
            status=record.status,
            response_status=record.response_status,
            response_time=record.response_time_ms,
            response_body=record.response_body,
            response_headers=record.response_headers,
            assertion_results=record.assertion_results,
        ),
        record=record,
    )
