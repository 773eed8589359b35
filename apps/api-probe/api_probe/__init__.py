"""Qualixa API probe: HTTP probes with declarative assertions and an audited execution trail."""

from .assertions import evaluate_assertions
from .dispatcher import HttpProbeDispatcher, ProbeResult
from .models import AssertionKind, AssertionResult, AssertionSpec, ExecutionRecord, ProbeOutcome
from .request_builder import ProbeRequest, build_probe_request
from .service import ProbeService

__all__ = [
    "AssertionKind",
    "AssertionResult",
    "AssertionSpec",
    "ExecutionRecord",
    "HttpProbeDispatcher",
    "ProbeOutcome",
    "ProbeRequest",
    "ProbeResult",
    "ProbeService",
    "build_probe_request",
    "evaluate_assertions",
]
