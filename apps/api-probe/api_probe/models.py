"""Assertion, execution record and wire models."""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ExecutionStatus = Literal["passed", "failed"]


class _Undefined:
    """Marker for a dot-path that resolved to nothing."""

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


_MAX_SAFE_INTEGER = 2**53 - 1


def format_js_number(value: float) -> str:
    """Number-to-string conversion following ECMAScript Number::toString."""

    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    # Shortest round-tripping digits.
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(digit) for digit in digit_tuple)
    k = len(digits)
    n = exponent + k
    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return f"{sign}{digits[:n]}.{digits[n:]}"
    if -6 < n <= 0:
        return f"{sign}0.{'0' * -n}{digits}"
    power = n - 1
    mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{sign}{mantissa}e{'+' if power >= 0 else '-'}{abs(power)}"


def render_value(value: Any) -> str:
    """Render a decoded JSON value the way JavaScript's String() would."""

    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return format_js_number(value)
    if isinstance(value, int):
        if abs(value) <= _MAX_SAFE_INTEGER:
            return str(value)
        try:
            return format_js_number(float(value))
        except OverflowError:
            return "Infinity" if value > 0 else "-Infinity"
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join("" if item is None or item is UNDEFINED else render_value(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


class AssertionKind(str, Enum):
    STATUS = "status"
    BODY_CONTAINS = "body_contains"
    HEADER_EXISTS = "header_exists"
    RESPONSE_TIME = "response_time"
    JSON_PATH = "json_path"


class AssertionSpec(BaseModel):
    """Declarative check evaluated against a captured response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str = Field(default="", alias="type")
    expected: str = ""
    key: Optional[str] = None
    path: Optional[str] = None
    description: Optional[str] = None

    @field_validator("kind", "expected", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return render_value(value)

    @property
    def label(self) -> str:
        return self.description or f"{self.kind}: {self.expected}"

    @property
    def known_kind(self) -> AssertionKind | None:
        try:
            return AssertionKind(self.kind)
        except ValueError:
            return None


class AssertionResult(BaseModel):
    """Outcome of one AssertionSpec; serialized with the `assertion` key on the wire."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    description: str = Field(alias="assertion")
    passed: bool
    actual: str = ""


class ExecutionRecord(BaseModel):
    """Immutable audit entry for one probe invocation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    endpoint_id: str
    test_plan_id: Optional[str] = None
    executor_id: str
    method: str
    url: str
    request_headers: dict[str, str] = Field(default_factory=dict)
    request_body: Optional[str] = None
    response_status: int
    response_headers: dict[str, str] = Field(default_factory=dict)
    response_body: str = ""
    response_time_ms: int
    status: ExecutionStatus
    assertions: list[dict[str, Any]] = Field(default_factory=list)
    assertion_results: list[AssertionResult] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    notes: Optional[str] = None

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON friendly payload with wire names for assertion results."""

        return self.model_dump(mode="json", by_alias=True)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExecuteApiTestPayload(_CamelModel):
    """JSON body accepted by POST /execute-api-test."""

    endpoint_id: Optional[str] = None
    test_plan_id: Optional[str] = None
    base_url: Optional[str] = None
    method: Optional[str] = None
    path: Optional[str] = None
    headers: Optional[dict[str, Any]] = None
    body: Any = None
    assertions: Optional[list[AssertionSpec]] = None


class ExecutionSummary(_CamelModel):
    id: Optional[str] = None
    status: ExecutionStatus
    response_status: int
    response_time: int
    response_body: Optional[str] = None
    response_headers: Optional[dict[str, str]] = None
    assertion_results: Optional[list[AssertionResult]] = None


class ProbeOutcome(BaseModel):
    """Response envelope returned to the caller of a probe."""

    success: bool
    execution: ExecutionSummary
    error: Optional[str] = None
    record: Optional[ExecutionRecord] = Field(default=None, exclude=True)

    def as_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProbeCase(BaseModel):
    """One endpoint probe inside a suite file."""

    name: str
    endpoint_id: str
    method: str = "GET"
    path: str
    description: Optional[str] = None
    headers: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    assertions: list[AssertionSpec] = Field(default_factory=list)


class ProbeSuite(BaseModel):
    """Ordered probes sharing a base URL, typically one test plan."""

    suite_id: str
    base_url: Optional[str] = None
    test_plan_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    probes: list[ProbeCase] = Field(default_factory=list)


class ProbeCaseResult(BaseModel):
    """Runtime result for one suite probe."""

    index: int
    name: str
    endpoint_id: str
    execution_id: str
    status: ExecutionStatus
    method: str
    url: str
    response_status: int
    response_time_ms: int
    started_at: datetime
    finished_at: datetime
    assertion_results: list[AssertionResult] = Field(default_factory=list)
    error: Optional[str] = None


class SuiteResult(BaseModel):
    """Aggregated suite summary."""

    suite_id: str
    test_plan_id: Optional[str] = None
    run_id: str
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    total_probes: int
    passed_probes: int
    failed_probes: int
    failures: list[dict[str, Any]] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    events_file: str
    summary_file: str
    junit_file: str
