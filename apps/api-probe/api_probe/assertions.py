"""Assertion evaluation against a captured ProbeResult.

Each AssertionKind has exactly one evaluator in ``ASSERTION_EVALUATORS``.
Evaluators never raise: malformed bodies, unresolvable paths, missing keys
and unknown kinds all degrade to a failed AssertionResult.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from .dispatcher import ProbeResult
from .models import UNDEFINED, AssertionKind, AssertionResult, AssertionSpec, render_value

INVALID_JSON = "Invalid JSON"

Evaluation = tuple[bool, str]
Evaluator = Callable[[AssertionSpec, ProbeResult], Evaluation]


@dataclass(frozen=True)
class AssertionReport:
    results: list[AssertionResult]

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.results)


def parse_number(text: str) -> float:
    """Numeric coercion for `expected`: blank is 0, garbage is NaN."""

    stripped = text.strip()
    if not stripped:
        return 0.0
    try:
        return float(stripped)
    except ValueError:
        return math.nan


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not valid JSON")


def try_parse_json(body: str) -> tuple[bool, Any]:
    """Strict JSON parse; returns (ok, value).

    NaN and Infinity literals are rejected, and nesting deeper than the
    interpreter can decode counts as invalid rather than raising.
    """

    try:
        return True, json.loads(body, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return False, None


def resolve_dot_path(document: Any, path: str) -> Any:
    """Walk object keys separated by '.'; anything not traversable yields UNDEFINED."""

    current = document
    for segment in path.split("."):
        if not isinstance(current, dict):
            return UNDEFINED
        current = current.get(segment, UNDEFINED)
    return current


def _status(spec: AssertionSpec, result: ProbeResult) -> Evaluation:
    return result.status == parse_number(spec.expected), str(result.status)


def _body_contains(spec: AssertionSpec, result: ProbeResult) -> Evaluation:
    found = spec.expected in result.body
    return found, "true" if found else "false"


def _header_exists(spec: AssertionSpec, result: ProbeResult) -> Evaluation:
    if not spec.key:
        return False, "missing"
    wanted = spec.key.lower()
    present = any(name.lower() == wanted for name in result.headers)
    return present, "exists" if present else "missing"


def _response_time(spec: AssertionSpec, result: ProbeResult) -> Evaluation:
    return result.elapsed_ms <= parse_number(spec.expected), str(result.elapsed_ms)


def _json_path(spec: AssertionSpec, result: ProbeResult) -> Evaluation:
    ok, document = try_parse_json(result.body)
    if not ok:
        return False, INVALID_JSON
    if not spec.path:
        return False, render_value(UNDEFINED)
    value = resolve_dot_path(document, spec.path)
    actual = render_value(value)
    if value is UNDEFINED:
        return False, actual
    return actual == spec.expected, actual


ASSERTION_EVALUATORS: dict[AssertionKind, Evaluator] = {
    AssertionKind.STATUS: _status,
    AssertionKind.BODY_CONTAINS: _body_contains,
    AssertionKind.HEADER_EXISTS: _header_exists,
    AssertionKind.RESPONSE_TIME: _response_time,
    AssertionKind.JSON_PATH: _json_path,
}

_missing = set(AssertionKind) - set(ASSERTION_EVALUATORS)
if _missing:  # pragma: no cover - import-time guard for new kinds
    raise RuntimeError(f"No evaluator registered for assertion kinds: {sorted(k.value for k in _missing)}")


def evaluate_assertion(spec: AssertionSpec, result: ProbeResult) -> AssertionResult:
    kind = spec.known_kind
    evaluator: Optional[Evaluator] = ASSERTION_EVALUATORS.get(kind) if kind else None
    if evaluator is None:
        # Unknown kinds fail closed.
        return AssertionResult(description=spec.label, passed=False, actual="")
    passed, actual = evaluator(spec, result)
    return AssertionResult(description=spec.label, passed=passed, actual=actual)


def evaluate_assertions(result: ProbeResult, specs: Iterable[AssertionSpec]) -> AssertionReport:
    """Evaluate every assertion in input order without short-circuiting."""

    return AssertionReport(results=[evaluate_assertion(spec, result) for spec in specs])
