"""Turns caller input into a dispatch-ready ProbeRequest."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import ProbeValidationError
from .models import render_value

DEFAULT_HEADERS: tuple[tuple[str, str], ...] = (("Content-Type", "application/json"),)
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
MISSING_FIELDS_MESSAGE = "Endpoint ID, base URL, method, and path are required"


@dataclass(frozen=True)
class ProbeRequest:
    """Outbound call description consumed by the dispatcher."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


def validate_probe_input(
    endpoint_id: Optional[str],
    base_url: Optional[str],
    method: Optional[str],
    path: Optional[str],
) -> None:
    """Reject a probe before any network activity when a required field is empty."""

    if not endpoint_id or not base_url or not method or not path:
        raise ProbeValidationError(MISSING_FIELDS_MESSAGE)


def merge_headers(overrides: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """Defaults first, then caller headers; a caller key replaces a default in any letter case."""

    merged = {name: value for name, value in DEFAULT_HEADERS}
    for name, value in (overrides or {}).items():
        for existing in [key for key in merged if key.lower() == str(name).lower()]:
            del merged[existing]
        merged[str(name)] = render_value(value)
    return merged


def serialize_body(body: Any) -> Optional[str]:
    """Strings pass through; anything else becomes compact JSON."""

    if body is None:
        return None
    if isinstance(body, str):
        return body
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def _is_truthy(value: Any) -> bool:
    """JavaScript truthiness: containers are always truthy, NaN is not."""

    if isinstance(value, (dict, list)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def build_probe_request(
    *,
    base_url: str,
    method: str,
    path: str,
    headers: Optional[Mapping[str, Any]] = None,
    body: Any = None,
) -> ProbeRequest:
    """Build the request; the URL is base_url + path without normalization."""

    normalized_method = method.upper()
    attached: Optional[str] = None
    if _is_truthy(body) and normalized_method in BODY_METHODS:
        attached = serialize_body(body)
    return ProbeRequest(
        method=normalized_method,
        url=f"{base_url}{path}",
        headers=merge_headers(headers),
        body=attached,
    )
