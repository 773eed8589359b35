from __future__ import annotations

import json

import pytest

from api_probe.errors import ProbeValidationError
from api_probe.request_builder import (
    MISSING_FIELDS_MESSAGE,
    build_probe_request,
    merge_headers,
    validate_probe_input,
)


def test_default_content_type_is_applied() -> None:
    request = build_probe_request(base_url="http://api.local", method="GET", path="/items")
    assert request.headers == {"Content-Type": "application/json"}


def test_caller_headers_win_regardless_of_case() -> None:
    headers = merge_headers({"content-type": "text/plain", "X-Trace": 7})
    assert headers == {"content-type": "text/plain", "X-Trace": "7"}


def test_merge_does_not_leak_between_calls() -> None:
    merge_headers({"X-One": "1"})
    assert merge_headers(None) == {"Content-Type": "application/json"}


def test_url_is_concatenated_verbatim() -> None:
    request = build_probe_request(base_url="http://api.local/v1/", method="get", path="/items?x=1")
    assert request.url == "http://api.local/v1//items?x=1"
    assert request.method == "GET"


def test_get_drops_supplied_body() -> None:
    request = build_probe_request(base_url="http://api.local", method="GET", path="/", body={"a": 1})
    assert request.body is None


@pytest.mark.parametrize("method", ["POST", "put", "Patch"])
def test_body_methods_serialize_objects(method: str) -> None:
    request = build_probe_request(base_url="http://api.local", method=method, path="/", body={"a": [1, 2]})
    assert request.body == '{"a":[1,2]}'
    assert json.loads(request.body) == {"a": [1, 2]}


def test_string_body_is_forwarded_untouched() -> None:
    request = build_probe_request(base_url="http://api.local", method="POST", path="/", body="raw=1")
    assert request.body == "raw=1"


def test_empty_body_is_not_attached() -> None:
    request = build_probe_request(base_url="http://api.local", method="POST", path="/", body="")
    assert request.body is None


@pytest.mark.parametrize(
    "fields",
    [
        {"endpoint_id": None, "base_url": "http://x", "method": "GET", "path": "/"},
        {"endpoint_id": "ep", "base_url": "", "method": "GET", "path": "/"},
        {"endpoint_id": "ep", "base_url": "http://x", "method": None, "path": "/"},
        {"endpoint_id": "ep", "base_url": "http://x", "method": "GET", "path": ""},
    ],
)
def test_missing_required_fields_are_rejected(fields: dict) -> None:
    with pytest.raises(ProbeValidationError) as excinfo:
        validate_probe_input(**fields)
    assert str(excinfo.value) == MISSING_FIELDS_MESSAGE
    assert excinfo.value.status_code == 400


@pytest.mark.parametrize("body", [0, False, 0.0])
def test_falsy_scalar_bodies_are_not_attached(body: object) -> None:
    request = build_probe_request(base_url="http://api.local", method="POST", path="/", body=body)
    assert request.body is None


@pytest.mark.parametrize(("body", "expected"), [([], "[]"), ({}, "{}"), (1, "1"), (True, "true")])
def test_empty_containers_and_truthy_scalars_are_attached(body: object, expected: str) -> None:
    request = build_probe_request(base_url="http://api.local", method="PUT", path="/", body=body)
    assert request.body == expected
