from __future__ import annotations

import json

from api_probe.dispatcher import HttpProbeDispatcher
from api_probe.errors import TransportErrorCategory
from api_probe.request_builder import build_probe_request


def test_dispatch_captures_status_headers_and_raw_body(target_url: str) -> None:
    request = build_probe_request(base_url=target_url, method="GET", path="/ok")
    result = HttpProbeDispatcher(timeout=5).dispatch(request)

    assert result.status == 200
    assert result.transport_failed is False
    assert result.headers["x-request-id"] == "req-1"
    assert all(name == name.lower() for name in result.headers)
    assert json.loads(result.body)["data"]["id"] == "abc"
    assert result.elapsed_ms >= 0


def test_error_status_is_a_normal_response(target_url: str) -> None:
    request = build_probe_request(base_url=target_url, method="GET", path="/nope")
    result = HttpProbeDispatcher(timeout=5).dispatch(request)

    assert result.status == 404
    assert result.transport_failed is False
    assert "not found" in result.body


def test_post_forwards_json_body_and_headers(target_url: str) -> None:
    request = build_probe_request(
        base_url=target_url,
        method="POST",
        path="/echo",
        headers={"X-Test": "yes"},
        body={"name": "widget"},
    )
    echoed = json.loads(HttpProbeDispatcher(timeout=5).dispatch(request).body)

    assert echoed["method"] == "POST"
    assert json.loads(echoed["body"]) == {"name": "widget"}
    assert echoed["content_type"] == "application/json"
    assert echoed["x_test"] == "yes"


def test_get_never_forwards_a_body(target_url: str) -> None:
    request = build_probe_request(base_url=target_url, method="GET", path="/echo", body={"ignored": True})
    echoed = json.loads(HttpProbeDispatcher(timeout=5).dispatch(request).body)

    assert echoed["method"] == "GET"
    assert echoed["body"] == ""


def test_redirects_are_followed(target_url: str) -> None:
    request = build_probe_request(base_url=target_url, method="GET", path="/redirect")
    result = HttpProbeDispatcher(timeout=5).dispatch(request)

    assert result.status == 200
    assert "abc" in result.body


def test_connection_refused_becomes_status_zero(unreachable_url: str) -> None:
    request = build_probe_request(base_url=unreachable_url, method="GET", path="/ok")
    result = HttpProbeDispatcher(timeout=5).dispatch(request)

    assert result.status == 0
    assert result.transport_failed is True
    assert result.error_category == TransportErrorCategory.CONNECTION_ERROR.value
    assert result.body == result.error_message
    assert result.error_message


def test_timeout_becomes_transport_failure(target_url: str) -> None:
    request = build_probe_request(base_url=target_url, method="GET", path="/slow")
    result = HttpProbeDispatcher(timeout=0.2).dispatch(request)

    assert result.status == 0
    assert result.error_category == TransportErrorCategory.TIMEOUT.value
    assert result.elapsed_ms < 1000


def test_malformed_url_is_a_transport_failure() -> None:
    request = build_probe_request(base_url="not-a-url", method="GET", path="/ok")
    result = HttpProbeDispatcher(timeout=1).dispatch(request)

    assert result.status == 0
    assert result.error_category == TransportErrorCategory.INVALID_URL.value
