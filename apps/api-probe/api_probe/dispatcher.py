"""Executes exactly one outbound HTTP request per probe."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from email.message import Message
from typing import Optional
from urllib import error, request

import structlog

from .config import DEFAULT_TIMEOUT
from .errors import TRANSPORT_EXCEPTIONS, categorize_exception, describe_exception
from .request_builder import ProbeRequest

LOGGER = structlog.get_logger("api_probe.dispatcher")


@dataclass
class ProbeResult:
    """Captured outcome of one dispatch; status 0 means the request never completed."""

    status: int
    elapsed_ms: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""
    error_category: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def transport_failed(self) -> bool:
        return self.error_category is not None


def _lowercase_headers(message: Message) -> dict[str, str]:
    headers: dict[str, str] = {}
    for name, value in message.items():
        key = name.lower()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class HttpProbeDispatcher:
    """Sends a ProbeRequest with urllib, following redirects as urllib does by default."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout or DEFAULT_TIMEOUT

    @property
    def timeout(self) -> float:
        return self._timeout

    def dispatch(self, probe: ProbeRequest) -> ProbeResult:
        data = probe.body.encode("utf-8") if probe.body is not None else None
        start = time.perf_counter()
        try:
            req = request.Request(probe.url, data=data, headers=probe.headers, method=probe.method)
            try:
                with request.urlopen(req, timeout=self._timeout) as response:
                    body = response.read().decode("utf-8", errors="replace")
                    status = response.getcode()
                    headers = _lowercase_headers(response.headers)
            except error.HTTPError as exc:
                # Error statuses are complete responses, not transport failures.
                body = exc.read().decode("utf-8", errors="replace")
                status = exc.code
                headers = _lowercase_headers(exc.headers)
        except TRANSPORT_EXCEPTIONS as exc:
            elapsed_ms = _elapsed_ms(start)
            category = categorize_exception(exc)
            message = describe_exception(exc)
            LOGGER.warning(
                "probe_transport_failed",
                method=probe.method,
                url=probe.url,
                category=category.value,
                error=message,
                elapsed_ms=elapsed_ms,
            )
            return ProbeResult(
                status=0,
                elapsed_ms=elapsed_ms,
                body=message,
                error_category=category.value,
                error_message=message,
            )

        elapsed_ms = _elapsed_ms(start)
        LOGGER.info(
            "probe_dispatched",
            method=probe.method,
            url=probe.url,
            status=status,
            elapsed_ms=elapsed_ms,
        )
        return ProbeResult(status=status, elapsed_ms=elapsed_ms, headers=headers, body=body)
