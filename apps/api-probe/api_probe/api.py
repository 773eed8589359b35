"""Transport-independent handler for POST /execute-api-test."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from .auth import Authenticator
from .errors import AuthenticationError, ProbeConfigurationError, ProbeValidationError
from .models import ExecuteApiTestPayload
from .service import ProbeService

LOGGER = structlog.get_logger("api_probe.api")

EXECUTE_API_TEST_PATH = "/execute-api-test"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, x-supabase-client-platform, "
        "x-supabase-client-platform-version, x-supabase-client-runtime, x-supabase-client-runtime-version"
    ),
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@dataclass
class ApiResponse:
    status: HTTPStatus
    payload: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=lambda: dict(CORS_HEADERS))

    def encode(self) -> bytes:
        if self.payload is None:
            return b""
        return json.dumps(self.payload).encode("utf-8")


def _error(status: HTTPStatus, message: str) -> ApiResponse:
    return ApiResponse(status=status, payload={"error": message})


def _parse_payload(raw_body: bytes) -> ExecuteApiTestPayload:
    try:
        data = json.loads(raw_body.decode("utf-8") or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProbeValidationError("Request body must be valid JSON") from exc
    if not isinstance(data, dict):
        raise ProbeValidationError("Request body must be a JSON object")
    try:
        return ExecuteApiTestPayload.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ProbeValidationError(f"Invalid request field {location}: {first.get('msg')}") from exc


class ExecuteApiTestHandler:
    """Authenticate, validate and run one probe; always returns an ApiResponse."""

    def __init__(self, service: ProbeService, authenticator: Authenticator) -> None:
        self._service = service
        self._authenticator = authenticator

    def preflight(self) -> ApiResponse:
        return ApiResponse(status=HTTPStatus.OK)

    def handle(self, authorization: Optional[str], raw_body: bytes) -> ApiResponse:
        try:
            identity = self._authenticator.authenticate(authorization)
            payload = _parse_payload(raw_body)
            outcome = self._service.run_probe(
                endpoint_id=payload.endpoint_id,
                requester_id=identity.user_id,
                base_url=payload.base_url,
                method=payload.method,
                path=payload.path,
                headers=payload.headers,
                body=payload.body,
                assertions=payload.assertions,
                test_plan_id=payload.test_plan_id,
            )
        except AuthenticationError as exc:
            LOGGER.info("request_rejected", status=HTTPStatus.UNAUTHORIZED.value, reason=str(exc))
            return _error(HTTPStatus.UNAUTHORIZED, str(exc))
        except ProbeConfigurationError as exc:
            LOGGER.info("request_rejected", status=exc.status_code, reason=str(exc))
            return _error(HTTPStatus(exc.status_code), str(exc))
        except Exception as exc:
            LOGGER.exception("execute_api_test_failed")
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc) or "Unknown error")
        return ApiResponse(status=HTTPStatus.OK, payload=outcome.as_response())
