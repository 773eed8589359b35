"""Threaded HTTP server exposing the probe endpoint."""

from __future__ import annotations

import socketserver
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional

import structlog

from .api import EXECUTE_API_TEST_PATH, ApiResponse, ExecuteApiTestHandler

LOGGER = structlog.get_logger("api_probe.server")

MAX_BODY_BYTES = 10 * 1024 * 1024


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


def _route_matches(raw_path: str) -> bool:
    path = raw_path.split("?", 1)[0].rstrip("/")
    return path == EXECUTE_API_TEST_PATH or path.endswith(f"/functions/v1{EXECUTE_API_TEST_PATH}")


def _content_length(raw: Optional[str]) -> Optional[int]:
    """Parse a Content-Length header; None when it is not a non-negative integer."""

    if raw is None or not raw.strip():
        return 0
    try:
        length = int(raw.strip())
    except ValueError:
        return None
    return length if length >= 0 else None


class ProbeServer:
    """Serves POST /execute-api-test and its CORS preflight on a background thread."""

    def __init__(self, handler: ExecuteApiTestHandler, *, host: str = "127.0.0.1", port: int = 0) -> None:
        self._handler = handler
        self._host = host
        self._port = port
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._logger = LOGGER.bind(host=host, port=port)

    @property
    def address(self) -> tuple[str, int]:
        if not self._httpd:
            raise RuntimeError("Server is not running")
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    @property
    def base_url(self) -> str:
        host, port = self.address
        return f"http://{host}:{port}"

    def start(self) -> None:
        self._logger.info("server_starting")
        httpd = ThreadedHTTPServer((self._host, self._port), self._build_handler_factory())
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        self._ready.set()
        host, port = self.address
        self._logger = LOGGER.bind(host=host, port=port)
        self._logger.info("server_started", endpoint=EXECUTE_API_TEST_PATH)

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def serve_forever(self) -> None:
        """Block the calling thread until interrupted."""

        self.start()
        try:
            while self._thread and self._thread.is_alive():
                self._thread.join(timeout=0.5)
        except KeyboardInterrupt:
            self._logger.info("server_interrupted")
        finally:
            self.stop()

    def __enter__(self) -> "ProbeServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - context helper
        self.stop()

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        api = self._handler
        handler_logger = LOGGER

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                handler_logger.debug(
                    "http_trace",
                    client_ip=self.client_address[0],
                    message=format % args,
                )

            def do_OPTIONS(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._send(api.preflight())

            def do_POST(self) -> None:  # noqa: N802
                if not _route_matches(self.path):
                    self._send(ApiResponse(status=HTTPStatus.NOT_FOUND, payload={"error": "Not found"}))
                    return
                length = _content_length(self.headers.get("Content-Length"))
                if length is None:
                    self.close_connection = True
                    invalid = ApiResponse(status=HTTPStatus.BAD_REQUEST, payload={"error": "Invalid Content-Length"})
                    self._send(invalid)
                    return
                if length > MAX_BODY_BYTES:
                    self.close_connection = True
                    too_large = ApiResponse(
                        status=HTTPStatus.REQUEST_ENTITY_TOO_LARGE, payload={"error": "Request body too large"}
                    )
                    self._send(too_large)
                    return
                raw_body = self.rfile.read(length) if length else b""
                handler_logger.info("request_received", path=self.path, content_length=len(raw_body))
                self._send(api.handle(self.headers.get("Authorization"), raw_body))

            def do_GET(self) -> None:  # noqa: N802
                self._method_not_allowed()

            def do_PUT(self) -> None:  # noqa: N802
                self._method_not_allowed()

            def do_PATCH(self) -> None:  # noqa: N802
                self._method_not_allowed()

            def do_DELETE(self) -> None:  # noqa: N802
                self._method_not_allowed()

            def _method_not_allowed(self) -> None:
                response = ApiResponse(status=HTTPStatus.METHOD_NOT_ALLOWED, payload={"error": "Method not allowed"})
                response.headers["Allow"] = "POST, OPTIONS"
                self._send(response)

            def _send(self, response: ApiResponse) -> None:
                body = response.encode()
                self.send_response(response.status)
                for key, value in response.headers.items():
                    self.send_header(key, value)
                if response.payload is not None:
                    self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if body:
                    self.wfile.write(body)

        return Handler
