"""Test bootstrap and shared fixtures for api-probe."""

from __future__ import annotations

import json
import socket
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from jose import jwt  # noqa: E402

from api_probe.database import build_engine  # noqa: E402
from api_probe.recorder import SqlExecutionRecorder  # noqa: E402

JWT_SECRET = "qualixa-test-secret"


class _TargetHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
        return

    def _send(self, status: int, body: bytes, content_type: str = "application/json", **headers: str) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        for key, value in headers.items():
            self.send_header(key.replace("_", "-"), value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _dispatch(self) -> None:
        length = int(self.headers.get("Content-Length", 0) or 0)
        raw = self.rfile.read(length).decode("utf-8") if length else ""
        path = self.path.split("?", 1)[0]
        if path == "/ok":
            payload = {"data": {"id": "abc", "active": True, "owner": None}, "count": 42, "items": [1, 2]}
            self._send(200, json.dumps(payload).encode("utf-8"), X_Request_Id="req-1")
        elif path == "/echo":
            payload = {
                "method": self.command,
                "body": raw,
                "content_type": self.headers.get("Content-Type"),
                "x_test": self.headers.get("X-Test"),
            }
            self._send(200, json.dumps(payload).encode("utf-8"))
        elif path == "/deep":
            self._send(200, b"[" * 100000 + b"]" * 100000)
        elif path == "/text":
            self._send(200, b"hello world", content_type="text/plain")
        elif path == "/slow":
            time.sleep(1.0)
            self._send(200, b"{}")
        elif path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/ok")
            self.send_header("Content-Length", "0")
            self.end_headers()
        else:
            self._send(404, b'{"error": "not found"}')

    do_GET = _dispatch  # noqa: N815 - HTTP handler requirement
    do_POST = _dispatch  # noqa: N815
    do_PUT = _dispatch  # noqa: N815
    do_PATCH = _dispatch  # noqa: N815
    do_DELETE = _dispatch  # noqa: N815


@pytest.fixture
def target_url() -> Iterator[str]:
    """Base URL of a local HTTP target with /ok, /echo, /deep, /text, /slow and /redirect."""

    server = ThreadingHTTPServer(("127.0.0.1", 0), _TargetHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=2)


@pytest.fixture
def unreachable_url() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'probe.db'}"


@pytest.fixture
def sql_recorder(database_url: str) -> Iterator[SqlExecutionRecorder]:
    engine = build_engine(database_url)
    try:
        yield SqlExecutionRecorder(engine, create_tables=True)
    finally:
        engine.dispose()


@pytest.fixture
def jwt_secret() -> str:
    return JWT_SECRET


@pytest.fixture
def make_token() -> Callable[..., str]:
    def _make(sub: str | None = "user-123", *, secret: str = JWT_SECRET, expires_in: int = 3600, **claims: Any) -> str:
        payload: dict[str, Any] = {"aud": "authenticated", "exp": int(time.time()) + expires_in, "role": "authenticated"}
        if sub is not None:
            payload["sub"] = sub
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make
