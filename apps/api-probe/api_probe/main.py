"""CLI entrypoint for the Qualixa API probe service."""

from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Any, Optional

import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "api_probe"

from .api import ExecuteApiTestHandler
from .auth import JwtAuthenticator
from .config import ProbeSettings, load_settings
from .console_reporter import ConsoleReporter
from .database import build_engine
from .dispatcher import HttpProbeDispatcher
from .errors import ProbeValidationError
from .logging_utils import configure_logging
from .models import AssertionKind, AssertionSpec
from .output_config import OutputFormat, get_log_format, get_output_format
from .recorder import ExecutionRecorder, SqlExecutionRecorder
from .runner import SuiteRunner
from .server import ProbeServer
from .service import ProbeService, build_outcome

app = typer.Typer(help="Run HTTP probes with declarative assertions and record every execution.")

DEFAULT_OUTPUT_DIR = Path("artifacts/probe-runs")


def _parse_pairs(pairs: list[str], label: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for item in pairs:
        if "=" not in item:
            raise typer.BadParameter(f"{label} must be in key=value format")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter(f"{label} key cannot be empty")
        result[key] = value.strip()
    return result


def _parse_assertion(raw: str) -> AssertionSpec:
    """KIND=EXPECTED; header_exists=NAME; json_path=PATH=EXPECTED."""

    if "=" not in raw:
        raise typer.BadParameter("Assertions must be in kind=expected format")
    kind, rest = raw.split("=", 1)
    kind = kind.strip()
    if kind == AssertionKind.HEADER_EXISTS.value:
        return AssertionSpec(kind=kind, key=rest, expected=rest)
    if kind == AssertionKind.JSON_PATH.value:
        if "=" not in rest:
            raise typer.BadParameter("json_path assertions must be json_path=path=expected")
        path, expected = rest.split("=", 1)
        return AssertionSpec(kind=kind, path=path, expected=expected)
    return AssertionSpec(kind=kind, expected=rest)


def _parse_body(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _setup(log_level: Optional[str], output_format: Optional[str]) -> tuple[ProbeSettings, OutputFormat]:
    settings = load_settings()
    fmt = get_output_format(output_format)
    configure_logging(log_level or settings.log_level, get_log_format(fmt))
    return settings, fmt


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind host (default QUALIXA_HOST or 127.0.0.1)."),
    port: Optional[int] = typer.Option(None, help="Bind port (default QUALIXA_PORT or 8787)."),
    database_url: Optional[str] = typer.Option(None, help="SQLAlchemy URL for execution records."),
    timeout: Optional[float] = typer.Option(None, min=0.001, help="Outbound probe timeout in seconds."),
    log_level: Optional[str] = typer.Option(None, help="Log level (default QUALIXA_LOG_LEVEL or INFO)."),
    output_format: Optional[str] = typer.Option(None, "--output-format", help="auto, rich, plain or json."),
) -> None:
    """Serve POST /execute-api-test until interrupted."""

    settings, _ = _setup(log_level, output_format)
    if not settings.jwt_secret:
        raise typer.BadParameter("QUALIXA_JWT_SECRET must be set to authenticate callers")

    engine = build_engine(database_url or settings.database_url)
    recorder = SqlExecutionRecorder(engine, create_tables=True)
    service = ProbeService(recorder, dispatcher=HttpProbeDispatcher(timeout or settings.timeout))
    authenticator = JwtAuthenticator(
        settings.jwt_secret,
        audience=settings.jwt_audience,
        algorithms=settings.jwt_algorithms,
    )
    server = ProbeServer(
        ExecuteApiTestHandler(service, authenticator),
        host=host or settings.host,
        port=settings.port if port is None else port,
    )
    try:
        server.serve_forever()
    finally:
        engine.dispose()


@app.command()
def probe(
    base_url: str = typer.Option(..., help="Target base URL, concatenated verbatim with --path."),
    path: str = typer.Option(..., help="Request path appended to the base URL."),
    method: str = typer.Option("GET", help="HTTP method."),
    header: list[str] = typer.Option([], "--header", "-H", help="Request header as Name=Value."),
    body: Optional[str] = typer.Option(None, help="Request body; parsed as JSON when possible."),
    assertion: list[str] = typer.Option(
        [],
        "--assert",
        "-a",
        help="kind=expected (header_exists=Name, json_path=path=expected).",
    ),
    endpoint_id: str = typer.Option("adhoc", help="Endpoint reference stored on the record."),
    timeout: Optional[float] = typer.Option(None, min=0.001, help="Outbound probe timeout in seconds."),
    log_level: Optional[str] = typer.Option("WARNING", help="Log level."),
    output_format: Optional[str] = typer.Option(None, "--output-format", help="auto, rich, plain or json."),
) -> None:
    """Fire one probe and print its verdict; exits 1 when it fails."""

    settings, fmt = _setup(log_level, output_format)
    service = ProbeService(dispatcher=HttpProbeDispatcher(timeout or settings.timeout))
    try:
        record, result = service.execute(
            endpoint_id=endpoint_id,
            requester_id="cli",
            base_url=base_url,
            method=method,
            path=path,
            headers=_parse_pairs(header, "Headers"),
            body=_parse_body(body),
            assertions=[_parse_assertion(item) for item in assertion],
        )
    except ProbeValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    outcome = build_outcome(record, result)
    ConsoleReporter(output_format=fmt).print_probe(outcome.as_response(), record.assertion_results)
    if record.status != "passed":
        raise typer.Exit(code=1)


@app.command()
def run(
    suite: Path = typer.Option(..., exists=True, readable=True, help="Probe suite YAML or JSON file."),
    output_dir: Path = typer.Option(DEFAULT_OUTPUT_DIR, help="Destination root for run artifacts."),
    run_id: Optional[str] = typer.Option(None, help="Run identifier; a UUID when omitted."),
    base_url: Optional[str] = typer.Option(None, help="Override the suite base URL."),
    database_url: Optional[str] = typer.Option(None, help="Also record executions to this database."),
    executor: str = typer.Option("cli", help="Executor identity stored on each record."),
    timeout: Optional[float] = typer.Option(None, min=0.001, help="Outbound probe timeout in seconds."),
    log_level: Optional[str] = typer.Option("WARNING", help="Log level."),
    output_format: Optional[str] = typer.Option(None, "--output-format", help="auto, rich, plain or json."),
) -> None:
    """Run every probe in a suite and write events, summary and JUnit artifacts."""

    settings, fmt = _setup(log_level, output_format)
    recorders: list[ExecutionRecorder] = []
    engine = build_engine(database_url) if database_url else None
    if engine is not None:
        recorders.append(SqlExecutionRecorder(engine, create_tables=True))

    try:
        runner = SuiteRunner(
            suite_file=suite,
            output_root=output_dir,
            run_id=run_id or uuid.uuid4().hex,
            executor_id=executor,
            base_url=base_url,
            dispatcher=HttpProbeDispatcher(timeout or settings.timeout),
            recorders=recorders,
            output_format=fmt,
        )
        summary = runner.run()
    except (ValueError, ProbeValidationError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        if engine is not None:
            engine.dispose()

    if summary.failed_probes:
        raise typer.Exit(code=1)


def main() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
