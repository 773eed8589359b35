"""Console reporter for probe suites and single probes."""

import json
import os
import sys
from typing import Any, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from .models import AssertionResult, ExecutionRecord
from .output_config import OutputFormat

_CI_MARKERS = ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")


class ConsoleReporter:
    """
    Renders probe progress for humans or machines.

    AUTO picks rich output for interactive terminals and plain text for
    pipes, redirects and CI runners. JSON mode prints one object per event.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self.use_rich = self._detect_rich()
        self.console: Optional[Console] = Console() if self.use_rich else None
        self.progress: Optional[Progress] = None
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None

    @property
    def is_json(self) -> bool:
        return self.output_format == OutputFormat.JSON

    def _detect_rich(self) -> bool:
        if self.output_format == OutputFormat.RICH:
            return True
        if self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            return False
        is_ci = any(marker in os.environ for marker in _CI_MARKERS)
        return sys.stdout.isatty() and not is_ci

    def _emit_json(self, event: str, **fields: Any) -> None:
        print(json.dumps({"event": event, **fields}, default=str))

    def start_suite(self, total_probes: int, suite_name: str) -> None:
        if self.is_json:
            self._emit_json("suite_started", suite=suite_name, total=total_probes)
            return
        if not self.use_rich:
            print(f"Running probe suite: {suite_name}")
            print(f"Total probes: {total_probes}")
            print("-" * 80)
            return

        self.results_table = Table(show_header=True, header_style="bold cyan")
        self.results_table.add_column("Probe", style="dim", width=12)
        self.results_table.add_column("Request", width=48)
        self.results_table.add_column("Status", width=10)
        self.results_table.add_column("HTTP", justify="right", width=6)
        self.results_table.add_column("Time", justify="right", width=10)
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console,
        )
        self.progress_task = self.progress.add_task(f"[cyan]Running {suite_name}", total=total_probes)
        self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
        self.live.start()

    def report_probe_start(self, index: int, method: str, path: str) -> None:
        if not self.use_rich and not self.is_json:
            print(f"[{index}] {method} {path} ... ", end="", flush=True)

    def report_probe_result(self, index: int, record: ExecutionRecord, path: str) -> None:
        passed = record.status == "passed"
        failed_checks = [result for result in record.assertion_results if not result.passed]
        if self.is_json:
            self._emit_json(
                "probe_finished",
                index=index,
                execution_id=record.id,
                status=record.status,
                response_status=record.response_status,
                response_time_ms=record.response_time_ms,
                notes=record.notes,
            )
            return
        if not self.use_rich:
            label = "✓ PASS" if passed else "✗ FAIL"
            print(f"{label} ({record.response_status}, {record.response_time_ms}ms)")
            if record.notes:
                print(f"  {record.notes}")
            for result in failed_checks:
                print(f"  - {result.description}: actual={result.actual!r}")
            return

        status_text = Text("✓ PASS" if passed else "✗ FAIL", style="green" if passed else "red")
        self.results_table.add_row(
            f"Probe {index}",
            f"{record.method} {path}",
            status_text,
            str(record.response_status),
            f"{record.response_time_ms}ms",
        )
        if record.notes:
            self.results_table.add_row("", Text(record.notes, style="red"), "", "", "")
        for result in failed_checks:
            self.results_table.add_row("", Text(f"{result.description}: {result.actual}", style="red"), "", "", "")
        self.progress.update(self.progress_task, advance=1)

    def finish_suite(self, total: int, passed: int, failed: int, duration_ms: float) -> None:
        if self.is_json:
            self._emit_json("suite_finished", total=total, passed=passed, failed=failed, duration_ms=duration_ms)
            return
        if not self.use_rich:
            print("-" * 80)
            print(f"Total: {total} | Passed: {passed} | Failed: {failed} | Duration: {duration_ms:.0f}ms")
            print("✓ ALL PROBES PASSED" if failed == 0 else "✗ SOME PROBES FAILED")
            return

        if self.live:
            self.live.stop()
        summary = Text()
        summary.append(f"Total: {total}  ", style="bold")
        summary.append(f"Passed: {passed}  ", style="bold green")
        summary.append(f"Failed: {failed}  ", style="bold red" if failed else "bold green")
        summary.append(f"Duration: {duration_ms:.0f}ms", style="bold cyan")
        title = "✓ ALL PROBES PASSED" if failed == 0 else "✗ SOME PROBES FAILED"
        self.console.print()
        self.console.print(
            Panel(
                summary,
                title=Text(title, style="bold green" if failed == 0 else "bold red"),
                border_style="green" if failed == 0 else "red",
            )
        )

    def print_probe(self, payload: dict[str, Any], results: list[AssertionResult]) -> None:
        """Show the envelope of a single ad-hoc probe."""

        if self.is_json:
            print(json.dumps(payload, indent=2))
            return
        execution = payload["execution"]
        verdict = execution["status"].upper()
        line = f"{verdict} status={execution['responseStatus']} time={execution['responseTime']}ms"
        if not self.use_rich:
            print(line)
            if payload.get("error"):
                print(f"Error: {payload['error']}")
            for result in results:
                mark = "✓" if result.passed else "✗"
                print(f"  {mark} {result.description} (actual={result.actual!r})")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Assertion", width=48)
        table.add_column("Result", width=8)
        table.add_column("Actual", width=24)
        for result in results:
            table.add_row(
                result.description,
                Text("PASS" if result.passed else "FAIL", style="green" if result.passed else "red"),
                result.actual,
            )
        self.console.print(Text(line, style="bold green" if verdict == "PASSED" else "bold red"))
        if payload.get("error"):
            self.console.print(f"[bold red]Error:[/] {payload['error']}")
        if results:
            self.console.print(table)

    def print_error(self, message: str) -> None:
        if self.use_rich:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}", file=sys.stderr)
