"""Console reporter that adapts run and validation output to the environment."""

from __future__ import annotations

import os
import sys
from typing import Optional

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from .executor import RunResult, RunStatus, StepExecutionResult
from .models import Step
from .output_config import OutputFormat
from .validator import ValidationIssue, ValidationResult

CI_ENV_VARS = ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")


def _first_failure(result: StepExecutionResult) -> str | None:
    if result.error_message:
        return result.error_message
    for assertion in result.assertions:
        if not assertion.passed:
            return assertion.message
    return None


class ConsoleReporter:
    """
    Renders progress for a run and the findings of a validation.

    Uses a rich live table on interactive terminals, plain text in CI or when
    output is redirected, and stays silent in JSON mode so the caller can
    print a machine-readable document instead.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO) -> None:
        self.output_format = output_format
        self.quiet = output_format is OutputFormat.JSON
        self.use_rich = self._detect_rich()
        self.console = Console() if self.use_rich else None
        self.progress: Optional[Progress] = None
        self.progress_task: Optional[TaskID] = None
        self.live: Optional[Live] = None
        self.results_table: Optional[Table] = None

    def _detect_rich(self) -> bool:
        if self.output_format is OutputFormat.RICH:
            return True
        if self.output_format is not OutputFormat.AUTO:
            return False
        is_ci = any(name in os.environ for name in CI_ENV_VARS)
        return sys.stdout.isatty() and not is_ci

    def start_run(self, scenario_name: str, total_steps: int) -> None:
        if self.quiet:
            return
        if self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("Step", style="dim", width=8)
            self.results_table.add_column("Request", width=48)
            self.results_table.add_column("Status", width=10)
            self.results_table.add_column("Duration", justify="right", width=12)
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeRemainingColumn(),
                console=self.console,
            )
            self.progress_task = self.progress.add_task(f"[cyan]Running {scenario_name}", total=total_steps)
            self.live = Live(Group(self.progress, self.results_table), console=self.console, refresh_per_second=4)
            self.live.start()
        else:
            print(f"Running scenario: {scenario_name}")
            print(f"Total steps: {total_steps}")
            print("-" * 80)

    def step_started(self, step: Step) -> None:
        if not self.quiet and not self.use_rich:
            print(f"[{step.index}] {step.method.value} {step.endpoint} ... ", end="", flush=True)

    def step_finished(self, step: Step, result: StepExecutionResult) -> None:
        if self.quiet:
            return
        failure = None if result.passed else _first_failure(result)
        if self.use_rich and self.results_table is not None and self.progress is not None:
            label = "✓ PASS" if result.passed else "✗ FAIL"
            self.results_table.add_row(
                f"{step.index}",
                f"{result.request.method} {result.request.url}",
                Text(label, style="green" if result.passed else "red"),
                f"{result.duration_ms:.0f}ms",
            )
            if failure:
                self.results_table.add_row("", Text(failure, style="red"), "", "")
            if self.progress_task is not None:
                self.progress.update(self.progress_task, advance=1)
        else:
            if result.passed:
                print(f"✓ PASS ({result.duration_ms:.0f}ms)")
            else:
                print(f"✗ FAIL ({result.duration_ms:.0f}ms)")
                if failure:
                    print(f"  {failure}")

    def finish_run(self, run: RunResult) -> None:
        if self.quiet:
            return
        succeeded = run.status is RunStatus.PASSED
        headline = f"{run.status.value}: {run.scenario_name}"
        if self.use_rich and self.console is not None:
            if self.live is not None:
                self.live.stop()
            summary = Text()
            summary.append(f"Total: {run.total_steps}  ", style="bold")
            summary.append(f"Passed: {run.passed_count}  ", style="bold green")
            summary.append(f"Failed: {run.failed_count}  ", style="bold red" if run.failed_count else "bold green")
            summary.append(f"Duration: {run.total_duration_ms:.0f}ms", style="bold cyan")
            if run.error_message:
                summary.append(f"\n{run.error_message}", style="red")
            self.console.print()
            self.console.print(
                Panel(
                    summary,
                    title=Text(headline, style="bold green" if succeeded else "bold red"),
                    border_style="green" if succeeded else "red",
                )
            )
        else:
            print("-" * 80)
            print(
                f"Total: {run.total_steps} | Passed: {run.passed_count} | "
                f"Failed: {run.failed_count} | Duration: {run.total_duration_ms:.0f}ms"
            )
            if run.error_message:
                print(f"Error: {run.error_message}")
            print(headline)

    def report_validation(self, result: ValidationResult) -> None:
        if self.quiet:
            return
        if self.use_rich and self.console is not None:
            if result.errors or result.warnings:
                table = Table(show_header=True, header_style="bold cyan")
                table.add_column("Severity", width=8)
                table.add_column("Code", width=32)
                table.add_column("Field", width=28)
                table.add_column("Message")
                for issue in result.errors:
                    table.add_row(Text("error", style="bold red"), issue.code.value, issue.field or "", issue.message)
                for issue in result.warnings:
                    table.add_row(Text("warning", style="yellow"), issue.code.value, issue.field or "", issue.message)
                self.console.print(table)
            style = "bold green" if result.valid else "bold red"
            self.console.print(Text(str(result), style=style))
        else:
            for issue in result.errors:
                print(_plain_issue("ERROR", issue))
            for issue in result.warnings:
                print(_plain_issue("WARNING", issue))
            print(str(result))


def _plain_issue(severity: str, issue: ValidationIssue) -> str:
    location = f" ({issue.field})" if issue.field else ""
    return f"{severity} {issue.code.value}{location}: {issue.message}"
