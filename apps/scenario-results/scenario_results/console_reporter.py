"""Console reporter with environment detection for collected scenario results."""

import json
import os
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import Outcome, TestResult
from .output_config import OutputFormat

_OUTCOME_STYLES = {
    Outcome.PASSED: ("✓", "green"),
    Outcome.FAILED: ("✗", "red"),
    Outcome.SKIPPED: ("-", "yellow"),
    Outcome.BLOCKED: ("!", "magenta"),
}


class ConsoleReporter:
    """
    Smart console reporter that adapts to environment.

    Automatically detects:
    - Interactive terminals (use rich tables and panels)
    - CI/CD environments (use plain text)
    - Pipe/redirect scenarios (use plain text)

    JSON mode prints one JSON object per line.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self._detect_environment()
        self.console: Optional[Console] = Console() if self.use_rich else None
        self.results_table: Optional[Table] = None

    def _detect_environment(self) -> None:
        """Detect if we should use rich output or plain text."""
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:  # AUTO
            is_terminal = sys.stdout.isatty()
            is_ci = any([
                'CI' in os.environ,
                'JENKINS_HOME' in os.environ,
                'GITLAB_CI' in os.environ,
                'GITHUB_ACTIONS' in os.environ,
                'TRAVIS' in os.environ,
            ])
            self.use_rich = is_terminal and not is_ci

    @property
    def use_json(self) -> bool:
        return self.output_format == OutputFormat.JSON

    def start_collection(self, source: str, run_id: str) -> None:
        """Announce the message file being collected."""
        if self.use_json:
            self._emit_json({"event": "collection_started", "source": source, "run_id": run_id})
        elif self.use_rich:
            self.results_table = Table(show_header=True, header_style="bold cyan")
            self.results_table.add_column("External ID", style="dim", width=16)
            self.results_table.add_column("Scenario", width=48)
            self.results_table.add_column("Outcome", width=12)
            self.results_table.add_column("Steps", justify="right", width=6)
            self.results_table.add_column("Duration", justify="right", width=10)
            self.console.print(f"[cyan]Collecting results from {source} (run {run_id})[/]")
        else:
            print(f"Collecting results from: {source}")
            print(f"Run: {run_id}")
            print("-" * 80)

    def report_result(self, result: TestResult) -> None:
        """Report a single collected scenario result."""
        icon, color = _OUTCOME_STYLES.get(result.outcome, ("?", "white"))
        if self.use_json:
            self._emit_json({
                "event": "result_collected",
                "external_id": result.external_id,
                "display_name": result.display_name,
                "outcome": result.outcome.value,
                "duration": result.duration,
            })
        elif self.use_rich:
            self.results_table.add_row(
                result.external_id,
                result.display_name,
                Text(f"{icon} {result.outcome.value}", style=color),
                str(len(result.step_results)),
                f"{result.duration}s",
            )
            if result.message and result.outcome == Outcome.FAILED:
                self.results_table.add_row("", Text(result.message, style="red"), "", "", "")
        else:
            print(f"{icon} {result.outcome.value.upper():<8} [{result.external_id}] {result.display_name} ({result.duration}s)")
            if result.message and result.outcome == Outcome.FAILED:
                print(f"  Message: {result.message}")

    def finish_collection(self, collected: int, skipped: int, errors: int, results_dir: str) -> None:
        """Display the collection summary."""
        if self.use_json:
            self._emit_json({
                "event": "collection_finished",
                "collected": collected,
                "skipped": skipped,
                "errors": errors,
                "results_dir": results_dir,
            })
        elif self.use_rich:
            if self.results_table is not None and self.results_table.row_count:
                self.console.print(self.results_table)

            summary_text = Text()
            summary_text.append(f"Collected: {collected}  ", style="bold green")
            summary_text.append(f"Skipped: {skipped}  ", style="bold yellow")
            summary_text.append(f"Errors: {errors}", style="bold red" if errors > 0 else "bold green")

            status = "✓ ALL RESULTS COLLECTED" if errors == 0 else "✗ SOME RESULTS COULD NOT BE BUILT"
            status_style = "bold green" if errors == 0 else "bold red"

            self.console.print()
            self.console.print(Panel(
                summary_text,
                title=Text(status, style=status_style),
                subtitle=results_dir,
                border_style="green" if errors == 0 else "red",
            ))
        else:
            print("-" * 80)
            print(f"Collected: {collected} | Skipped: {skipped} | Errors: {errors}")
            print(f"Results: {results_dir}")
            if errors == 0:
                print("✓ ALL RESULTS COLLECTED")
            else:
                print("✗ SOME RESULTS COULD NOT BE BUILT")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        if self.use_json:
            self._emit_json({"event": "error", "message": message})
        elif self.use_rich:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}")

    @staticmethod
    def _emit_json(payload: dict) -> None:
        print(json.dumps(payload, ensure_ascii=False))
