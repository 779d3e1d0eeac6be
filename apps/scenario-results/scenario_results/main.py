"""Entry point for the scenario-results application."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "scenario_results"

from .logging_utils import configure_logging
from .output_config import get_log_format, get_log_level, get_output_format
from .runner import RESULT_FORMATS, CollectionRunner

app = typer.Typer(help="Rebuild per-scenario test results from cucumber message streams.")

DEFAULT_OUTPUT_DIR = Path("artifacts/results")


def _default_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


@app.command()
def collect(
    messages: Path = typer.Option(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="NDJSON file produced by the cucumber message formatter.",
    ),
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_DIR,
        help="Root directory for collected results.",
    ),
    run_id: Optional[str] = typer.Option(
        None,
        help="Run identifier used as the output sub-directory (defaults to a UTC timestamp).",
    ),
    format: str = typer.Option(
        "json",
        "--format",
        "-f",
        help="Result file format: json (default) or yaml.",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        help="Console output: auto, rich, plain or json (env: CONSOLE_OUTPUT_FORMAT).",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        help="Log level (env: SCENARIO_RESULTS_LOG_LEVEL, default WARNING).",
    ),
) -> None:
    """Collect results of every scenario tagged with @ExternalId."""

    fmt = format.lower()
    if fmt not in RESULT_FORMATS:
        raise typer.BadParameter("Format must be 'json' or 'yaml'")

    console_format = get_output_format(output_format)
    configure_logging(get_log_level(log_level), get_log_format(console_format))

    runner = CollectionRunner(
        messages=messages,
        output_root=output_dir,
        run_id=run_id or _default_run_id(),
        result_format=fmt,
        output_format=console_format,
    )
    try:
        report = runner.run()
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if report.failed:
        raise typer.Exit(code=1)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
