"""Collection run: load a message file, rebuild results and write artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import json
import re

import structlog
import yaml

from .collector import LocalAttachmentWriter, MessageCollector
from .console_reporter import ConsoleReporter
from .loader import iter_envelopes
from .models import CollectedResult, CollectionReport, TestResult
from .output_config import OutputFormat
from .storage import ScenarioStorage

LOGGER = structlog.get_logger("scenario_results")

RESULT_FORMATS = {"json", "yaml"}


@dataclass
class RunArtifacts:
    run_dir: Path
    results_dir: Path
    attachments_dir: Path
    summary_file: Path


class CollectionRunner:
    """Replays a cucumber message file through the storage and records the results."""

    def __init__(
        self,
        *,
        messages: Path,
        output_root: Path,
        run_id: str,
        result_format: str = "json",
        output_format: OutputFormat = OutputFormat.AUTO,
    ) -> None:
        if not messages.is_file():
            raise FileNotFoundError(f"Message file not found: {messages}")
        if result_format not in RESULT_FORMATS:
            raise ValueError(f"Unsupported result format: {result_format}")
        self.messages = messages
        self.output_root = output_root
        self.run_id = run_id
        self.result_format = result_format
        self._reporter = ConsoleReporter(output_format=output_format)
        self._written: list[CollectedResult] = []
        self._used_names: set[str] = set()

    def run(self) -> CollectionReport:
        artifacts = self._prepare_artifacts()
        logger = LOGGER.bind(run_id=self.run_id, source=str(self.messages))
        started_at = datetime.now(timezone.utc)
        self._reporter.start_collection(source=str(self.messages), run_id=self.run_id)

        storage = ScenarioStorage()
        collector = MessageCollector(
            storage,
            attachment_writer=LocalAttachmentWriter(artifacts.attachments_dir),
            on_result=lambda result: self._record(result, artifacts),
        )
        for envelope in iter_envelopes(self.messages):
            collector.handle(envelope)

        summary = collector.summary
        report = CollectionReport(
            run_id=self.run_id,
            source=str(self.messages),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            collected=summary.collected,
            skipped=summary.skipped,
            failed=summary.failed,
            results=self._written,
            errors=summary.errors,
        )
        artifacts.summary_file.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        logger.info(
            "collection_finished",
            collected=report.collected,
            skipped=report.skipped,
            failed=report.failed,
        )
        for error in report.errors:
            self._reporter.print_error(f"{error['test_case_id']}: {error['error']}")
        self._reporter.finish_collection(
            collected=report.collected,
            skipped=report.skipped,
            errors=report.failed,
            results_dir=str(artifacts.results_dir),
        )
        return report

    def _record(self, result: TestResult, artifacts: RunArtifacts) -> None:
        destination = artifacts.results_dir / f"{self._unique_name(result.external_id)}.{self.result_format}"
        payload = result.as_serializable()
        if self.result_format == "yaml":
            destination.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")
        else:
            destination.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        self._written.append(
            CollectedResult(
                external_id=result.external_id,
                display_name=result.display_name,
                outcome=result.outcome,
                result_file=str(destination),
            )
        )
        self._reporter.report_result(result)

    def _unique_name(self, external_id: str) -> str:
        # Scenario outlines share one external id across their examples.
        base = _slug(external_id)
        name = base
        counter = 2
        while name in self._used_names:
            name = f"{base}-{counter}"
            counter += 1
        self._used_names.add(name)
        return name

    def _prepare_artifacts(self) -> RunArtifacts:
        run_dir = self.output_root / self.run_id
        results_dir = run_dir / "results"
        results_dir.mkdir(parents=True, exist_ok=True)
        return RunArtifacts(
            run_dir=run_dir,
            results_dir=results_dir,
            attachments_dir=run_dir / "attachments",
            summary_file=run_dir / "summary.json",
        )


def _slug(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]+", "-", value).strip("-") or "result"
