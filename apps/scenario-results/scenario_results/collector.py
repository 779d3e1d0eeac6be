"""Dispatch cucumber message envelopes into the scenario storage."""

from __future__ import annotations

import base64
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from .errors import EntityKind, EntityNotFoundError, StorageError
from .models import (
    Attachment,
    GherkinDocument,
    Link,
    Pickle,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestResult,
    TestStepFinished,
    TestStepStarted,
)
from .storage import ScenarioStorage

LOGGER = structlog.get_logger("scenario_results")

LINKS_MEDIA_TYPE = "text/x.testit.links"
MESSAGE_MEDIA_TYPE = "text/x.testit.message"

AttachmentWriter = Callable[[Attachment], str]
ResultHandler = Callable[[TestResult], None]


@dataclass
class CollectionSummary:
    collected: int = 0
    skipped: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


class LocalAttachmentWriter:
    """Stores attachment payloads on disk under a generated identifier."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def __call__(self, attachment: Attachment) -> str:
        attachment_id = str(uuid.uuid4())
        target_dir = self.directory / attachment_id
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / Path(attachment.file_name or "attachment").name
        target.write_bytes(decode_attachment_body(attachment))
        return attachment_id


class MessageCollector:
    """Feeds envelopes to a ScenarioStorage and emits results of finished scenarios.

    Scenarios without an @ExternalId are skipped. A scenario whose event
    stream is broken is logged and recorded in the summary; collection then
    continues with the next scenario.
    """

    def __init__(
        self,
        storage: ScenarioStorage,
        *,
        attachment_writer: Optional[AttachmentWriter] = None,
        on_result: Optional[ResultHandler] = None,
    ) -> None:
        self.storage = storage
        self.summary = CollectionSummary()
        self._attachment_writer = attachment_writer
        self._on_result = on_result
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "gherkinDocument": lambda payload: storage.save_gherkin_document(
                GherkinDocument.model_validate(payload)
            ),
            "pickle": lambda payload: storage.save_pickle(Pickle.model_validate(payload)),
            "testCase": lambda payload: storage.save_test_case(TestCase.model_validate(payload)),
            "testCaseStarted": lambda payload: storage.save_test_case_started(
                TestCaseStarted.model_validate(payload)
            ),
            "testStepStarted": lambda payload: storage.save_test_step_started(
                TestStepStarted.model_validate(payload)
            ),
            "testStepFinished": lambda payload: storage.save_test_step_finished(
                TestStepFinished.model_validate(payload)
            ),
            "testCaseFinished": self._handle_test_case_finished,
            "attachment": self._handle_attachment,
        }

    def handle(self, envelope: dict[str, Any]) -> None:
        for kind, payload in envelope.items():
            handler = self._handlers.get(kind)
            if handler is None:
                LOGGER.debug("envelope_ignored", kind=kind)
                continue
            handler(payload)

    def _handle_test_case_finished(self, payload: dict[str, Any]) -> None:
        finished = TestCaseFinished.model_validate(payload)
        self.storage.save_test_case_finished(finished)
        if finished.will_be_retried:
            LOGGER.debug("test_case_will_be_retried", test_case_started_id=finished.test_case_started_id)
            return

        test_case_id = self.storage.get_test_case_id(finished.test_case_started_id)
        logger = LOGGER.bind(test_case_started_id=finished.test_case_started_id, test_case_id=test_case_id)
        try:
            if test_case_id is None:
                raise EntityNotFoundError(EntityKind.TEST_CASE_STARTED, finished.test_case_started_id)
            test_case = self.storage.get_test_case(test_case_id)
            self.storage.get_pickle(test_case.pickle_id)
            if not self.storage.is_resolved_test_case(test_case):
                self.summary.skipped += 1
                logger.info("test_case_unresolved")
                return
            result = self.storage.get_test_result(test_case_id)
        except StorageError as exc:
            self.summary.errors.append({"test_case_id": test_case_id, "error": str(exc)})
            logger.error("test_result_failed", error=str(exc))
            return

        self.summary.collected += 1
        logger.info("test_result_collected", external_id=result.external_id, outcome=result.outcome.value)
        if self._on_result is not None:
            self._on_result(result)

    def _handle_attachment(self, payload: dict[str, Any]) -> None:
        attachment = Attachment.model_validate(payload)
        if attachment.test_case_started_id is None:
            LOGGER.debug("attachment_without_test_case", media_type=attachment.media_type)
            return
        test_case_id = self.storage.get_test_case_id(attachment.test_case_started_id)
        if test_case_id is None:
            LOGGER.warning("attachment_for_unknown_test_case", test_case_started_id=attachment.test_case_started_id)
            return

        logger = LOGGER.bind(test_case_id=test_case_id, media_type=attachment.media_type)
        try:
            self._route_attachment(test_case_id, attachment, logger)
        except ValueError as exc:
            # The attachment is dropped; the scenario itself is still reported.
            self.summary.errors.append({"test_case_id": test_case_id, "error": str(exc)})
            logger.error("attachment_rejected", error=str(exc))

    def _route_attachment(self, test_case_id: str, attachment: Attachment, logger: Any) -> None:
        if attachment.media_type == LINKS_MEDIA_TYPE:
            self.storage.add_links(test_case_id, _parse_links(attachment))
        elif attachment.media_type == MESSAGE_MEDIA_TYPE:
            self.storage.add_message(test_case_id, decode_attachment_body(attachment).decode("utf-8"))
        elif self._attachment_writer is not None:
            attachment_id = self._attachment_writer(attachment)
            self.storage.add_attachment(test_case_id, attachment_id)
            logger.debug("attachment_stored", attachment_id=attachment_id)
        else:
            logger.debug("attachment_dropped")


def decode_attachment_body(attachment: Attachment) -> bytes:
    """Raw attachment bytes; malformed base64 raises ``binascii.Error`` (a ``ValueError``)."""

    if attachment.content_encoding.upper() == "BASE64":
        return base64.b64decode(attachment.body, validate=True)
    return attachment.body.encode("utf-8")


def _parse_links(attachment: Attachment) -> list[Link]:
    try:
        payload = json.loads(decode_attachment_body(attachment))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Links attachment is not valid JSON: {exc}") from exc
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise ValueError(f"Links attachment must hold a link or a list of links, got {type(payload).__name__}")
    try:
        return [Link.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise ValueError(f"Links attachment has an invalid link: {exc}") from exc
