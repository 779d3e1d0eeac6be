"""In-memory event store that correlates cucumber messages into test results."""

from __future__ import annotations

from typing import Any, Hashable, Iterable, Optional, TypeVar

import structlog

from .errors import EntityKind, EntityNotFoundError, MissingExternalIdError
from .mapping import calculate_result_outcome, map_date, map_status
from .models import (
    AttachmentRef,
    GherkinDocument,
    Link,
    Outcome,
    Pickle,
    PickleStep,
    StepResult,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestResult,
    TestStep,
    TestStepFinished,
    TestStepStarted,
)
from .tags import parse_tags

LOGGER = structlog.get_logger("scenario_results")

_Record = TypeVar("_Record")
_CASCADING_OUTCOMES = {Outcome.FAILED, Outcome.SKIPPED}


class ScenarioStorage:
    """Holds every event of one test run and rebuilds per-scenario results.

    Records are indexed by their natural identifier on ingestion. Nothing is
    validated until a result is requested; broken references then raise
    ``EntityNotFoundError`` or ``MissingExternalIdError``.

    Not thread-safe; one instance per test run.
    """

    def __init__(self) -> None:
        self._gherkin_documents: list[GherkinDocument] = []
        self._pickles: dict[str, Pickle] = {}
        self._test_cases: dict[str, TestCase] = {}
        self._test_cases_started: dict[str, TestCaseStarted] = {}
        self._latest_started: dict[str, TestCaseStarted] = {}
        self._test_cases_finished: dict[str, TestCaseFinished] = {}
        self._test_steps_started: dict[tuple[str, str], TestStepStarted] = {}
        self._test_steps_finished: dict[tuple[str, str], TestStepFinished] = {}
        self._messages: dict[str, list[str]] = {}
        self._result_links: dict[str, list[Link]] = {}
        self._attachments: dict[str, list[AttachmentRef]] = {}

    # ingestion

    def save_gherkin_document(self, document: GherkinDocument) -> None:
        self._gherkin_documents.append(document)

    def save_pickle(self, pickle: Pickle) -> None:
        _index(self._pickles, pickle.id, pickle, EntityKind.PICKLE)

    def save_test_case(self, test_case: TestCase) -> None:
        _index(self._test_cases, test_case.id, test_case, EntityKind.TEST_CASE)

    def save_test_case_started(self, started: TestCaseStarted) -> None:
        _index(self._test_cases_started, started.id, started, EntityKind.TEST_CASE_STARTED)
        current = self._latest_started.get(started.test_case_id)
        if current is None or started.attempt >= current.attempt:
            self._latest_started[started.test_case_id] = started

    def save_test_case_finished(self, finished: TestCaseFinished) -> None:
        _index(
            self._test_cases_finished,
            finished.test_case_started_id,
            finished,
            EntityKind.TEST_CASE_FINISHED,
        )

    def save_test_step_started(self, started: TestStepStarted) -> None:
        key = (started.test_case_started_id, started.test_step_id)
        _index(self._test_steps_started, key, started, EntityKind.TEST_STEP_STARTED)

    def save_test_step_finished(self, finished: TestStepFinished) -> None:
        key = (finished.test_case_started_id, finished.test_step_id)
        _index(self._test_steps_finished, key, finished, EntityKind.TEST_STEP_FINISHED)

    # queries

    @property
    def gherkin_documents(self) -> list[GherkinDocument]:
        return list(self._gherkin_documents)

    def get_test_case(self, test_case_id: str) -> TestCase:
        test_case = self._test_cases.get(test_case_id)
        if test_case is None:
            raise EntityNotFoundError(EntityKind.TEST_CASE, test_case_id)
        return test_case

    def get_pickle(self, pickle_id: str) -> Pickle:
        pickle = self._pickles.get(pickle_id)
        if pickle is None:
            raise EntityNotFoundError(EntityKind.PICKLE, pickle_id)
        return pickle

    def get_test_case_id(self, test_case_started_id: str) -> Optional[str]:
        """Return the test case a started record belongs to, if it was seen."""

        started = self._test_cases_started.get(test_case_started_id)
        return started.test_case_id if started is not None else None

    def is_resolved_test_case(self, test_case: TestCase) -> bool:
        """Whether the case's pickle carries an @ExternalId and can be reported."""

        pickle = self._pickles.get(test_case.pickle_id)
        if pickle is None:
            return False
        return parse_tags(pickle.tags).external_id is not None

    def get_test_result(self, test_case_id: str) -> TestResult:
        test_case = self.get_test_case(test_case_id)

        pickle = self.get_pickle(test_case.pickle_id)

        tags = parse_tags(pickle.tags)
        if tags.external_id is None:
            raise MissingExternalIdError(pickle.id)

        started = self._latest_started.get(test_case.id)
        if started is None:
            raise EntityNotFoundError(EntityKind.TEST_CASE_STARTED, test_case.id)

        finished = self._test_cases_finished.get(started.id)
        if finished is None:
            raise EntityNotFoundError(EntityKind.TEST_CASE_FINISHED, started.id)

        steps = filter_cascading_skips(
            self.get_step_result(step, test_case, started) for step in pickle.steps
        )

        traces: list[str] = []
        for step in pickle.steps:
            message = self.get_step_message(step, test_case, started)
            if message:
                traces.append(message)

        messages = self._messages.get(test_case.id)
        LOGGER.debug(
            "test_result_assembled",
            test_case_id=test_case.id,
            external_id=tags.external_id,
            steps=len(steps),
        )
        return TestResult(
            external_id=tags.external_id,
            display_name=tags.name or pickle.name,
            title=tags.title,
            description=tags.description,
            labels=tags.labels,
            work_item_ids=tags.work_item_ids,
            links=tags.links,
            result_links=list(self._result_links.get(test_case.id, [])),
            step_results=steps,
            outcome=calculate_result_outcome(step.outcome for step in steps),
            started_on=map_date(started.timestamp.seconds),
            completed_on=map_date(finished.timestamp.seconds),
            duration=finished.timestamp.seconds - started.timestamp.seconds,
            message="\n\n".join(messages) if messages else None,
            traces="\n\n".join(traces) if traces else None,
            attachments=self.get_attachments(test_case.id),
        )

    def get_step_result(
        self,
        pickle_step: PickleStep,
        test_case: TestCase,
        started: TestCaseStarted,
    ) -> StepResult:
        step_started, step_finished = self._step_records(pickle_step, test_case, started)
        return StepResult(
            title=pickle_step.text,
            started_on=map_date(step_started.timestamp.seconds),
            completed_on=map_date(step_finished.timestamp.seconds),
            duration=step_finished.test_step_result.duration.seconds,
            outcome=map_status(step_finished.test_step_result.status),
        )

    def get_step_message(
        self,
        pickle_step: PickleStep,
        test_case: TestCase,
        started: TestCaseStarted,
    ) -> Optional[str]:
        _, step_finished = self._step_records(pickle_step, test_case, started)
        return step_finished.test_step_result.message

    def get_attachments(self, test_case_id: str) -> Optional[list[AttachmentRef]]:
        attachments = self._attachments.get(test_case_id)
        if attachments is None:
            return None
        return list(attachments)

    # accumulators

    def add_message(self, test_case_id: str, message: str) -> None:
        self._messages.setdefault(test_case_id, []).append(message)

    def add_links(self, test_case_id: str, links: Iterable[Link]) -> None:
        self._result_links.setdefault(test_case_id, []).extend(links)

    def add_attachment(self, test_case_id: str, attachment_id: str) -> None:
        self._attachments.setdefault(test_case_id, []).append(AttachmentRef(id=attachment_id))

    def _step_records(
        self,
        pickle_step: PickleStep,
        test_case: TestCase,
        started: TestCaseStarted,
    ) -> tuple[TestStepStarted, TestStepFinished]:
        test_step = _find_test_step(test_case, pickle_step)
        key = (started.id, test_step.id)

        step_started = self._test_steps_started.get(key)
        if step_started is None:
            raise EntityNotFoundError(EntityKind.TEST_STEP_STARTED, test_step.id)

        step_finished = self._test_steps_finished.get(key)
        if step_finished is None:
            raise EntityNotFoundError(EntityKind.TEST_STEP_FINISHED, test_step.id)
        return step_started, step_finished


def filter_cascading_skips(steps: Iterable[StepResult]) -> list[StepResult]:
    """Drop skipped steps that directly follow a failed or already skipped step."""

    kept: list[StepResult] = []
    for step in steps:
        if step.outcome == Outcome.SKIPPED and kept and kept[-1].outcome in _CASCADING_OUTCOMES:
            continue
        kept.append(step)
    return kept


def _find_test_step(test_case: TestCase, pickle_step: PickleStep) -> TestStep:
    for test_step in test_case.test_steps:
        if test_step.pickle_step_id == pickle_step.id:
            return test_step
    raise EntityNotFoundError(EntityKind.TEST_STEP, pickle_step.id)


def _index(
    mapping: dict[Any, _Record],
    key: Hashable,
    record: _Record,
    kind: EntityKind,
) -> None:
    # First record for an identifier wins.
    if key in mapping:
        LOGGER.debug("duplicate_record_ignored", kind=kind.value, key=str(key))
        return
    mapping[key] = record
