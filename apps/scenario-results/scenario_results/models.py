"""Cucumber message and test result models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MessageModel(BaseModel):
    """Base for cucumber messages; accepts camelCase keys as emitted by the runner."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class StepStatus(str, Enum):
    UNKNOWN = "UNKNOWN"
    PASSED = "PASSED"
    SKIPPED = "SKIPPED"
    PENDING = "PENDING"
    UNDEFINED = "UNDEFINED"
    AMBIGUOUS = "AMBIGUOUS"
    FAILED = "FAILED"


class Outcome(str, Enum):
    """Result classification understood by the test-management system."""

    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    BLOCKED = "Blocked"


class Timestamp(MessageModel):
    seconds: int
    nanos: int = 0


class Duration(MessageModel):
    seconds: int
    nanos: int = 0


class GherkinDocument(MessageModel):
    """Parsed feature file. Kept for completeness only."""

    uri: Optional[str] = None
    feature: Optional[dict[str, Any]] = None
    comments: list[dict[str, Any]] = Field(default_factory=list)


class PickleTag(MessageModel):
    name: str
    ast_node_id: Optional[str] = None


class PickleStep(MessageModel):
    id: str
    text: str
    type: Optional[str] = None
    ast_node_ids: list[str] = Field(default_factory=list)


class Pickle(MessageModel):
    """Concrete scenario instance after outline/example expansion."""

    id: str
    name: str
    uri: Optional[str] = None
    language: Optional[str] = None
    steps: list[PickleStep] = Field(default_factory=list)
    tags: list[PickleTag] = Field(default_factory=list)
    ast_node_ids: list[str] = Field(default_factory=list)


class TestStep(MessageModel):
    """Executable unit of a test case; hooks carry no pickle step reference."""

    __test__ = False

    id: str
    pickle_step_id: Optional[str] = None
    hook_id: Optional[str] = None
    step_definition_ids: list[str] = Field(default_factory=list)


class TestCase(MessageModel):
    """Runner execution plan for one pickle."""

    __test__ = False

    id: str
    pickle_id: str
    test_steps: list[TestStep] = Field(default_factory=list)


class TestCaseStarted(MessageModel):
    __test__ = False

    id: str
    test_case_id: str
    timestamp: Timestamp
    attempt: int = 0


class TestCaseFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    timestamp: Timestamp
    will_be_retried: bool = False


class TestStepStarted(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    timestamp: Timestamp


class TestStepResult(MessageModel):
    __test__ = False

    status: StepStatus
    duration: Duration
    message: Optional[str] = None


class TestStepFinished(MessageModel):
    __test__ = False

    test_case_started_id: str
    test_step_id: str
    test_step_result: TestStepResult
    timestamp: Timestamp


class Attachment(MessageModel):
    """Out-of-band payload attached by a hook or step while a case runs."""

    body: str
    media_type: str
    content_encoding: str = "IDENTITY"
    file_name: Optional[str] = None
    test_case_started_id: Optional[str] = None
    test_step_id: Optional[str] = None


class Link(BaseModel):
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None


class AttachmentRef(BaseModel):
    id: str


class ParsedTags(BaseModel):
    """Structured view of the reporting tags found on a pickle."""

    external_id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    links: list[Link] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    work_item_ids: list[str] = Field(default_factory=list)


class StepResult(BaseModel):
    """Outcome of a single scenario step."""

    title: str
    started_on: datetime
    completed_on: datetime
    duration: int
    outcome: Outcome


class TestResult(BaseModel):
    """Result record for one scenario execution, ready for upload."""

    __test__ = False

    external_id: str
    display_name: str
    title: Optional[str] = None
    description: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    work_item_ids: list[str] = Field(default_factory=list)
    links: list[Link] = Field(default_factory=list)
    result_links: list[Link] = Field(default_factory=list)
    step_results: list[StepResult] = Field(default_factory=list)
    outcome: Outcome
    started_on: datetime
    completed_on: datetime
    duration: int
    message: Optional[str] = None
    traces: Optional[str] = None
    attachments: Optional[list[AttachmentRef]] = None

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON/YAML friendly payload."""

        return self.model_dump(mode="json")


class CollectedResult(BaseModel):
    external_id: str
    display_name: str
    outcome: Outcome
    result_file: str


class CollectionReport(BaseModel):
    """Summary of one collection run written next to the result files."""

    run_id: str
    source: str
    started_at: datetime
    finished_at: datetime
    collected: int
    skipped: int
    failed: int
    results: list[CollectedResult] = Field(default_factory=list)
    errors: list[dict[str, Any]] = Field(default_factory=list)
