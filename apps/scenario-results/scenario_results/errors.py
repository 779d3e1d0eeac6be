"""Exception types raised while correlating scenario events."""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    """Kinds of stored records a result lookup can miss."""

    TEST_CASE = "TestCase"
    PICKLE = "Pickle"
    TEST_STEP = "TestCase step"
    TEST_CASE_STARTED = "TestCaseStarted"
    TEST_CASE_FINISHED = "TestCaseFinished"
    TEST_STEP_STARTED = "TestStepStarted"
    TEST_STEP_FINISHED = "TestStepFinished"


class StorageError(RuntimeError):
    """Base class for broken or incomplete event streams."""


class EntityNotFoundError(StorageError):
    """Raised when a referenced record was never ingested."""

    def __init__(self, kind: EntityKind, identifier: str) -> None:
        super().__init__(f"{kind.value} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class MissingExternalIdError(StorageError):
    """Raised when a pickle carries no @ExternalId tag."""

    def __init__(self, pickle_id: str) -> None:
        super().__init__(f"External ID is not provided for pickle {pickle_id}")
        self.pickle_id = pickle_id
