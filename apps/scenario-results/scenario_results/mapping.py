"""Map cucumber statuses and timestamps onto the reporting schema."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from .models import Outcome, StepStatus

_STATUS_OUTCOMES = {
    StepStatus.PASSED: Outcome.PASSED,
    StepStatus.FAILED: Outcome.FAILED,
    StepStatus.AMBIGUOUS: Outcome.FAILED,
    StepStatus.SKIPPED: Outcome.SKIPPED,
    StepStatus.PENDING: Outcome.SKIPPED,
    StepStatus.UNDEFINED: Outcome.SKIPPED,
    StepStatus.UNKNOWN: Outcome.BLOCKED,
}


def map_status(status: StepStatus) -> Outcome:
    return _STATUS_OUTCOMES[StepStatus(status)]


def map_date(seconds: int) -> datetime:
    """Convert epoch seconds into an aware UTC datetime."""

    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def calculate_result_outcome(outcomes: Iterable[Outcome]) -> Outcome:
    """Aggregate step outcomes into the outcome of the whole scenario."""

    seen = set(outcomes)
    for outcome in (Outcome.FAILED, Outcome.BLOCKED, Outcome.SKIPPED):
        if outcome in seen:
            return outcome
    return Outcome.PASSED
