"""Test bootstrap for scenario-results."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from scenario_results.models import (  # noqa: E402
    Pickle,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestStepFinished,
    TestStepStarted,
)
from scenario_results.storage import ScenarioStorage  # noqa: E402


def scenario_envelopes(
    *,
    case_id: str = "tc-1",
    pickle_id: str = "pickle-1",
    started_id: str = "tcs-1",
    name: str = "Pay an invoice",
    tags: tuple[str, ...] = ("@ExternalId=PAY-1",),
    statuses: tuple[str, ...] = ("PASSED", "PASSED"),
    messages: tuple[str | None, ...] | None = None,
    start: int = 1_700_000_000,
    finish: int | None = None,
    attempt: int = 0,
    will_be_retried: bool = False,
) -> list[dict[str, Any]]:
    """Build the cucumber envelopes emitted for one scenario, in emission order."""

    messages = messages or tuple(None for _ in statuses)
    step_ids = [f"{pickle_id}-step-{index}" for index in range(len(statuses))]
    envelopes: list[dict[str, Any]] = [
        {
            "pickle": {
                "id": pickle_id,
                "uri": "features/payments.feature",
                "name": name,
                "language": "en",
                "steps": [
                    {"id": step_id, "text": f"step number {index}", "astNodeIds": []}
                    for index, step_id in enumerate(step_ids)
                ],
                "tags": [{"name": tag, "astNodeId": "tag"} for tag in tags],
                "astNodeIds": [],
            }
        },
        {
            "testCase": {
                "id": case_id,
                "pickleId": pickle_id,
                "testSteps": [{"id": f"{case_id}-hook", "hookId": "before"}]
                + [
                    {"id": f"{case_id}-ts-{index}", "pickleStepId": step_id, "stepDefinitionIds": []}
                    for index, step_id in enumerate(step_ids)
                ],
            }
        },
        {
            "testCaseStarted": {
                "id": started_id,
                "testCaseId": case_id,
                "attempt": attempt,
                "timestamp": {"seconds": start, "nanos": 0},
            }
        },
    ]
    clock = start
    for index, (status, message) in enumerate(zip(statuses, messages)):
        test_step_id = f"{case_id}-ts-{index}"
        envelopes.append(
            {
                "testStepStarted": {
                    "testCaseStartedId": started_id,
                    "testStepId": test_step_id,
                    "timestamp": {"seconds": clock, "nanos": 0},
                }
            }
        )
        result: dict[str, Any] = {"status": status, "duration": {"seconds": 1, "nanos": 500}}
        if message is not None:
            result["message"] = message
        envelopes.append(
            {
                "testStepFinished": {
                    "testCaseStartedId": started_id,
                    "testStepId": test_step_id,
                    "testStepResult": result,
                    "timestamp": {"seconds": clock + 1, "nanos": 0},
                }
            }
        )
        clock += 1
    envelopes.append(
        {
            "testCaseFinished": {
                "testCaseStartedId": started_id,
                "timestamp": {"seconds": finish if finish is not None else clock, "nanos": 0},
                "willBeRetried": will_be_retried,
            }
        }
    )
    return envelopes


def ingest(storage: ScenarioStorage, envelopes: list[dict[str, Any]]) -> None:
    """Feed envelopes straight into the storage, bypassing the collector."""

    savers = {
        "pickle": (Pickle, storage.save_pickle),
        "testCase": (TestCase, storage.save_test_case),
        "testCaseStarted": (TestCaseStarted, storage.save_test_case_started),
        "testCaseFinished": (TestCaseFinished, storage.save_test_case_finished),
        "testStepStarted": (TestStepStarted, storage.save_test_step_started),
        "testStepFinished": (TestStepFinished, storage.save_test_step_finished),
    }
    for envelope in envelopes:
        for kind, payload in envelope.items():
            model, save = savers[kind]
            save(model.model_validate(payload))


@pytest.fixture
def storage() -> ScenarioStorage:
    return ScenarioStorage()
