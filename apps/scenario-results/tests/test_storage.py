from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import ingest, scenario_envelopes
from scenario_results.errors import EntityKind, EntityNotFoundError, MissingExternalIdError
from scenario_results.models import (
    Link,
    Outcome,
    Pickle,
    StepResult,
    TestCase,
    TestCaseStarted,
    Timestamp,
)
from scenario_results.storage import ScenarioStorage, filter_cascading_skips


def _step(outcome: Outcome) -> StepResult:
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return StepResult(title="step", started_on=moment, completed_on=moment, duration=0, outcome=outcome)


def test_result_assembles_steps_and_timing(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(start=1_700_000_000, finish=1_700_000_007))

    result = storage.get_test_result("tc-1")

    assert result.external_id == "PAY-1"
    assert result.display_name == "Pay an invoice"
    assert result.outcome == Outcome.PASSED
    assert result.duration == 7
    assert result.started_on == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert result.completed_on == datetime.fromtimestamp(1_700_000_007, tz=timezone.utc)
    assert [step.title for step in result.step_results] == ["step number 0", "step number 1"]
    assert all(step.duration == 1 for step in result.step_results)
    assert result.step_results[1].started_on == datetime.fromtimestamp(1_700_000_001, tz=timezone.utc)
    assert result.message is None
    assert result.traces is None
    assert result.attachments is None
    assert result.result_links == []


def test_cascading_skips_are_collapsed() -> None:
    outcomes = [Outcome.PASSED, Outcome.FAILED, Outcome.SKIPPED, Outcome.SKIPPED, Outcome.PASSED, Outcome.SKIPPED]

    filtered = filter_cascading_skips(_step(outcome) for outcome in outcomes)

    assert [step.outcome for step in filtered] == [
        Outcome.PASSED,
        Outcome.FAILED,
        Outcome.PASSED,
        Outcome.SKIPPED,
    ]


def test_leading_skips_keep_a_single_boundary() -> None:
    filtered = filter_cascading_skips(_step(outcome) for outcome in [Outcome.SKIPPED, Outcome.SKIPPED, Outcome.PASSED])

    assert [step.outcome for step in filtered] == [Outcome.SKIPPED, Outcome.PASSED]


def test_failed_scenario_filters_steps_and_joins_traces(storage: ScenarioStorage) -> None:
    ingest(
        storage,
        scenario_envelopes(
            statuses=("PASSED", "FAILED", "SKIPPED", "UNDEFINED"),
            messages=(None, "AssertionError: expected 200", "", None),
        ),
    )

    result = storage.get_test_result("tc-1")

    assert [step.outcome for step in result.step_results] == [Outcome.PASSED, Outcome.FAILED]
    assert result.outcome == Outcome.FAILED
    assert result.traces == "AssertionError: expected 200"


def test_step_messages_are_joined_with_blank_line(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(statuses=("PASSED", "PASSED"), messages=("first", "second")))

    assert storage.get_test_result("tc-1").traces == "first\n\nsecond"


def test_display_name_tag_overrides_pickle_name(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(tags=("@ExternalId=PAY-1", "@DisplayName=X")))

    assert storage.get_test_result("tc-1").display_name == "X"


def test_tag_links_are_reported(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(tags=("@ExternalId=PAY-1", "@Links=https://tracker/PAY-1")))

    assert storage.get_test_result("tc-1").links == [Link(url="https://tracker/PAY-1")]


def test_descriptive_tags_are_carried_into_the_result(storage: ScenarioStorage) -> None:
    tags = (
        "@ExternalId=PAY-1",
        "@Title=Payments",
        "@Description=Happy_path",
        "@Labels=smoke,payments",
        "@WorkItemIds=101",
    )
    ingest(storage, scenario_envelopes(tags=tags))

    result = storage.get_test_result("tc-1")

    assert result.title == "Payments"
    assert result.description == "Happy_path"
    assert result.labels == ["smoke", "payments"]
    assert result.work_item_ids == ["101"]


def test_unknown_case_raises_not_found(storage: ScenarioStorage) -> None:
    with pytest.raises(EntityNotFoundError) as excinfo:
        storage.get_test_result("missing")

    assert excinfo.value.kind == EntityKind.TEST_CASE
    assert excinfo.value.identifier == "missing"


def test_missing_pickle_raises_not_found(storage: ScenarioStorage) -> None:
    storage.save_test_case(TestCase(id="tc-1", pickle_id="ghost"))

    with pytest.raises(EntityNotFoundError) as excinfo:
        storage.get_test_result("tc-1")

    assert excinfo.value.kind == EntityKind.PICKLE


def test_missing_external_id_raises(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(tags=("@smoke",)))

    with pytest.raises(MissingExternalIdError):
        storage.get_test_result("tc-1")


@pytest.mark.parametrize(
    ("dropped", "kind"),
    [
        ("testCaseStarted", EntityKind.TEST_CASE_STARTED),
        ("testCaseFinished", EntityKind.TEST_CASE_FINISHED),
        ("testStepStarted", EntityKind.TEST_STEP_STARTED),
        ("testStepFinished", EntityKind.TEST_STEP_FINISHED),
    ],
)
def test_incomplete_event_stream_raises(storage: ScenarioStorage, dropped: str, kind: EntityKind) -> None:
    envelopes = [envelope for envelope in scenario_envelopes() if dropped not in envelope]
    ingest(storage, envelopes)

    with pytest.raises(EntityNotFoundError) as excinfo:
        storage.get_test_result("tc-1")

    assert excinfo.value.kind == kind


def test_pickle_step_without_test_step_raises(storage: ScenarioStorage) -> None:
    envelopes = scenario_envelopes()
    envelopes[1]["testCase"]["testSteps"] = envelopes[1]["testCase"]["testSteps"][:2]
    ingest(storage, envelopes)

    with pytest.raises(EntityNotFoundError) as excinfo:
        storage.get_test_result("tc-1")

    assert excinfo.value.kind == EntityKind.TEST_STEP


def test_started_record_is_matched_by_case(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(start=100, finish=103))
    ingest(
        storage,
        scenario_envelopes(
            case_id="tc-2",
            pickle_id="pickle-2",
            started_id="tcs-2",
            tags=("@ExternalId=PAY-2",),
            start=200,
            finish=210,
        ),
    )

    second = storage.get_test_result("tc-2")

    assert second.external_id == "PAY-2"
    assert second.duration == 10
    assert second.started_on == datetime.fromtimestamp(200, tz=timezone.utc)


def test_latest_attempt_is_reported(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes(started_id="tcs-1", statuses=("FAILED",), will_be_retried=True))
    retry = [
        envelope
        for envelope in scenario_envelopes(started_id="tcs-1b", statuses=("PASSED",), attempt=1, start=1_700_000_100)
        if "pickle" not in envelope and "testCase" not in envelope
    ]
    ingest(storage, retry)

    result = storage.get_test_result("tc-1")

    assert result.outcome == Outcome.PASSED
    assert result.started_on == datetime.fromtimestamp(1_700_000_100, tz=timezone.utc)


def test_is_resolved_requires_external_id(storage: ScenarioStorage) -> None:
    storage.save_pickle(Pickle(id="p-tagged", name="tagged", tags=[{"name": "@ExternalId=42"}]))
    storage.save_pickle(Pickle(id="p-plain", name="plain", tags=[{"name": "@smoke"}]))

    assert storage.is_resolved_test_case(TestCase(id="a", pickle_id="p-tagged"))
    assert not storage.is_resolved_test_case(TestCase(id="b", pickle_id="p-plain"))
    assert not storage.is_resolved_test_case(TestCase(id="c", pickle_id="p-unknown"))


def test_messages_accumulate_in_order(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes())
    storage.add_message("tc-1", "a")
    storage.add_message("tc-1", "b")

    assert storage.get_test_result("tc-1").message == "a\n\nb"


def test_links_accumulate(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes())
    first = [Link(url="https://ci/build/1")]
    storage.add_links("tc-1", first)
    storage.add_links("tc-1", [Link(url="https://ci/build/2", title="rerun")])

    links = storage.get_test_result("tc-1").result_links

    assert [link.url for link in links] == ["https://ci/build/1", "https://ci/build/2"]
    assert len(first) == 1


def test_attachments_accumulate(storage: ScenarioStorage) -> None:
    ingest(storage, scenario_envelopes())
    storage.add_attachment("tc-1", "att-1")
    storage.add_attachment("tc-1", "att-2")

    assert [ref.id for ref in storage.get_attachments("tc-1")] == ["att-1", "att-2"]
    assert [ref.id for ref in storage.get_test_result("tc-1").attachments] == ["att-1", "att-2"]
    assert storage.get_attachments("other") is None


def test_duplicate_records_keep_the_first(storage: ScenarioStorage) -> None:
    storage.save_pickle(Pickle(id="p", name="first", tags=[{"name": "@ExternalId=1"}]))
    storage.save_pickle(Pickle(id="p", name="second"))

    assert storage.is_resolved_test_case(TestCase(id="tc", pickle_id="p"))


def test_test_case_id_lookup_by_started_id(storage: ScenarioStorage) -> None:
    storage.save_test_case_started(
        TestCaseStarted(id="tcs-9", test_case_id="tc-9", timestamp=Timestamp(seconds=1))
    )

    assert storage.get_test_case_id("tcs-9") == "tc-9"
    assert storage.get_test_case_id("unknown") is None
