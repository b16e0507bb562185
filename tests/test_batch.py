"""
Unit tests for BatchExecutor — single submission, partial-failure detection and
mapping commits.
"""

import pytest

from calmirror.batch import BatchExecutor
from calmirror.diff import build_target_event
from calmirror.errors import PartialBatchFailure
from calmirror.models import Create, Delete, SourceEvent, Update
from tests.conftest import TARGET_CAL_ID, make_event


@pytest.fixture
def executor(target, mappings):
    return BatchExecutor(target, TARGET_CAL_ID, mappings)


def _create(settings, source_id: str) -> Create:
    event = SourceEvent.from_google_event(make_event(source_id))
    return Create(build_target_event(event, settings), source_id)


def test_empty_sequence_makes_no_call(executor, target):
    outcome = executor.execute([])
    assert outcome.applied == 0
    assert not outcome.partial_failure
    assert target.batches == []


def test_all_requests_go_in_one_batch(executor, target, settings, mappings):
    requests = [_create(settings, "S1"), _create(settings, "S2")]
    outcome = executor.execute(requests)

    assert len(target.batches) == 1
    assert outcome.submitted == outcome.applied == 2
    assert not outcome.partial_failure
    assert mappings.all_mappings() == {
        "S1": requests[0].target_id,
        "S2": requests[1].target_id,
    }


def test_delete_removes_mapping(executor, target, mappings):
    mappings.set_mapping("S1", "T1")
    target.put_event(TARGET_CAL_ID, {"id": "T1", "summary": "x"})

    executor.execute([Delete(target_id="T1", source_id="S1")])
    assert mappings.get_target_id("S1") is None
    assert "T1" not in target.events(TARGET_CAL_ID)


def test_update_keeps_mapping(executor, settings, mappings):
    mappings.set_mapping("S1", "T1")
    event = SourceEvent.from_google_event(make_event("S1"))
    executor.execute([Update(build_target_event(event, settings, "T1"), "S1")])
    assert mappings.get_target_id("S1") == "T1"


def test_partial_failure_commits_only_confirmed_results(
    executor, target, settings, mappings
):
    target.drop_results = 1
    requests = [_create(settings, "S1"), _create(settings, "S2")]
    outcome = executor.execute(requests)

    assert outcome.partial_failure
    assert (outcome.submitted, outcome.applied) == (2, 1)
    assert mappings.all_mappings() == {"S1": requests[0].target_id}

    with pytest.raises(PartialBatchFailure):
        outcome.raise_for_partial_failure()
