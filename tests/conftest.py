"""
Shared pytest fixtures and Google event helpers.
"""

import dataclasses
from datetime import UTC, datetime

import pytest

from calmirror.config import MirrorSettings
from calmirror.store import StateDatabase
from calmirror.sync import MirrorSynchronizer

from tests.fake_client import FakeEventService

SOURCE_CAL_ID = "me@company.com"
TARGET_CAL_ID = "me@gmail.com"
MARKER = "\u200b"

WINDOW_START = datetime(2026, 3, 1, tzinfo=UTC)
WINDOW_END = datetime(2026, 4, 1, tzinfo=UTC)


def make_event(
    event_id: str,
    summary: str = "Test Event",
    start: str = "2026-03-10T10:00:00Z",
    end: str = "2026-03-10T11:00:00Z",
    **extra,
) -> dict:
    """Return a minimal Google Calendar API event resource with timed boundaries."""
    event = {
        "id": event_id,
        "summary": summary,
        "status": "confirmed",
        "start": {"dateTime": start},
        "end": {"dateTime": end},
    }
    event.update(extra)
    return event


def make_all_day_event(event_id: str, start: str, end: str, **extra) -> dict:
    """Return an all-day event; ``end`` is exclusive as in the Calendar API."""
    event = make_event(event_id, **extra)
    event["start"] = {"date": start}
    event["end"] = {"date": end}
    return event


@pytest.fixture
def settings(tmp_path):
    return MirrorSettings(
        rule_id="work_to_personal",
        source_calendar_id=SOURCE_CAL_ID,
        target_calendar_id=TARGET_CAL_ID,
        window_start=WINDOW_START,
        window_end=WINDOW_END,
        timezone=UTC,
        data_dir=tmp_path / "data",
        unique_marker=MARKER,
        title_prefix="[Work]",
        default_title="Busy",
        event_color="8",
        visibility="private",
        error_threshold=3,
        lock_timeout=0.1,
    )


@pytest.fixture
def state_db(tmp_path):
    with StateDatabase(tmp_path / "state.db") as db:
        yield db


@pytest.fixture
def mappings(state_db, settings):
    return state_db.mapping_store(settings.pair_key)


@pytest.fixture
def sync_state(state_db, settings):
    return state_db.sync_state_store(settings.pair_key)


@pytest.fixture
def source():
    return FakeEventService()


@pytest.fixture
def target():
    return FakeEventService()


@pytest.fixture
def make_synchronizer(settings, source, target, mappings, sync_state):
    """Build a synchronizer, optionally overriding settings fields."""

    def factory(**overrides):
        return MirrorSynchronizer(
            dataclasses.replace(settings, **overrides),
            source_client=source,
            target_client=target,
            mappings=mappings,
            state=sync_state,
        )

    return factory
