"""
Unit tests for EventFilter — one event per exclusion rule, plus the window
boundary cases for timed and all-day events.
"""

import dataclasses

import pytest

from calmirror.filters import MISSING, EventFilter, resolve_path
from calmirror.models import SourceEvent
from tests.conftest import MARKER, SOURCE_CAL_ID, make_all_day_event, make_event


def _event(**kwargs) -> SourceEvent:
    return SourceEvent.from_google_event(make_event("E1", **kwargs))


@pytest.fixture
def event_filter(settings):
    return EventFilter(
        dataclasses.replace(
            settings,
            skip_summary_contains=("[Personal]",),
            advanced_filters=(("organizer.email", ("boss@company.com",)),),
        )
    )


class TestExclusionRules:
    def test_plain_event_is_copied(self, event_filter):
        assert event_filter.should_copy(_event())
        assert event_filter.exclusion_reason(_event()) is None

    @pytest.mark.parametrize(
        "fields, reason",
        [
            ({"status": "cancelled"}, "status"),
            ({"transparency": "transparent"}, "transparency"),
            ({"visibility": "private"}, "visibility"),
            ({"visibility": "confidential"}, "visibility"),
            (
                {"start": "2026-05-01T10:00:00Z", "end": "2026-05-01T11:00:00Z"},
                "outside_window",
            ),
            (
                {"attendees": [{"email": SOURCE_CAL_ID, "responseStatus": "declined"}]},
                "declined",
            ),
            ({"summary": "[Personal] Dentist"}, "summary"),
            ({"summary": f"{MARKER}[Work] Standup"}, "summary"),
            ({"organizer": {"email": "boss@company.com"}}, "advanced_filter"),
        ],
    )
    def test_each_rule_excludes(self, event_filter, fields, reason):
        event = _event(**fields)
        assert not event_filter.should_copy(event)
        assert event_filter.exclusion_reason(event) == reason

    def test_first_matching_rule_is_reported(self, event_filter):
        event = _event(status="cancelled", transparency="transparent")
        assert event_filter.exclusion_reason(event) == "status"

    def test_tentative_and_public_events_are_copied(self, event_filter):
        assert event_filter.should_copy(_event(status="tentative", visibility="public"))

    def test_declined_by_someone_else_is_copied(self, event_filter):
        event = _event(
            attendees=[
                {"email": "colleague@company.com", "responseStatus": "declined"},
                {"email": SOURCE_CAL_ID, "responseStatus": "accepted"},
            ]
        )
        assert event_filter.should_copy(event)

    def test_declined_address_match_ignores_case(self, event_filter):
        event = _event(
            attendees=[{"email": SOURCE_CAL_ID.upper(), "responseStatus": "declined"}]
        )
        assert not event_filter.should_copy(event)

    def test_declined_by_owner_of_aliased_calendar(self, settings):
        event_filter = EventFilter(
            dataclasses.replace(settings, source_calendar_id="primary")
        )
        event = _event(
            attendees=[
                {"email": SOURCE_CAL_ID, "self": True, "responseStatus": "declined"}
            ]
        )
        assert event_filter.exclusion_reason(event) == "declined"

    def test_declined_matches_account_email(self, settings):
        event_filter = EventFilter(
            dataclasses.replace(
                settings,
                source_calendar_id="primary",
                source_account_email=SOURCE_CAL_ID,
            )
        )
        event = _event(
            attendees=[{"email": SOURCE_CAL_ID, "responseStatus": "declined"}]
        )
        assert event_filter.exclusion_reason(event) == "declined"

    def test_declined_filter_can_be_disabled(self, settings):
        event_filter = EventFilter(dataclasses.replace(settings, skip_declined=False))
        event = _event(
            attendees=[{"email": SOURCE_CAL_ID, "responseStatus": "declined"}]
        )
        assert event_filter.should_copy(event)

    def test_advanced_filter_ignores_missing_path(self, event_filter):
        assert event_filter.should_copy(_event(location="Room 1"))

    def test_empty_skip_sets_copy_everything_in_window(self, settings):
        event_filter = EventFilter(
            dataclasses.replace(
                settings,
                skip_statuses=frozenset(),
                skip_transparency=frozenset(),
                skip_visibility=frozenset(),
            )
        )
        event = _event(
            status="cancelled", transparency="transparent", visibility="private"
        )
        assert event_filter.should_copy(event)


class TestWindowBoundaries:
    """Window is 2026-03-01T00:00Z .. 2026-04-01T00:00Z, both ends exclusive."""

    def test_start_exactly_at_window_start_is_excluded(self, event_filter):
        event = _event(start="2026-03-01T00:00:00Z", end="2026-03-01T00:00:00Z")
        assert event_filter.exclusion_reason(event) == "outside_window"

    def test_end_exactly_at_window_start_is_excluded(self, event_filter):
        event = _event(start="2026-02-28T23:00:00Z", end="2026-03-01T00:00:00Z")
        assert event_filter.exclusion_reason(event) == "outside_window"

    def test_end_exactly_at_window_end_is_excluded(self, event_filter):
        event = _event(start="2026-04-01T00:00:00Z", end="2026-04-01T00:00:00Z")
        assert event_filter.exclusion_reason(event) == "outside_window"

    def test_event_spanning_window_start_is_included(self, event_filter):
        event = _event(start="2026-02-28T22:00:00Z", end="2026-03-01T02:00:00Z")
        assert event_filter.should_copy(event)

    def test_event_spanning_window_end_is_included(self, event_filter):
        event = _event(start="2026-03-31T22:00:00Z", end="2026-04-01T02:00:00Z")
        assert event_filter.should_copy(event)

    def test_offset_datetimes_are_compared_as_instants(self, event_filter):
        # 2026-03-01T00:30+01:00 is 2026-02-28T23:30Z, before the window.
        event = _event(
            start="2026-03-01T00:30:00+01:00", end="2026-03-01T00:45:00+01:00"
        )
        assert not event_filter.should_copy(event)

    def test_all_day_event_inside_window(self, event_filter):
        event = SourceEvent.from_google_event(
            make_all_day_event("A1", "2026-03-10", "2026-03-11")
        )
        assert event.start.is_all_day
        assert event_filter.should_copy(event)

    def test_all_day_event_on_first_day_is_included_by_its_end(self, event_filter):
        event = SourceEvent.from_google_event(
            make_all_day_event("A1", "2026-03-01", "2026-03-02")
        )
        assert event_filter.should_copy(event)

    def test_all_day_event_ending_at_window_start_is_excluded(self, event_filter):
        event = SourceEvent.from_google_event(
            make_all_day_event("A1", "2026-02-28", "2026-03-01")
        )
        assert not event_filter.should_copy(event)

    def test_event_without_times_is_excluded(self, event_filter):
        event = SourceEvent.from_google_event({"id": "gone", "status": "confirmed"})
        assert event_filter.exclusion_reason(event) == "outside_window"


class TestResolvePath:
    def test_nested_dict_and_list_index(self):
        data = {"attendees": [{"email": "a@example.com"}], "organizer": {"self": True}}
        assert resolve_path(data, "attendees.0.email") == "a@example.com"
        assert resolve_path(data, "organizer.self") is True

    def test_missing_segments_do_not_resolve(self):
        data = {"attendees": []}
        assert resolve_path(data, "attendees.0.email") is MISSING
        assert resolve_path(data, "organizer.email") is MISSING
        assert resolve_path(data, "attendees.x") is MISSING
