"""
Unit tests for the diff engine: the four (should_copy, mapping exists)
combinations and the synthesized target event.
"""

import dataclasses
import re

from calmirror.diff import (
    RULE_ID_PROPERTY,
    SOURCE_ID_PROPERTY,
    build_target_event,
    decide,
    has_marker,
    is_mirror_of,
)
from calmirror.models import Create, Delete, SourceEvent, Update
from tests.conftest import MARKER, make_all_day_event, make_event


def _source(**kwargs) -> SourceEvent:
    return SourceEvent.from_google_event(make_event("S1", **kwargs))


class TestDecide:
    def test_excluded_and_unmapped_is_ignored(self, settings):
        assert decide(_source(), None, False, settings) is None

    def test_excluded_and_mapped_deletes_mirror(self, settings):
        action = decide(_source(), "T1", False, settings)
        assert action == Delete(target_id="T1", source_id="S1")

    def test_included_and_unmapped_creates_with_new_id(self, settings):
        action = decide(_source(), None, True, settings)
        assert isinstance(action, Create)
        assert action.source_id == "S1"
        assert re.fullmatch(r"[0-9a-f]{32}", action.target_id)
        assert action.target_event.body["id"] == action.target_id

    def test_included_and_mapped_updates_existing_id(self, settings):
        action = decide(_source(), "T1", True, settings)
        assert isinstance(action, Update)
        assert action.target_id == "T1"
        assert action.target_event.body["id"] == "T1"

    def test_created_ids_are_unique(self, settings):
        first = decide(_source(), None, True, settings)
        second = decide(_source(), None, True, settings)
        assert first.target_id != second.target_id


class TestBuildTargetEvent:
    def test_summary_has_marker_and_prefix(self, settings):
        target = build_target_event(_source(summary="Planning"), settings)
        assert target.summary == f"{MARKER}[Work] Planning"

    def test_default_title_when_summary_missing(self, settings):
        target = build_target_event(_source(summary=""), settings)
        assert target.summary == f"{MARKER}[Work] Busy"

    def test_no_prefix_omits_separator(self, settings):
        target = build_target_event(
            _source(summary="Planning"), dataclasses.replace(settings, title_prefix="")
        )
        assert target.summary == f"{MARKER}Planning"

    def test_copies_event_details(self, settings):
        source = _source(location="Room 4", description="Agenda", status="tentative")
        body = build_target_event(source, settings).body
        assert body["location"] == "Room 4"
        assert body["description"] == "Agenda"
        assert body["status"] == "tentative"
        assert body["start"] == {"dateTime": "2026-03-10T10:00:00Z"}
        assert body["end"] == {"dateTime": "2026-03-10T11:00:00Z"}

    def test_all_day_boundaries_are_kept_as_dates(self, settings):
        source = SourceEvent.from_google_event(
            make_all_day_event("S2", "2026-03-10", "2026-03-11")
        )
        body = build_target_event(source, settings).body
        assert body["start"] == {"date": "2026-03-10"}
        assert body["end"] == {"date": "2026-03-11"}

    def test_mirror_is_non_interactive(self, settings):
        body = build_target_event(_source(), settings).body
        assert body["guestsCanModify"] is False
        assert body["guestsCanSeeOtherGuests"] is False
        assert body["guestsCanInviteOthers"] is False
        assert body["anyoneCanAddSelf"] is False
        assert body["locked"] is True
        assert body["reminders"] == {"useDefault": False}
        assert "attendees" not in body

    def test_configured_color_and_visibility(self, settings):
        body = build_target_event(_source(), settings).body
        assert body["colorId"] == "8"
        assert body["visibility"] == "private"

    def test_no_color_keeps_calendar_color(self, settings):
        body = build_target_event(
            _source(), dataclasses.replace(settings, event_color="")
        ).body
        assert "colorId" not in body

    def test_source_id_recorded_in_private_properties(self, settings):
        body = build_target_event(_source(), settings).body
        assert body["extendedProperties"]["private"][SOURCE_ID_PROPERTY] == "S1"


class TestHasMarker:
    def test_marker_present(self):
        assert has_marker({"summary": f"{MARKER}[Work] Busy"}, MARKER)

    def test_marker_absent(self):
        assert not has_marker({"summary": "[Work] Busy"}, MARKER)

    def test_missing_summary(self):
        assert not has_marker({"id": "x"}, MARKER)
        assert not has_marker({"summary": None}, MARKER)

    def test_empty_marker_never_matches(self):
        assert not has_marker({"summary": "anything"}, "")


class TestIsMirrorOf:
    def test_own_mirror(self, settings):
        body = build_target_event(_source(), settings).body
        assert is_mirror_of(body, settings)

    def test_mirror_of_another_rule_sharing_the_target(self, settings):
        body = build_target_event(_source(), settings).body
        body["extendedProperties"]["private"][RULE_ID_PROPERTY] = "club_to_personal"
        assert not is_mirror_of(body, settings)

    def test_marked_event_without_rule_property(self, settings):
        assert not is_mirror_of({"summary": f"{MARKER}[Work] Busy"}, settings)

    def test_rule_property_without_marker(self, settings):
        body = build_target_event(_source(), settings).body
        body["summary"] = "[Work] Busy"
        assert not is_mirror_of(body, settings)
