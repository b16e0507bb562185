"""Inclusion policy deciding which source events are mirrored."""

from typing import Any

from .config import MirrorSettings
from .models import EventTime, SourceEvent

MISSING = object()


class EventFilter:
    """Pure predicate over source events.

    Rules are evaluated in a fixed order and the first one that fires
    excludes the event. Every rule only excludes, so the order only matters
    for which reason gets reported.
    """

    def __init__(self, settings: MirrorSettings):
        self.settings = settings
        self.forbidden_summary = tuple(
            text
            for text in (settings.unique_marker, *settings.skip_summary_contains)
            if text
        )
        self._rules = (
            ("status", self._skipped_status),
            ("transparency", self._skipped_transparency),
            ("visibility", self._skipped_visibility),
            ("outside_window", self._outside_window),
            ("declined", self._declined),
            ("summary", self._forbidden_summary),
            ("advanced_filter", self._advanced_filter),
        )

    def should_copy(self, event: SourceEvent) -> bool:
        return self.exclusion_reason(event) is None

    def exclusion_reason(self, event: SourceEvent) -> str | None:
        """Return the name of the first rule excluding ``event``, if any."""
        for name, rule in self._rules:
            if rule(event):
                return name
        return None

    def _skipped_status(self, event: SourceEvent) -> bool:
        return event.status in self.settings.skip_statuses

    def _skipped_transparency(self, event: SourceEvent) -> bool:
        return event.transparency in self.settings.skip_transparency

    def _skipped_visibility(self, event: SourceEvent) -> bool:
        return event.visibility in self.settings.skip_visibility

    def _outside_window(self, event: SourceEvent) -> bool:
        return not (self.in_window(event.start) or self.in_window(event.end))

    def in_window(self, boundary: EventTime) -> bool:
        """True when ``boundary`` lies strictly inside the sync window."""
        instant = boundary.instant(self.settings.timezone)
        if instant is None:
            return False
        return self.settings.window_start < instant < self.settings.window_end

    def _declined(self, event: SourceEvent) -> bool:
        if not self.settings.skip_declined:
            return False
        owner = {
            address.lower()
            for address in (
                self.settings.source_calendar_id,
                self.settings.source_account_email,
            )
            if address
        }
        return any(
            (attendee.is_self or attendee.email.lower() in owner)
            and attendee.response_status == "declined"
            for attendee in event.attendees
        )

    def _forbidden_summary(self, event: SourceEvent) -> bool:
        return any(text in event.summary for text in self.forbidden_summary)

    def _advanced_filter(self, event: SourceEvent) -> bool:
        for path, forbidden in self.settings.advanced_filters:
            value = resolve_path(event.raw, path)
            if value is MISSING or value is None:
                continue
            text = str(value)
            if any(needle in text for needle in forbidden):
                return True
        return False


def resolve_path(data: Any, path: str) -> Any:
    """Follow a dotted path such as ``organizer.email`` or ``attendees.0.email``."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current
