"""Data model shared by the Calmirror sync engine."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True)
class EventTime:
    """A start or end boundary, either an all-day date or a date-time."""

    value: date | datetime | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_google(cls, data: dict[str, Any] | None) -> "EventTime":
        """Parse a Google Calendar ``start``/``end`` object."""
        data = data or {}
        if "dateTime" in data:
            value: date | datetime | None = datetime.fromisoformat(
                data["dateTime"].replace("Z", "+00:00")
            )
        elif "date" in data:
            value = date.fromisoformat(data["date"])
        else:
            value = None
        return cls(value=value, raw=dict(data))

    @property
    def is_all_day(self) -> bool:
        return isinstance(self.value, date) and not isinstance(self.value, datetime)

    def instant(self, tz: tzinfo) -> datetime | None:
        """Return an aware datetime; all-day dates resolve to midnight in ``tz``."""
        if self.value is None:
            return None
        if isinstance(self.value, datetime):
            if self.value.tzinfo is not None:
                return self.value
            return self.value.replace(tzinfo=self._floating_zone(tz))
        return datetime.combine(self.value, time.min, tzinfo=tz)

    def _floating_zone(self, default: tzinfo) -> tzinfo:
        zone_name = self.raw.get("timeZone")
        if not zone_name:
            return default
        try:
            return ZoneInfo(zone_name)
        except ZoneInfoNotFoundError:
            return default


@dataclass(frozen=True)
class Attendee:
    email: str
    response_status: str = "needsAction"
    is_self: bool = False  # the attendee entry of the calendar owner


@dataclass(frozen=True)
class SourceEvent:
    """Immutable snapshot of one source-calendar event for a single pass."""

    source_id: str
    start: EventTime
    end: EventTime
    summary: str = ""
    description: str = ""
    location: str = ""
    status: str = "confirmed"
    transparency: str = "opaque"
    visibility: str = "default"
    event_type: str = "default"
    attendees: tuple[Attendee, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_google_event(cls, event: dict[str, Any]) -> "SourceEvent":
        """Create a SourceEvent from a Google Calendar API event resource.

        Deleted events in an incremental listing only carry ``id`` and
        ``status``; every other field falls back to its API default.
        """
        attendees = tuple(
            Attendee(
                email=attendee.get("email", ""),
                response_status=attendee.get("responseStatus", "needsAction"),
                is_self=bool(attendee.get("self", False)),
            )
            for attendee in event.get("attendees", [])
        )
        return cls(
            source_id=event["id"],
            start=EventTime.from_google(event.get("start")),
            end=EventTime.from_google(event.get("end")),
            summary=event.get("summary", ""),
            description=event.get("description", ""),
            location=event.get("location", ""),
            status=event.get("status", "confirmed"),
            transparency=event.get("transparency", "opaque"),
            visibility=event.get("visibility", "default"),
            event_type=event.get("eventType", "default"),
            attendees=attendees,
            raw=event,
        )


@dataclass(frozen=True)
class TargetEvent:
    """The event body written to the target calendar."""

    target_id: str
    body: dict[str, Any] = field(compare=False)

    @property
    def summary(self) -> str:
        return self.body.get("summary", "")


@dataclass(frozen=True)
class Create:
    target_event: TargetEvent
    source_id: str

    @property
    def target_id(self) -> str:
        return self.target_event.target_id


@dataclass(frozen=True)
class Update:
    target_event: TargetEvent
    source_id: str

    @property
    def target_id(self) -> str:
        return self.target_event.target_id


@dataclass(frozen=True)
class Delete:
    target_id: str
    source_id: str | None = None  # None for events found by marker listing


MutationRequest = Create | Update | Delete


@dataclass(frozen=True)
class BatchResult:
    """One mutation the service confirmed as applied."""

    request: MutationRequest
    response: dict[str, Any] | None = None


@dataclass(frozen=True)
class EventPage:
    """One page of a paginated event listing."""

    items: list[dict[str, Any]]
    next_page_token: str | None = None
    next_sync_token: str | None = None


@dataclass(frozen=True)
class SyncState:
    """Persisted per-pair cursor and consecutive-error counter."""

    sync_token: str | None = None
    error_count: int = 0

    @property
    def has_token(self) -> bool:
        return bool(self.sync_token)


class SyncMode(Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    DELETE_ONLY = "delete-only"
