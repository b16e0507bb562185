"""Reconciliation of source events against the id mapping."""

import uuid
from typing import Any

from .config import MirrorSettings
from .models import Create, Delete, MutationRequest, SourceEvent, TargetEvent, Update

SOURCE_ID_PROPERTY = "calmirror_source_id"
RULE_ID_PROPERTY = "calmirror_rule"


def decide(
    event: SourceEvent,
    existing_target_id: str | None,
    should_copy: bool,
    settings: MirrorSettings,
) -> MutationRequest | None:
    """Return the mutation needed to bring the mirror of ``event`` up to date.

    =========== ============== ======================================
    should_copy mapping exists action
    =========== ============== ======================================
    False       False          None, the event was never mirrored
    False       True           Delete the stale mirror
    True        False          Create with a freshly generated id
    True        True           Update, reusing the mapped id
    =========== ============== ======================================
    """
    if not should_copy:
        if existing_target_id is None:
            return None
        return Delete(target_id=existing_target_id, source_id=event.source_id)

    if existing_target_id is None:
        return Create(build_target_event(event, settings), event.source_id)

    return Update(
        build_target_event(event, settings, target_id=existing_target_id),
        event.source_id,
    )


def new_target_id() -> str:
    # Google accepts client ids in base32hex (a-v, 0-9); hex digits are a subset.
    return uuid.uuid4().hex


def build_summary(event: SourceEvent, settings: MirrorSettings) -> str:
    title = event.summary or settings.default_title
    if settings.title_prefix:
        return f"{settings.unique_marker}{settings.title_prefix} {title}"
    return f"{settings.unique_marker}{title}"


def build_target_event(
    event: SourceEvent, settings: MirrorSettings, target_id: str | None = None
) -> TargetEvent:
    """Synthesize the target-calendar representation of ``event``."""
    target_id = target_id or new_target_id()

    body: dict[str, Any] = {
        "id": target_id,
        "summary": build_summary(event, settings),
        "location": event.location,
        "description": event.description,
        "start": dict(event.start.raw),
        "end": dict(event.end.raw),
        "status": event.status,
        "guestsCanModify": False,
        "guestsCanSeeOtherGuests": False,
        "guestsCanInviteOthers": False,
        "anyoneCanAddSelf": False,
        "locked": True,
        "reminders": {"useDefault": False},
        "visibility": settings.visibility,
        "extendedProperties": {
            "private": {
                SOURCE_ID_PROPERTY: event.source_id,
                RULE_ID_PROPERTY: settings.rule_id,
            }
        },
    }

    if settings.event_color:
        body["colorId"] = settings.event_color

    return TargetEvent(target_id=target_id, body=body)


def has_marker(event: dict[str, Any], marker: str) -> bool:
    """Check that a listed target event carries the mirror marker."""
    return bool(marker) and marker in (event.get("summary") or "")


def is_mirror_of(event: dict[str, Any], settings: MirrorSettings) -> bool:
    """Authoritative check that a listed target event belongs to this rule.

    Listing queries that search for the marker or the rule property are not
    trusted; every deletion of a listed event must pass this check first.
    Rules sharing a target calendar share the marker, so the rule id stored
    in the private extended properties decides ownership.
    """
    private = (event.get("extendedProperties") or {}).get("private") or {}
    return (
        has_marker(event, settings.unique_marker)
        and private.get(RULE_ID_PROPERTY) == settings.rule_id
    )
