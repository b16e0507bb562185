"""Discovery and removal of events Calmirror created in target calendars."""

import logging
from typing import Any

from .client import EventServiceClient
from .config import Config, MirrorRule, MirrorSettings
from .diff import RULE_ID_PROPERTY, is_mirror_of

logger = logging.getLogger(__name__)


def mirrored_events_query(settings: MirrorSettings) -> dict[str, Any]:
    return {
        "timeMin": settings.window_start.isoformat(),
        "timeMax": settings.window_end.isoformat(),
        "singleEvents": True,
        "q": settings.unique_marker,
        "privateExtendedProperty": f"{RULE_ID_PROPERTY}={settings.rule_id}",
    }


def find_mirrored_events(
    client: EventServiceClient, settings: MirrorSettings
) -> list[dict[str, Any]]:
    """List target events inside the sync window mirrored by this rule.

    The ``q`` and property searches narrow the listing but are not trusted:
    every returned event is checked for the marker and the rule id again
    before it is considered mirrored.
    """
    mirrored = []
    skipped = 0

    for page in client.list_events(
        settings.target_calendar_id, mirrored_events_query(settings)
    ):
        for event in page.items:
            if event.get("status") == "cancelled":
                continue
            if is_mirror_of(event, settings):
                mirrored.append(event)
            else:
                skipped += 1
                logger.debug(
                    f"🛡️  Ignoring '{event.get('summary', 'No Summary')}', not a mirror of rule {settings.rule_id}"
                )

    if skipped:
        logger.info(f"🛡️  Ignored {skipped} event(s) not mirrored by rule {settings.rule_id}")
    logger.info(
        f"🔍 Found {len(mirrored)} mirrored event(s) in {settings.target_calendar_id}"
    )
    return mirrored


def select_purge_rules(args, config: Config) -> list[MirrorRule] | None:
    """Resolve the rules named on the command line, or all with ``--all``."""
    if args.all:
        return list(config.mirror_rules)

    if not args.rules:
        print("❌ SAFETY ERROR: No purge target specified!")
        print("💡 You must either:")
        print("   • Use --all to purge mirrored events of ALL mirror rules")
        print("   • Specify mirror rule IDs: calmirror purge rule_1 rule_2")
        return None

    rules = []
    for rule_id in args.rules:
        rule = config.get_mirror_rule(rule_id)
        if not rule:
            print(f"❌ Mirror rule '{rule_id}' not found")
            return None
        rules.append(rule)
    return rules


def preview_purge(client: EventServiceClient, settings: MirrorSettings) -> int:
    """Print the events a purge of ``settings`` would delete and return their count."""
    events = find_mirrored_events(client, settings)
    for event in events:
        summary = event.get("summary", "No Summary").replace(settings.unique_marker, "")
        print(f"         🔍 Would delete: {summary}")
    return len(events)
