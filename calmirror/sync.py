"""Calendar mirroring logic for Calmirror."""

import logging
from dataclasses import dataclass
from typing import Any

from filelock import FileLock, Timeout

from .batch import BatchExecutor, BatchOutcome
from .client import EventServiceClient
from .config import MirrorSettings
from .diff import decide
from .errors import LockTimeout, TokenInvalidated, TransientServiceError
from .filters import EventFilter
from .models import Create, Delete, MutationRequest, SourceEvent, SyncMode, Update
from .purge import find_mirrored_events
from .store import MappingStore, SyncStateStore


@dataclass
class SyncReport:
    """What one synchronization pass did."""

    rule_id: str
    mode: SyncMode
    created: int = 0
    updated: int = 0
    deleted: int = 0
    excluded: int = 0
    submitted: int = 0
    applied: int = 0
    partial_failure: bool = False
    new_sync_token: bool = False
    fell_back_to_full: bool = False

    def summary(self) -> str:
        text = (
            f"{self.mode.value} sync: {self.created} created, {self.updated} updated, "
            f"{self.deleted} deleted, {self.excluded} excluded "
            f"({self.applied}/{self.submitted} applied)"
        )
        if self.partial_failure:
            text += " - partial failure, next run will be a full sync"
        return text


class MirrorSynchronizer:
    """Runs one synchronization pass of a source calendar into its mirror.

    Mode selection:

    * ``delete_only`` removes every mirrored event and creates nothing.
    * ``force_full_sync`` discards stored state before selecting a mode.
    * No stored sync token, or an error count at the threshold, selects a
      full sync: delete all mirrored events, then recreate qualifying ones.
    * Otherwise an incremental sync processes changes since the token and
      falls back to a full sync if the service rejects the token.
    """

    def __init__(
        self,
        settings: MirrorSettings,
        source_client: EventServiceClient,
        target_client: EventServiceClient,
        mappings: MappingStore,
        state: SyncStateStore,
    ):
        self.settings = settings
        self.source_client = source_client
        self.target_client = target_client
        self.mappings = mappings
        self.state = state
        self.event_filter = EventFilter(settings)
        self.executor = BatchExecutor(
            target_client, settings.target_calendar_id, mappings
        )
        self.logger = logging.getLogger(__name__)

    def run(self) -> SyncReport:
        """Execute exactly one pass while holding the per-pair lock."""
        lock_path = self.settings.lock_path
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(lock_path), timeout=self.settings.lock_timeout)

        try:
            with lock.acquire():
                return self._run_pass()
        except Timeout as e:
            self.logger.warning(
                f"🔒 Another pass holds the lock for rule {self.settings.rule_id}"
            )
            raise LockTimeout(str(lock_path), self.settings.lock_timeout) from e

    def _run_pass(self) -> SyncReport:
        settings = self.settings

        if settings.delete_only:
            self.logger.info(f"🧹 Delete-only pass for rule {settings.rule_id}")
            return self._counted(self._full_sync, SyncMode.DELETE_ONLY)

        if settings.force_full_sync:
            self.logger.info(
                f"🧹 Forced full sync for rule {settings.rule_id}: clearing stored state"
            )
            self.mappings.clear_all()
            self.state.clear_all()

        state = self.state.get_sync_state()

        if not state.has_token:
            self.logger.info(f"🔄 No sync token for rule {settings.rule_id}, running full sync")
            return self._counted(self._full_sync, SyncMode.FULL)

        if state.error_count >= settings.error_threshold:
            self.logger.warning(
                f"⚠️  {state.error_count} consecutive error(s) for rule {settings.rule_id}, "
                f"discarding sync token and running full sync"
            )
            self.state.clear_sync_token()
            self.state.reset_error_count()
            return self._counted(self._full_sync, SyncMode.FULL)

        try:
            return self._counted(self._incremental_sync, state.sync_token)
        except TokenInvalidated:
            self.logger.warning(
                f"⚠️  Sync token for rule {settings.rule_id} was invalidated, falling back to full sync"
            )
            report = self._counted(self._full_sync, SyncMode.FULL)
            report.fell_back_to_full = True
            return report

    def _counted(self, pass_func, *args) -> SyncReport:
        """Run a pass, recording transient failures in the error counter."""
        try:
            return pass_func(*args)
        except TransientServiceError as e:
            count = self.state.increment_error_count()
            self.logger.error(
                f"❌ Sync pass for rule {self.settings.rule_id} failed "
                f"({count}/{self.settings.error_threshold} consecutive errors): {e}"
            )
            raise

    def _full_sync(self, mode: SyncMode) -> SyncReport:
        report = SyncReport(rule_id=self.settings.rule_id, mode=mode)

        # Persist the reset first so an interrupted pass falls back to full sync.
        self.state.clear_sync_token()
        self.mappings.clear_all()

        requests: list[MutationRequest] = [
            Delete(target_id=event["id"])
            for event in find_mirrored_events(self.target_client, self.settings)
        ]

        next_sync_token = None
        if mode is not SyncMode.DELETE_ONLY:
            copy_requests, next_sync_token = self._collect(self._window_query(), report)
            requests.extend(copy_requests)

        return self._flush(report, requests, next_sync_token)

    def _incremental_sync(self, sync_token: str) -> SyncReport:
        report = SyncReport(rule_id=self.settings.rule_id, mode=SyncMode.INCREMENTAL)
        requests, next_sync_token = self._collect(
            self._incremental_query(sync_token), report
        )
        return self._flush(report, requests, next_sync_token)

    def _window_query(self) -> dict[str, Any]:
        return {
            "timeMin": self.settings.window_start.isoformat(),
            "timeMax": self.settings.window_end.isoformat(),
            "singleEvents": True,
            "eventTypes": list(self.settings.event_types) or None,
            "maxAttendees": 1,
        }

    def _incremental_query(self, sync_token: str) -> dict[str, Any]:
        # The API refuses timeMin/timeMax/q alongside a sync token; the
        # window is enforced by the filter instead.
        return {
            "syncToken": sync_token,
            "singleEvents": True,
            "eventTypes": list(self.settings.event_types) or None,
            "maxAttendees": 1,
        }

    def _collect(
        self, query: dict[str, Any], report: SyncReport
    ) -> tuple[list[MutationRequest], str | None]:
        """List source events page by page and diff each against the mapping.

        Returns the queued requests and the sync token of the last page.
        """
        queued: dict[str, MutationRequest] = {}
        next_sync_token = None

        for page in self.source_client.list_events(
            self.settings.source_calendar_id, query
        ):
            for item in page.items:
                event = SourceEvent.from_google_event(item)
                reason = self.event_filter.exclusion_reason(event)
                if reason:
                    report.excluded += 1
                    self.logger.debug(
                        f"⏭️  Excluding '{event.summary}' ({event.source_id}): {reason}"
                    )

                request = decide(
                    event,
                    self.mappings.get_target_id(event.source_id),
                    reason is None,
                    self.settings,
                )
                if request is None:
                    queued.pop(event.source_id, None)
                else:
                    queued[event.source_id] = request

            next_sync_token = page.next_sync_token or next_sync_token

        return list(queued.values()), next_sync_token

    def _flush(
        self,
        report: SyncReport,
        requests: list[MutationRequest],
        next_sync_token: str | None,
    ) -> SyncReport:
        for request in requests:
            match request:
                case Create():
                    report.created += 1
                case Update():
                    report.updated += 1
                case Delete():
                    report.deleted += 1

        try:
            outcome: BatchOutcome = self.executor.execute(requests)
        except TransientServiceError:
            # The service may have applied the batch without confirming it;
            # only a marker-verified full sync can reconcile that safely.
            self.state.clear_sync_token()
            raise
        report.submitted = outcome.submitted
        report.applied = outcome.applied
        report.partial_failure = outcome.partial_failure

        if outcome.partial_failure:
            self.state.clear_sync_token()
        elif next_sync_token:
            self.state.set_sync_token(next_sync_token)
            report.new_sync_token = True
        else:
            self.state.clear_sync_token()
        self.state.reset_error_count()

        self.logger.info(f"✅ Rule {self.settings.rule_id}: {report.summary()}")
        return report
