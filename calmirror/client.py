"""Google Calendar event service used by the sync engine."""

import logging
from collections.abc import Iterator, Sequence
from typing import Any, Protocol

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from .errors import TokenInvalidated, TransientServiceError
from .models import BatchResult, Create, Delete, EventPage, MutationRequest, Update

# Google rejects HTTP batches with more than 1000 parts.
MAX_BATCH_SIZE = 1000
LIST_PAGE_SIZE = 250

# Statuses meaning the event is already gone, which is what a delete wants.
ALREADY_DELETED = (404, 410)


class EventServiceClient(Protocol):
    """The capability the sync engine needs from a calendar backend."""

    def list_events(
        self, calendar_id: str, query: dict[str, Any]
    ) -> Iterator[EventPage]: ...

    def execute_batch(
        self, calendar_id: str, requests: Sequence[MutationRequest]
    ) -> list[BatchResult]: ...


def translate_http_error(error: HttpError, action: str) -> Exception:
    """Map a Google API error onto the engine's error kinds."""
    status = error.resp.status
    if status == 410:
        return TokenInvalidated(f"Sync token rejected while trying to {action}")
    return TransientServiceError(f"Failed to {action}: {error}", status=status)


class GoogleEventService:
    """EventServiceClient backed by a ``googleapiclient`` Calendar v3 resource."""

    def __init__(self, service: Any):
        self.service = service
        self.logger = logging.getLogger(__name__)

    def list_events(
        self, calendar_id: str, query: dict[str, Any]
    ) -> Iterator[EventPage]:
        """Yield pages of events, following ``nextPageToken`` until exhausted."""
        params = {key: value for key, value in query.items() if value is not None}
        params.setdefault("maxResults", LIST_PAGE_SIZE)
        page_token = None

        while True:
            if page_token:
                params["pageToken"] = page_token
            try:
                result = (
                    self.service.events()
                    .list(calendarId=calendar_id, **params)
                    .execute()
                )
            except HttpError as e:
                raise translate_http_error(e, f"list events of {calendar_id}") from e
            except (GoogleAuthError, OSError) as e:
                raise TransientServiceError(
                    f"Failed to list events of {calendar_id}: {e}"
                ) from e

            page = EventPage(
                items=result.get("items", []),
                next_page_token=result.get("nextPageToken"),
                next_sync_token=result.get("nextSyncToken"),
            )
            self.logger.debug(
                f"📄 Fetched {len(page.items)} event(s) from {calendar_id}"
            )
            yield page

            page_token = page.next_page_token
            if not page_token:
                break

    def execute_batch(
        self, calendar_id: str, requests: Sequence[MutationRequest]
    ) -> list[BatchResult]:
        """Submit ``requests`` as batched HTTP calls.

        Returns one result per mutation the service confirmed. Failed parts
        are logged and left out, so a short result list signals partial
        failure to the caller.
        """
        results: list[BatchResult] = []
        requests = list(requests)

        for offset in range(0, len(requests), MAX_BATCH_SIZE):
            chunk = requests[offset : offset + MAX_BATCH_SIZE]
            batch = self.service.new_batch_http_request()

            def callback(request_id, response, exception):
                request = requests[int(request_id)]
                if exception is None:
                    results.append(BatchResult(request=request, response=response))
                elif (
                    isinstance(request, Delete)
                    and isinstance(exception, HttpError)
                    and exception.resp.status in ALREADY_DELETED
                ):
                    self.logger.debug(f"Event {request.target_id} was already deleted")
                    results.append(BatchResult(request=request))
                else:
                    self.logger.error(
                        f"❌ {type(request).__name__} of {request.target_id} failed: {exception}"
                    )

            for index, request in enumerate(chunk, start=offset):
                batch.add(
                    self._build_request(calendar_id, request),
                    callback=callback,
                    request_id=str(index),
                )

            try:
                batch.execute()
            except (HttpError, GoogleAuthError, OSError) as e:
                if not results:
                    raise TransientServiceError(
                        f"Failed to execute batch on {calendar_id}: {e}"
                    ) from e
                # Earlier chunks were applied; report them so they get committed.
                self.logger.error(f"❌ Batch on {calendar_id} aborted: {e}")
                break

        return results

    def _build_request(self, calendar_id: str, request: MutationRequest):
        events = self.service.events()
        match request:
            case Create(target_event=target):
                return events.insert(
                    calendarId=calendar_id,
                    body=target.body,
                    sendUpdates="none",
                    conferenceDataVersion=0,
                )
            case Update(target_event=target):
                return events.update(
                    calendarId=calendar_id,
                    eventId=target.target_id,
                    body=target.body,
                    sendUpdates="none",
                    conferenceDataVersion=0,
                )
            case Delete(target_id=target_id):
                return events.delete(
                    calendarId=calendar_id, eventId=target_id, sendUpdates="none"
                )
