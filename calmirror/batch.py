"""Batched submission of mutation requests."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .client import EventServiceClient
from .errors import PartialBatchFailure
from .models import BatchResult, Create, Delete, MutationRequest, Update
from .store import MappingStore

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    submitted: int = 0
    applied: int = 0
    results: list[BatchResult] = field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return self.applied != self.submitted

    def raise_for_partial_failure(self):
        if self.partial_failure:
            raise PartialBatchFailure(self.submitted, self.applied)


class BatchExecutor:
    """Flushes all queued mutations of a pass in one batched call.

    Mapping entries are committed only for results the service confirmed:
    successful creates add a mapping, successful deletes remove it.
    """

    def __init__(
        self, client: EventServiceClient, calendar_id: str, mappings: MappingStore
    ):
        self.client = client
        self.calendar_id = calendar_id
        self.mappings = mappings

    def execute(self, requests: Sequence[MutationRequest]) -> BatchOutcome:
        requests = list(requests)
        if not requests:
            return BatchOutcome()

        logger.info(f"📤 Submitting {len(requests)} mutation(s) to {self.calendar_id}")
        results = self.client.execute_batch(self.calendar_id, requests)
        outcome = BatchOutcome(
            submitted=len(requests), applied=len(results), results=results
        )

        if outcome.partial_failure:
            logger.warning(
                f"⚠️  Partial batch failure: {outcome.applied} of {outcome.submitted} mutation(s) applied"
            )

        for result in results:
            self._commit(result.request)

        return outcome

    def _commit(self, request: MutationRequest):
        match request:
            case Create(source_id=source_id):
                self.mappings.set_mapping(source_id, request.target_id)
            case Delete(source_id=source_id) if source_id is not None:
                self.mappings.delete_mapping(source_id)
            case Delete() | Update():
                pass
