"""
Write path for lead edits and new leads.

Online writes go straight to the record store; transient failures and
offline writes are queued for replay. Permanent failures (not found,
validation, auth, configuration) surface to the caller.
"""

from dataclasses import dataclass
from typing import Any, Literal

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.domain.lead_domain import LeadIdentity
from leadsync.models.domain.mutation_domain import QueuedMutation
from leadsync.services.connectivity import ConnectivityState
from leadsync.services.mutation_queue import MutationQueue
from leadsync.services.session_service import SessionManager
from leadsync.services.sheets.errors import RemoteStoreError

logger = get_logger(__name__)


class LeadWriteError(Exception):
    """A write was refused before reaching the record store."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@dataclass(frozen=True, slots=True)
class WriteResult:
    status: Literal["applied", "queued"]
    mutation_id: str | None = None
    row_address: int | None = None
    reason: str | None = None


class LeadWriteService:
    def __init__(
        self,
        adapter,
        queue: MutationQueue,
        session_manager: SessionManager,
        connectivity: ConnectivityState,
    ):
        self.adapter = adapter
        self.queue = queue
        self.session_manager = session_manager
        self.connectivity = connectivity

    async def _queue(
        self, mutation: QueuedMutation, reason: str, error: RemoteStoreError | None = None
    ) -> WriteResult:
        if error is not None:
            # The failed call may still have landed; replay checks before re-appending
            mutation = mutation.model_copy(update={"attempts": 1, "last_error": str(error)})
        await self.queue.enqueue(mutation)
        logger.info(
            "Write deferred to queue",
            mutation_id=mutation.id,
            operation=mutation.operation,
            reason=reason,
        )
        return WriteResult(status="queued", mutation_id=mutation.id, reason=reason)

    async def _require_session(self, operation: str) -> None:
        if not await self.session_manager.ensure_fresh(f"write:{operation}"):
            raise LeadWriteError("Not authenticated", operation=operation, recoverable=False)

    async def update_lead(
        self,
        identity: LeadIdentity,
        fields: dict[str, Any],
        address_hint: int | None = None,
    ) -> WriteResult:
        """
        Apply field deltas to one lead.

        Raises:
            LeadWriteError: Empty identity or no session
            RemoteStoreError: Permanent record store failure
            MutationQueueError: The deferred write could not be stored
        """
        if identity.is_empty():
            raise LeadWriteError("Lead identity is required", operation="identity", recoverable=False)

        mutation = QueuedMutation.for_update(identity, fields, self.adapter.config_snapshot())
        if not self.connectivity.online:
            return await self._queue(mutation, "offline")

        await self._require_session("update")
        try:
            row_address = await self.adapter.update_by_identity(identity, fields, address_hint)
        except RemoteStoreError as e:
            if e.is_transient:
                return await self._queue(mutation, e.kind.value, e)
            raise
        return WriteResult(status="applied", row_address=row_address)

    async def create_lead(self, fields: dict[str, Any]) -> WriteResult:
        """Append a new lead; queued when offline or on a transient failure."""
        mutation = QueuedMutation.for_append(fields, self.adapter.config_snapshot())
        if not self.connectivity.online:
            return await self._queue(mutation, "offline")

        await self._require_session("append")
        try:
            await self.adapter.append(fields)
        except RemoteStoreError as e:
            if e.is_transient:
                return await self._queue(mutation, e.kind.value, e)
            raise
        return WriteResult(status="applied")
