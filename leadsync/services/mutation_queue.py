"""
Durable FIFO of writes waiting to reach the record store.

Items live in one Redis list, oldest first. `enqueue` returns only after the
list push succeeded, so a returned mutation survives a restart. Replay is
strictly sequential; an item is removed only after its write was confirmed.
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.models.domain.lead_domain import LeadIdentity
from leadsync.models.domain.mutation_domain import QueuedMutation
from leadsync.services.sheets.errors import (
    RemoteAuthError,
    RemoteConfigurationError,
    RemoteStoreError,
)
from leadsync.services.sheets.row_mapping import find_by_identity

logger = get_logger(__name__)

QUEUE_STORAGE_KEY = "mutation_queue"

QueueListener = Callable[[dict], None]


class MutationQueueError(Exception):
    """Custom exception for mutation queue operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@dataclass(slots=True)
class FlushResult:
    attempted: int = 0
    succeeded: int = 0
    retry_later: int = 0
    failed_permanently: int = 0
    remaining: int = 0
    skipped: bool = False
    aborted_reason: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class MutationQueue:
    """Single owner of the persisted mutation list."""

    def __init__(self, store, clock: Callable[[], datetime] = lambda: datetime.now(UTC)):
        self.store = store
        self.clock = clock
        self.is_flushing = False
        self.last_flush_at: datetime | None = None
        self._listeners: list[QueueListener] = []

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def enqueue(self, mutation: QueuedMutation) -> QueuedMutation:
        """
        Append a mutation to the tail of the queue.

        Raises:
            MutationQueueError: The write did not reach durable storage
        """
        try:
            length = await self.store.push_to_list(QUEUE_STORAGE_KEY, mutation.to_storage())
        except StoreError as e:
            logger.error("Failed to enqueue mutation", mutation_id=mutation.id, error=str(e))
            raise MutationQueueError(
                f"Mutation could not be queued: {e}", operation="enqueue", recoverable=False
            ) from e

        logger.info(
            "Mutation queued",
            mutation_id=mutation.id,
            operation=mutation.operation,
            queue_length=length,
        )
        await self._notify()
        return mutation

    async def _entries(self) -> list[tuple[str, QueuedMutation]]:
        """(raw, parsed) pairs in FIFO order; undecodable entries are kept in storage."""
        entries = []
        for raw in await self.store.list_range(QUEUE_STORAGE_KEY):
            try:
                entries.append((raw, QueuedMutation.from_storage(raw)))
            except ValueError as e:
                logger.error("Skipping undecodable queued mutation", error=str(e), raw=raw[:60])
        return entries

    async def all(self) -> list[QueuedMutation]:
        """Queued mutations, oldest first."""
        return [mutation for _, mutation in await self._entries()]

    async def remove(self, mutation_id: str) -> bool:
        for raw, mutation in await self._entries():
            if mutation.id == mutation_id:
                removed = await self.store.remove_from_list(QUEUE_STORAGE_KEY, raw)
                if removed:
                    logger.info("Mutation removed", mutation_id=mutation_id)
                    await self._notify()
                return removed
        return False

    async def pending_count(self) -> int:
        return sum(1 for m in await self.all() if m.status == "pending")

    async def stats(self) -> dict:
        mutations = await self.all()
        return {
            "total": len(mutations),
            "pending": sum(1 for m in mutations if m.status == "pending"),
            "failed": sum(1 for m in mutations if m.status == "failed"),
            "oldest_enqueued_at": mutations[0].enqueued_at.isoformat() if mutations else None,
            "last_flush_at": self.last_flush_at.isoformat() if self.last_flush_at else None,
            "is_flushing": self.is_flushing,
        }

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self) -> None:
        if not self._listeners:
            return
        try:
            snapshot = await self.stats()
        except StoreError as e:
            logger.warning("Queue stats unavailable for listeners", error=str(e))
            return
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Queue listener failed", error=str(e))

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def _record_attempt(
        self, raw: str, mutation: QueuedMutation, error: Exception, permanent: bool
    ) -> None:
        updated = mutation.model_copy(
            update={
                "attempts": mutation.attempts + 1,
                "last_attempt_at": self.clock(),
                "last_error": str(error),
                "status": "failed" if permanent else mutation.status,
            }
        )
        try:
            await self.store.replace_in_list(QUEUE_STORAGE_KEY, raw, updated.to_storage())
        except StoreError as e:
            logger.error("Failed to record mutation attempt", mutation_id=mutation.id, error=str(e))

    async def _already_applied(self, adapter, mutation: QueuedMutation) -> bool:
        """An append retried after an unconfirmed attempt may already be in the sheet."""
        identity = mutation.lead_identity
        if identity is None:
            identity = LeadIdentity.from_dict(mutation.fields)
        if identity.is_empty():
            return False
        leads = await adapter.fetch_all(force_refresh=True)
        return find_by_identity(leads, identity) is not None

    async def _replay(self, adapter, mutation: QueuedMutation) -> None:
        if mutation.operation == "update":
            identity = mutation.lead_identity
            if identity is None:
                raise MutationQueueError("Update mutation without identity", operation="replay")
            await adapter.update_by_identity(identity, mutation.fields)
            return

        if mutation.attempts > 0 and await self._already_applied(adapter, mutation):
            logger.info("Append already present remotely", mutation_id=mutation.id)
            return
        await adapter.append(mutation.fields)

    async def flush(self, adapter, include_failed: bool = False) -> FlushResult:
        """
        Replay queued mutations in order.

        A failing item stays queued and replay moves on to the next one.
        Not-found and validation failures mark the item `failed`; failed
        items are only retried with include_failed. Auth and configuration
        failures stop the pass, since every remaining item would hit them.
        Concurrent calls are skipped.
        """
        if self.is_flushing:
            logger.info("Mutation flush already running, skipping")
            return FlushResult(skipped=True)

        self.is_flushing = True
        result = FlushResult()
        try:
            entries = await self._entries()
            for raw, mutation in entries:
                if mutation.status == "failed" and not include_failed:
                    continue

                result.attempted += 1
                try:
                    await self._replay(adapter, mutation)
                except (RemoteAuthError, RemoteConfigurationError) as e:
                    await self._record_attempt(raw, mutation, e, permanent=False)
                    result.retry_later += 1
                    result.aborted_reason = e.kind.value
                    logger.warning(
                        "Mutation flush stopped",
                        mutation_id=mutation.id,
                        reason=e.kind.value,
                        error=str(e),
                    )
                    break
                except RemoteStoreError as e:
                    permanent = not e.is_transient
                    await self._record_attempt(raw, mutation, e, permanent=permanent)
                    if permanent:
                        result.failed_permanently += 1
                    else:
                        result.retry_later += 1
                    logger.warning(
                        "Mutation replay failed",
                        mutation_id=mutation.id,
                        operation=mutation.operation,
                        kind=e.kind.value,
                        permanent=permanent,
                        error=str(e),
                    )
                    continue
                except MutationQueueError as e:
                    await self._record_attempt(raw, mutation, e, permanent=True)
                    result.failed_permanently += 1
                    continue

                try:
                    await self.store.remove_from_list(QUEUE_STORAGE_KEY, raw)
                except StoreError as e:
                    # Left in place; replaying a confirmed write again is harmless
                    logger.error(
                        "Confirmed mutation could not be removed",
                        mutation_id=mutation.id,
                        error=str(e),
                    )
                result.succeeded += 1
                logger.info(
                    "Mutation replayed",
                    mutation_id=mutation.id,
                    operation=mutation.operation,
                    attempts=mutation.attempts + 1,
                )

            result.remaining = len(await self._entries())
            self.last_flush_at = self.clock()
            logger.info("Mutation flush completed", **result.to_dict())
            return result
        finally:
            self.is_flushing = False
            await self._notify()
