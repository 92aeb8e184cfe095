"""
App lifecycle triggers for the sync pipeline.

Foreground regain runs a sync; an offline -> online transition flushes the
mutation queue and then syncs. Backgrounding only records the state so the
interval job stops polling.
"""

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.services.connectivity import ConnectivityState
from leadsync.services.mutation_queue import FlushResult, MutationQueue
from leadsync.services.session_service import SessionManager
from leadsync.services.sync_service import SyncOrchestrator, SyncOutcome

logger = get_logger(__name__)


class LifecycleService:
    def __init__(
        self,
        connectivity: ConnectivityState,
        sync: SyncOrchestrator,
        queue: MutationQueue,
        adapter,
        session_manager: SessionManager,
    ):
        self.connectivity = connectivity
        self.sync = sync
        self.queue = queue
        self.adapter = adapter
        self.session_manager = session_manager

    def should_poll(self) -> bool:
        """Interval syncs run only while foregrounded and online."""
        return self.connectivity.foreground and self.connectivity.online

    async def on_foreground(self) -> SyncOutcome | None:
        if not self.connectivity.set_foreground(True):
            return None
        await self.session_manager.touch()
        logger.info("App foregrounded, syncing")
        return await self.sync.sync(force_visible_loading=False)

    async def on_background(self) -> None:
        self.connectivity.set_foreground(False)

    async def on_connectivity_change(self, online: bool) -> tuple[FlushResult | None, SyncOutcome | None]:
        """On reconnect: flush queued writes first, then sync."""
        if not self.connectivity.set_online(online):
            return None, None
        logger.info("Network reconnected, replaying queue and syncing")
        flush = await self.flush_queue()
        outcome = await self.sync.sync(force_visible_loading=False)
        return flush, outcome

    async def flush_queue(self, include_failed: bool = False) -> FlushResult | None:
        if not self.connectivity.online:
            logger.info("Offline, queue flush skipped")
            return None
        if not await self.session_manager.ensure_fresh("queue_flush"):
            logger.info("Not authenticated, queue flush skipped")
            return None
        return await self.queue.flush(self.adapter, include_failed=include_failed)
