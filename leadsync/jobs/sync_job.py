"""
Background loops driving the pipeline: interval sync, queue replay, and
digest/scheduled-notification release.
"""

import asyncio

from leadsync.container import ServiceContainer
from leadsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

QUEUE_FLUSH_INTERVAL_SECONDS = 60
NOTIFICATION_TICK_SECONDS = 60
ERROR_BACKOFF_SECONDS = 60


class SyncJob:
    """One tick of each loop; the schedulers below call these forever."""

    def __init__(self, container: ServiceContainer):
        self.container = container

    async def run_sync_tick(self) -> dict:
        lifecycle = self.container.lifecycle
        if not lifecycle.should_poll():
            return {"skipped": True, "reason": "background_or_offline"}
        if self.container.sync.is_syncing:
            return {"skipped": True, "reason": "already_running"}
        outcome = await self.container.sync.sync(force_visible_loading=False)
        return {
            "status": outcome.status,
            "record_count": outcome.record_count,
            "error": outcome.error.kind if outcome.error else None,
        }

    async def run_queue_tick(self) -> dict:
        if await self.container.queue.pending_count() == 0:
            return {"skipped": True, "reason": "empty"}
        result = await self.container.lifecycle.flush_queue()
        if result is None:
            return {"skipped": True, "reason": "offline_or_signed_out"}
        return result.to_dict()

    async def run_notification_tick(self) -> dict:
        user = self.container.session_manager.current_user()
        if user is None:
            return {"skipped": True, "reason": "signed_out"}
        dispatcher = self.container.dispatcher
        digested = await dispatcher.flush_digest(user.identity)
        released = await dispatcher.release_due(user.identity)
        return {"digest_delivered": digested, "released": len(released.delivered)}


async def _run_forever(name: str, tick, interval_seconds: float) -> None:
    logger.info("Starting scheduler", job=name, interval_seconds=interval_seconds)
    while True:
        try:
            result = await tick()
            if not result.get("skipped", False):
                logger.info("Scheduler cycle completed", job=name, **result)
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.info("Scheduler stopped", job=name)
            raise
        except Exception as e:
            logger.error("Error in scheduler", job=name, error=str(e), error_type=type(e).__name__)
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)


async def start_sync_scheduler(container: ServiceContainer) -> None:
    """Sync every SYNC_INTERVAL_MINUTES while the app is foregrounded."""
    job = SyncJob(container)
    await _run_forever("sync", job.run_sync_tick, container.config.SYNC_INTERVAL_MINUTES * 60)


async def start_queue_flush_scheduler(container: ServiceContainer) -> None:
    job = SyncJob(container)
    await _run_forever("queue_flush", job.run_queue_tick, QUEUE_FLUSH_INTERVAL_SECONDS)


async def start_notification_scheduler(container: ServiceContainer) -> None:
    job = SyncJob(container)
    await _run_forever("digest_flush", job.run_notification_tick, NOTIFICATION_TICK_SECONDS)
