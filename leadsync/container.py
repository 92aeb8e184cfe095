"""
Explicit wiring of the sync pipeline.

Every service is built once here and handed its collaborators; nothing
reaches for a module-level singleton at call time.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import RedisStore
from leadsync.pipeline.activity import resolve_timezone
from leadsync.pipeline.scoring import UrgencyScorer
from leadsync.services.connectivity import ConnectivityState
from leadsync.services.lead_cache import LeadCache
from leadsync.services.lead_write_service import LeadWriteService
from leadsync.services.lifecycle_service import LifecycleService
from leadsync.services.mutation_queue import MutationQueue
from leadsync.services.notifications.broadcast_service import BroadcastService
from leadsync.services.notifications.delivery_log import DeliveryLog, NotificationBucket
from leadsync.services.notifications.dispatcher import NotificationDispatcher
from leadsync.services.notifications.settings_service import NotificationSettingsService
from leadsync.services.notifications.sinks import (
    CompositeSink,
    LoggingSink,
    PresentationSink,
    PushRelaySink,
)
from leadsync.services.session_service import SessionManager
from leadsync.services.sheets.google_sheets_client import GoogleSheetsStore
from leadsync.services.sync_service import SyncOrchestrator

logger = get_logger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    config: Settings
    store: object
    adapter: object
    sink: PresentationSink
    connectivity: ConnectivityState
    session_manager: SessionManager
    queue: MutationQueue
    cache: LeadCache
    settings_service: NotificationSettingsService
    delivery_log: DeliveryLog
    dispatcher: NotificationDispatcher
    scorer: UrgencyScorer
    sync: SyncOrchestrator
    lifecycle: LifecycleService
    writes: LeadWriteService
    broadcasts: BroadcastService


def build_sink(config: Settings) -> PresentationSink:
    sinks: list[PresentationSink] = [LoggingSink()]
    if config.PUSH_RELAY_URL:
        sinks.append(PushRelaySink(config.PUSH_RELAY_URL))
    return CompositeSink(sinks)


def build_container(
    config: Settings = settings,
    store=None,
    adapter=None,
    sink: PresentationSink | None = None,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    encryption_key: str | None = None,
) -> ServiceContainer:
    """Build the service graph; store, adapter and sink may be swapped for fakes."""
    store = store if store is not None else RedisStore(config)
    adapter = adapter if adapter is not None else GoogleSheetsStore(config)
    sink = sink if sink is not None else build_sink(config)

    connectivity = ConnectivityState()
    session_manager = SessionManager(
        store, adapter, config=config, clock=clock, encryption_key=encryption_key
    )
    queue = MutationQueue(store, clock=clock)
    cache = LeadCache(store)
    settings_service = NotificationSettingsService(store, clock=clock)
    delivery_log = DeliveryLog(store, limit=config.DELIVERY_LOG_LIMIT)
    dispatcher = NotificationDispatcher(
        settings_service,
        delivery_log,
        NotificationBucket(store, "digest", one_per_key=True),
        NotificationBucket(store, "scheduled"),
        sink,
        config=config,
        clock=clock,
    )
    scorer = UrgencyScorer(resolve_timezone(config.TIMEZONE))
    sync = SyncOrchestrator(
        session_manager, adapter, cache, dispatcher, scorer, config=config, clock=clock
    )
    lifecycle = LifecycleService(connectivity, sync, queue, adapter, session_manager)
    writes = LeadWriteService(adapter, queue, session_manager, connectivity)
    broadcasts = BroadcastService(adapter, dispatcher, clock=clock)

    return ServiceContainer(
        config=config,
        store=store,
        adapter=adapter,
        sink=sink,
        connectivity=connectivity,
        session_manager=session_manager,
        queue=queue,
        cache=cache,
        settings_service=settings_service,
        delivery_log=delivery_log,
        dispatcher=dispatcher,
        scorer=scorer,
        sync=sync,
        lifecycle=lifecycle,
        writes=writes,
        broadcasts=broadcasts,
    )


async def start_container(container: ServiceContainer) -> None:
    """Connect the store and hydrate the session."""
    initialize = getattr(container.store, "initialize", None)
    if initialize is not None:
        await initialize()
    await container.session_manager.initialize()
    logger.info(
        "Service container started",
        authenticated=container.session_manager.is_authenticated(),
        sheets_configured=container.config.sheets_configured(),
    )


async def stop_container(container: ServiceContainer) -> None:
    """Tear down in reverse order of start."""
    container.sync.reset()
    await container.session_manager.close()
    await container.sink.close()
    close_adapter = getattr(container.adapter, "close", None)
    if close_adapter is not None:
        await close_adapter()
    close_store = getattr(container.store, "close", None)
    if close_store is not None:
        await close_store()
    logger.info("Service container stopped")
