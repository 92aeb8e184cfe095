"""
Sync orchestrator: one refresh cycle from cache render to dispatch.

Single-flight, latest wins: a new sync cancels the one in flight, and every
side-effecting step (cache write, diff, dispatch) first checks that its run
is still the latest. Read-path failures never escape; they become a
`SyncError` on the published state while the cached records stay in place.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Literal

import structlog

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger, log_sync_outcome
from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.models.domain.lead_domain import Lead, Snapshot
from leadsync.pipeline.candidates import build_candidates, score_snapshot
from leadsync.pipeline.diff import LeadDiff, diff_snapshots
from leadsync.pipeline.scoring import UrgencyScorer
from leadsync.services.lead_cache import LeadCache
from leadsync.services.notifications.dispatcher import DispatchReport, NotificationDispatcher
from leadsync.services.session_service import SessionManager
from leadsync.services.sheets.errors import RemoteStoreError

logger = get_logger(__name__)

SyncStatus = Literal["success", "cancelled", "failed"]


class SyncServiceError(Exception):
    """Raised when a sync run is superseded before a side effect."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@dataclass(frozen=True, slots=True)
class SyncError:
    kind: str
    message: str
    recoverable: bool


@dataclass(frozen=True, slots=True)
class SyncState:
    records: tuple[Lead, ...] = ()
    loading: bool = False
    error: SyncError | None = None
    last_sync_at: datetime | None = None
    captured_at: datetime | None = None
    served_from_cache: bool = False

    def to_dict(self) -> dict:
        return {
            "record_count": len(self.records),
            "loading": self.loading,
            "error": (
                {
                    "kind": self.error.kind,
                    "message": self.error.message,
                    "recoverable": self.error.recoverable,
                }
                if self.error
                else None
            ),
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "served_from_cache": self.served_from_cache,
        }


@dataclass(slots=True)
class SyncOutcome:
    status: SyncStatus
    error: SyncError | None = None
    diff: LeadDiff = field(default_factory=LeadDiff)
    report: DispatchReport | None = None
    record_count: int = 0


class SyncOrchestrator:
    def __init__(
        self,
        session_manager: SessionManager,
        adapter,
        cache: LeadCache,
        dispatcher: NotificationDispatcher,
        scorer: UrgencyScorer,
        config: Settings = settings,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_manager = session_manager
        self.adapter = adapter
        self.cache = cache
        self.dispatcher = dispatcher
        self.scorer = scorer
        self.config = config
        self.clock = clock

        self._state = SyncState()
        self._listeners: list[Callable[[SyncState], None]] = []
        self._generation = 0
        self._inflight: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def subscribe(self, listener: Callable[[SyncState], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, generation: int, **changes) -> None:
        if generation != self._generation:
            return
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error("Sync state listener failed", error=str(e))

    def reset(self) -> None:
        """Forget published state (sign-out); cancels any run in flight."""
        self._generation += 1
        if self.is_syncing:
            self._inflight.cancel()
        self._state = SyncState()

    def _ensure_current(self, generation: int, step: str) -> None:
        if generation != self._generation:
            raise SyncServiceError(f"Sync superseded before {step}", operation=step)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def sync(self, force_visible_loading: bool = False) -> SyncOutcome:
        """Run one sync; a run already in flight is cancelled."""
        self._generation += 1
        generation = self._generation

        previous = self._inflight
        if previous is not None and not previous.done():
            previous.cancel()
            logger.info("Superseding in-flight sync", generation=generation)

        task = asyncio.create_task(self._run(generation, force_visible_loading))
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return SyncOutcome(status="cancelled")
            raise

    async def _run(self, generation: int, force_visible_loading: bool) -> SyncOutcome:
        structlog.contextvars.bind_contextvars(sync_run=generation)
        started = time.monotonic()
        try:
            outcome = await self._cycle(generation, force_visible_loading)
        except (SyncServiceError, asyncio.CancelledError):
            log_sync_outcome("cancelled", (time.monotonic() - started) * 1000)
            if generation != self._generation:
                return SyncOutcome(status="cancelled")
            raise
        finally:
            structlog.contextvars.unbind_contextvars("sync_run")

        log_sync_outcome(
            outcome.status,
            (time.monotonic() - started) * 1000,
            record_count=outcome.record_count,
            error_kind=outcome.error.kind if outcome.error else None,
        )
        return outcome

    def _fail(self, generation: int, error: SyncError) -> SyncOutcome:
        self._publish(generation, loading=False, error=error)
        logger.warning("Sync failed", kind=error.kind, message=error.message)
        return SyncOutcome(status="failed", error=error, record_count=len(self._state.records))

    def _fail_storage(self, generation: int, snapshot: Snapshot, error: StoreError) -> SyncOutcome:
        self._publish(
            generation,
            records=snapshot.records,
            captured_at=snapshot.captured_at,
            served_from_cache=False,
        )
        return self._fail(generation, SyncError("storage", str(error), recoverable=True))

    async def _cycle(self, generation: int, force_visible_loading: bool) -> SyncOutcome:
        # (b) render whatever is cached
        try:
            cached = await self.cache.read_current()
        except StoreError as e:
            logger.warning("Cache read failed", error=str(e))
            cached = None
        if cached is not None:
            self._publish(
                generation,
                records=cached.records,
                captured_at=cached.captured_at,
                served_from_cache=True,
                loading=force_visible_loading,
                error=None,
            )
        else:
            self._publish(generation, loading=True, error=None)

        # (c) session gate
        if not await self.session_manager.ensure_fresh("sync"):
            return self._fail(
                generation,
                SyncError("auth", "Not authenticated. Please sign in again.", recoverable=False),
            )
        user = self.session_manager.current_user()
        if user is None:
            return self._fail(
                generation,
                SyncError("auth", "Not authenticated. Please sign in again.", recoverable=False),
            )

        # (d) bounded fetch
        try:
            leads = await asyncio.wait_for(
                self.adapter.fetch_all(force_refresh=True),
                timeout=self.config.SYNC_FETCH_TIMEOUT_SECONDS,
            )
        except TimeoutError:
            return self._fail(
                generation,
                SyncError(
                    "network",
                    f"Fetch timed out after {self.config.SYNC_FETCH_TIMEOUT_SECONDS}s",
                    recoverable=True,
                ),
            )
        except RemoteStoreError as e:
            return self._fail(generation, SyncError(e.kind.value, str(e), recoverable=e.is_transient))

        now = self.clock()
        snapshot = Snapshot(records=tuple(leads), captured_at=now)

        # (e) render cache write
        self._ensure_current(generation, "cache write")
        try:
            baseline = await self.cache.read_baseline(user.identity)
            await asyncio.shield(self.cache.write_current(snapshot))
        except StoreError as e:
            return self._fail_storage(generation, snapshot, e)

        # (f, g) diff and score
        self._ensure_current(generation, "diff")
        diff = diff_snapshots(baseline, snapshot, user.identity, user.owner_aliases())
        candidates = []
        if baseline is not None and not baseline.is_empty():
            try:
                prefs = await self.dispatcher.settings_service.get(user.identity)
            except StoreError as e:
                return self._fail_storage(generation, snapshot, e)
            candidates = build_candidates(
                diff,
                score_snapshot(snapshot, self.scorer, now),
                user,
                now,
                captured_at=now,
                summary_threshold=self.config.NEW_LEAD_SUMMARY_THRESHOLD,
                is_snoozed=lambda key: prefs.is_record_snoozed(key, now),
            )
        else:
            logger.info("First snapshot for recipient, seeding baseline without notifications")

        # (h) dispatch, then advance the baseline; a superseded run stops before this
        self._ensure_current(generation, "dispatch")
        try:
            report = await asyncio.shield(
                self._dispatch_and_advance(user.identity, candidates, snapshot)
            )
        except StoreError as e:
            return self._fail_storage(generation, snapshot, e)

        # (i) done
        self._publish(
            generation,
            records=snapshot.records,
            captured_at=now,
            last_sync_at=now,
            served_from_cache=False,
            loading=False,
            error=None,
        )
        logger.info(
            "Sync diff",
            new=len(diff.new_records),
            reassigned=len(diff.reassigned_to_recipient),
            booked=len(diff.newly_booked),
            candidates=len(candidates),
        )
        return SyncOutcome(
            status="success", diff=diff, report=report, record_count=len(snapshot.records)
        )

    async def _dispatch_and_advance(
        self, recipient: str, candidates: list, snapshot: Snapshot
    ) -> DispatchReport:
        """The baseline only moves once its transitions have been dispatched."""
        report = await self.dispatcher.dispatch(candidates)
        await self.cache.write_baseline(recipient, snapshot)
        return report
