"""
Notification dispatcher.

Runs each candidate through the filters in order (category, lead snooze,
do-not-disturb, dedup), then logs it to the inbox, hands it to the sink and
updates the badge. Failures here are logged and never reach the caller.
"""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.models.domain.lead_domain import Lead, normalize_person
from leadsync.models.domain.notification_domain import (
    DeepLink,
    Notification,
    NotificationCategory,
    NotificationPriority,
    NotificationSettings,
)
from leadsync.pipeline.activity import resolve_timezone
from leadsync.services.notifications.delivery_log import DeliveryLog, NotificationBucket
from leadsync.services.notifications.settings_service import NotificationSettingsService
from leadsync.services.notifications.sinks import PresentationSink

logger = get_logger(__name__)

REMINDER_ACTION = "REMINDER"
DIGEST_ACTION = "DIGEST"


class DispatchOutcome(str, Enum):
    DELIVERED = "delivered"
    CATEGORY_DISABLED = "category_disabled"
    RECORD_SNOOZED = "record_snoozed"
    DND_DROPPED = "dnd_dropped"
    DIGESTED = "digested"
    DUPLICATE = "duplicate"
    SCHEDULED = "scheduled"
    FAILED = "failed"


@dataclass(slots=True)
class DispatchReport:
    outcomes: dict[str, DispatchOutcome] = field(default_factory=dict)
    delivered: list[Notification] = field(default_factory=list)

    def count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value == outcome)

    def to_dict(self) -> dict:
        return {outcome.value: self.count(outcome) for outcome in DispatchOutcome if self.count(outcome)}


class NotificationDispatcher:
    def __init__(
        self,
        settings_service: NotificationSettingsService,
        delivery_log: DeliveryLog,
        digest_bucket: NotificationBucket,
        scheduled_bucket: NotificationBucket,
        sink: PresentationSink,
        config: Settings = settings,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.settings_service = settings_service
        self.delivery_log = delivery_log
        self.digest_bucket = digest_bucket
        self.scheduled_bucket = scheduled_bucket
        self.sink = sink
        self.clock = clock
        self.tz = resolve_timezone(config.TIMEZONE)
        self.dedup_window = timedelta(hours=config.NOTIFICATION_DEDUP_WINDOW_HOURS)

    def local_now(self) -> datetime:
        return self.clock().astimezone(self.tz)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    async def _filter(
        self, candidate: Notification, prefs: NotificationSettings, now: datetime
    ) -> DispatchOutcome | None:
        """The outcome that stops this candidate, or None when it should be delivered."""
        if not prefs.is_category_enabled(candidate.category):
            return DispatchOutcome.CATEGORY_DISABLED

        if prefs.is_record_snoozed(candidate.source_entity, now):
            return DispatchOutcome.RECORD_SNOOZED

        if candidate.priority == NotificationPriority.LOW and prefs.in_dnd(now.astimezone(self.tz)):
            if prefs.digest_low_priority:
                await self.digest_bucket.add(candidate)
                return DispatchOutcome.DIGESTED
            return DispatchOutcome.DND_DROPPED

        last = await self.delivery_log.last_delivered(candidate.key)
        if last is not None and now - last < self.dedup_window:
            return DispatchOutcome.DUPLICATE

        return None

    async def _deliver(self, notification: Notification, now: datetime) -> None:
        await self.delivery_log.append(notification)
        await self.delivery_log.record_delivery(notification.key, now, self.dedup_window)
        try:
            await self.sink.present(notification)
        except Exception as e:
            logger.error("Sink present failed", notification_id=notification.id, error=str(e))

    async def _update_badge(self, recipient: str) -> None:
        try:
            count = await self.delivery_log.unread_count(recipient)
            await self.sink.set_badge_count(count, recipient)
        except Exception as e:
            logger.error("Badge update failed", recipient=recipient, error=str(e))

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def dispatch(self, candidates: list[Notification]) -> DispatchReport:
        """
        Filter and deliver candidates in order.

        Pending digests of each recipient are flushed first when their DND
        window has ended.
        """
        report = DispatchReport()
        now = self.clock()
        prefs_cache: dict[str, NotificationSettings] = {}
        touched: set[str] = set()

        by_recipient: dict[str, list[Notification]] = defaultdict(list)
        for candidate in candidates:
            by_recipient[candidate.recipient].append(candidate)

        for recipient in by_recipient:
            try:
                if await self.flush_digest(recipient):
                    touched.add(recipient)
            except StoreError as e:
                logger.error("Digest flush failed", recipient=recipient, error=str(e))

        for candidate in candidates:
            try:
                if candidate.scheduled_at is not None and candidate.scheduled_at > now:
                    await self.scheduled_bucket.add(candidate)
                    report.outcomes[candidate.id] = DispatchOutcome.SCHEDULED
                    continue

                prefs = prefs_cache.get(candidate.recipient)
                if prefs is None:
                    prefs = await self.settings_service.get(candidate.recipient)
                    prefs_cache[candidate.recipient] = prefs

                outcome = await self._filter(candidate, prefs, now)
                if outcome is not None:
                    report.outcomes[candidate.id] = outcome
                    logger.debug(
                        "Notification filtered",
                        notification_id=candidate.id,
                        action=candidate.action,
                        outcome=outcome.value,
                    )
                    continue

                await self._deliver(candidate, now)
                report.outcomes[candidate.id] = DispatchOutcome.DELIVERED
                report.delivered.append(candidate)
                touched.add(candidate.recipient)
            except Exception as e:
                report.outcomes[candidate.id] = DispatchOutcome.FAILED
                logger.error(
                    "Notification dispatch failed",
                    notification_id=candidate.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        for recipient in touched:
            await self._update_badge(recipient)

        if candidates:
            logger.info("Notifications dispatched", candidates=len(candidates), **report.to_dict())
        return report

    async def flush_digest(self, recipient: str) -> int:
        """
        Deliver held low-priority notifications once DND is over.

        Items go to the inbox one by one; the sink gets a single summary.
        Returns the number delivered.
        """
        prefs = await self.settings_service.get(recipient)
        if prefs.in_dnd(self.local_now()):
            return 0

        held = await self.digest_bucket.drain(recipient)
        if not held:
            return 0

        now = self.clock()
        delivered = []
        for item in held:
            last = await self.delivery_log.last_delivered(item.key)
            if last is not None and now - last < self.dedup_window:
                continue
            await self.delivery_log.append(item)
            await self.delivery_log.record_delivery(item.key, now, self.dedup_window)
            delivered.append(item)

        if delivered:
            summary = Notification.build(
                recipient=recipient,
                source_entity=f"digest:{now.isoformat()}",
                action=DIGEST_ACTION,
                title=f"{len(delivered)} update{'s' if len(delivered) != 1 else ''} while Do Not Disturb was on",
                body="; ".join(item.title for item in delivered[:5]),
                category=NotificationCategory.FOLLOW_UP,
                priority=NotificationPriority.LOW,
                created_at=now,
                deep_link=DeepLink(route="/notifications"),
            )
            try:
                await self.sink.present(summary)
            except Exception as e:
                logger.error("Sink present failed", notification_id=summary.id, error=str(e))
            await self._update_badge(recipient)

        logger.info("Digest flushed", recipient=recipient, held=len(held), delivered=len(delivered))
        return len(delivered)

    async def release_due(self, recipient: str) -> DispatchReport:
        """
        Dispatch scheduled notifications whose time has come.

        A due item still inside the dedup window of an earlier delivery is
        pushed back to the end of that window.
        """
        now = self.clock()
        scheduled = await self.scheduled_bucket.items(recipient)
        due = [item for item in scheduled if item.scheduled_at is None or item.scheduled_at <= now]
        if not due:
            return DispatchReport()

        later = [item for item in scheduled if item not in due]
        deferred = []
        ready = []
        for item in due:
            last = await self.delivery_log.last_delivered(item.key)
            if last is not None and now - last < self.dedup_window:
                deferred.append(item.recreate_for(last + self.dedup_window))
            else:
                ready.append(item)

        await self.scheduled_bucket.replace_all(recipient, later + deferred)
        if deferred:
            logger.info("Scheduled notifications deferred by dedup window", count=len(deferred))
        return await self.dispatch(ready)

    async def snooze(
        self, recipient: str, notification_id: str, until: datetime
    ) -> Notification | None:
        """
        Snooze a delivered notification: it is marked snoozed in the inbox and a
        fresh copy is scheduled for `until`.
        """
        snoozed = await self.delivery_log.mark_snoozed(recipient, notification_id, until)
        if snoozed is None:
            return None
        recreated = snoozed.recreate_for(until)
        await self.scheduled_bucket.add(recreated)
        await self._update_badge(recipient)
        logger.info(
            "Notification snoozed",
            notification_id=notification_id,
            recreated_id=recreated.id,
            until=until.isoformat(),
        )
        return recreated

    async def schedule_reminder(
        self, recipient: str, lead: Lead, at: datetime, title: str, body: str
    ) -> Notification:
        """Deferred follow-up reminder for one lead, delivered by release_due."""
        reminder = Notification.build(
            recipient=recipient,
            source_entity=lead.identity.key,
            action=f"{REMINDER_ACTION}@{at.astimezone(UTC).strftime('%Y%m%d%H%M')}",
            title=title,
            body=body,
            category=NotificationCategory.FOLLOW_UP,
            priority=NotificationPriority.NORMAL,
            created_at=self.clock(),
            deep_link=DeepLink(route="/leads", entity_ref=lead.identity.key),
            scheduled_at=at,
        )
        await self.scheduled_bucket.add(reminder)
        logger.info("Reminder scheduled", lead_key=lead.identity.key, at=at.isoformat())
        return reminder

    async def scheduled(self, recipient: str) -> list[Notification]:
        return await self.scheduled_bucket.items(recipient)

    async def mark_read(self, recipient: str, notification_id: str) -> Notification | None:
        updated = await self.delivery_log.mark_read(recipient, notification_id)
        if updated is not None:
            await self._update_badge(recipient)
        return updated

    async def mark_all_read(self, recipient: str) -> int:
        changed = await self.delivery_log.mark_all_read(recipient)
        if changed:
            await self._update_badge(recipient)
        return changed

    async def unread_count(self, recipient: str) -> int:
        return await self.delivery_log.unread_count(normalize_person(recipient))
