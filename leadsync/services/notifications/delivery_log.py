"""
Delivery log (the in-app inbox), the dedup ledger, and the holding buckets
for digested and scheduled notifications.
"""

from datetime import datetime, timedelta

from pydantic import ValidationError

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import get_json, set_json
from leadsync.models.domain.lead_domain import normalize_person
from leadsync.models.domain.notification_domain import Notification, NotificationKey

logger = get_logger(__name__)

INBOX_KEY_PREFIX = "notifications:inbox:"
DEDUP_KEY_PREFIX = "notifications:dedup:"


def _load_notifications(payload: list | None) -> list[Notification]:
    items = []
    for raw in payload or []:
        try:
            items.append(Notification.model_validate(raw))
        except ValidationError as e:
            logger.warning("Skipping unreadable stored notification", error=str(e))
    return items


def _dump_notifications(items: list[Notification]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


class DeliveryLog:
    """Per-recipient inbox, newest first, capped at `limit` entries."""

    def __init__(self, store, limit: int = 200):
        self.store = store
        self.limit = limit

    def _inbox_key(self, recipient: str) -> str:
        return INBOX_KEY_PREFIX + normalize_person(recipient)

    async def inbox(
        self, recipient: str, unread_only: bool = False, limit: int | None = None
    ) -> list[Notification]:
        items = _load_notifications(await get_json(self.store, self._inbox_key(recipient), []))
        if unread_only:
            items = [item for item in items if not item.read]
        return items[:limit] if limit else items

    async def _save(self, recipient: str, items: list[Notification]) -> None:
        await set_json(self.store, self._inbox_key(recipient), _dump_notifications(items[: self.limit]))

    async def append(self, notification: Notification) -> None:
        items = await self.inbox(notification.recipient)
        items = [item for item in items if item.id != notification.id]
        items.insert(0, notification)
        await self._save(notification.recipient, items)

    async def get(self, recipient: str, notification_id: str) -> Notification | None:
        return next((item for item in await self.inbox(recipient) if item.id == notification_id), None)

    async def _replace(self, recipient: str, notification_id: str, **changes) -> Notification | None:
        items = await self.inbox(recipient)
        for index, item in enumerate(items):
            if item.id == notification_id:
                items[index] = item.model_copy(update=changes)
                await self._save(recipient, items)
                return items[index]
        return None

    async def mark_read(self, recipient: str, notification_id: str) -> Notification | None:
        return await self._replace(recipient, notification_id, read=True)

    async def mark_snoozed(
        self, recipient: str, notification_id: str, until: datetime
    ) -> Notification | None:
        return await self._replace(recipient, notification_id, snoozed_until=until, read=True)

    async def mark_all_read(self, recipient: str) -> int:
        items = await self.inbox(recipient)
        changed = sum(1 for item in items if not item.read)
        if changed:
            await self._save(recipient, [item.model_copy(update={"read": True}) for item in items])
        return changed

    async def unread_count(self, recipient: str) -> int:
        return len(await self.inbox(recipient, unread_only=True))

    # Dedup ledger

    def _dedup_key(self, key: NotificationKey) -> str:
        return DEDUP_KEY_PREFIX + key.storage_key()

    async def last_delivered(self, key: NotificationKey) -> datetime | None:
        raw = await self.store.get(self._dedup_key(key))
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    async def record_delivery(self, key: NotificationKey, at: datetime, window: timedelta) -> None:
        # TTL only bounds storage; the window check compares timestamps
        await self.store.set_with_ttl(
            self._dedup_key(key), at.isoformat(), int(window.total_seconds()) + 60
        )


class NotificationBucket:
    """
    A persisted holding list (digest or scheduled) per recipient.

    With `one_per_key`, a newer item replaces any held item with the same
    NotificationKey, so repeated syncs during DND hold one copy per lead and action.
    """

    def __init__(self, store, name: str, one_per_key: bool = False):
        self.store = store
        self.prefix = f"notifications:{name}:"
        self.one_per_key = one_per_key

    def _key(self, recipient: str) -> str:
        return self.prefix + normalize_person(recipient)

    async def items(self, recipient: str) -> list[Notification]:
        return _load_notifications(await get_json(self.store, self._key(recipient), []))

    async def add(self, notification: Notification) -> int:
        items = await self.items(notification.recipient)
        if self.one_per_key:
            items = [item for item in items if item.key != notification.key]
        elif any(item.id == notification.id for item in items):
            return len(items)
        items.append(notification)
        await set_json(self.store, self._key(notification.recipient), _dump_notifications(items))
        return len(items)

    async def replace_all(self, recipient: str, items: list[Notification]) -> None:
        if items:
            await set_json(self.store, self._key(recipient), _dump_notifications(items))
        else:
            await self.store.delete(self._key(recipient))

    async def drain(self, recipient: str) -> list[Notification]:
        items = await self.items(recipient)
        if items:
            await self.store.delete(self._key(recipient))
        return items
