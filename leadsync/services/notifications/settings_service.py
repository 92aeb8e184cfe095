"""
Persisted per-user notification preferences.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import get_json, set_json
from leadsync.models.domain.lead_domain import normalize_person
from leadsync.models.domain.notification_domain import (
    NotificationCategory,
    NotificationSettings,
)

logger = get_logger(__name__)

SETTINGS_KEY_PREFIX = "notifications:settings:"
UPDATABLE_FIELDS = {
    "category_enabled",
    "dnd_enabled",
    "dnd_start_hour",
    "dnd_end_hour",
    "digest_low_priority",
}


class NotificationSettingsService:
    def __init__(self, store, clock: Callable[[], datetime] = lambda: datetime.now(UTC)):
        self.store = store
        self.clock = clock

    def _key(self, recipient: str) -> str:
        return SETTINGS_KEY_PREFIX + normalize_person(recipient)

    async def get(self, recipient: str) -> NotificationSettings:
        """Current settings; expired snoozes are pruned and the pruned copy saved."""
        payload = await get_json(self.store, self._key(recipient))
        try:
            current = NotificationSettings.model_validate(payload) if payload else NotificationSettings()
        except ValidationError as e:
            logger.warning("Resetting unreadable notification settings", error=str(e))
            current = NotificationSettings()

        if current.prune_expired_snoozes(self.clock()):
            await self.save(recipient, current)
        return current

    async def save(self, recipient: str, value: NotificationSettings) -> NotificationSettings:
        await set_json(self.store, self._key(recipient), value.model_dump(mode="json"))
        return value

    async def update(self, recipient: str, changes: dict[str, Any]) -> NotificationSettings:
        """
        Apply a partial update.

        Raises:
            ValueError: Unknown field or a value outside its bounds
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")

        current = await self.get(recipient)
        merged = current.model_dump()
        for field, value in changes.items():
            if field == "category_enabled":
                merged["category_enabled"] = {**merged["category_enabled"], **value}
            else:
                merged[field] = value
        updated = NotificationSettings.model_validate(merged)
        await self.save(recipient, updated)
        logger.info("Notification settings updated", recipient=normalize_person(recipient), fields=sorted(changes))
        return updated

    async def set_category_enabled(
        self, recipient: str, category: NotificationCategory, enabled: bool
    ) -> NotificationSettings:
        return await self.update(recipient, {"category_enabled": {category.value: enabled}})

    async def snooze_record(self, recipient: str, record_key: str, until: datetime) -> NotificationSettings:
        current = await self.get(recipient)
        current.snoozed_record_ids[record_key] = until
        await self.save(recipient, current)
        logger.info("Lead snoozed", lead_key=record_key, until=until.isoformat())
        return current

    async def unsnooze_record(self, recipient: str, record_key: str) -> NotificationSettings:
        current = await self.get(recipient)
        if current.snoozed_record_ids.pop(record_key, None) is not None:
            await self.save(recipient, current)
            logger.info("Lead unsnoozed", lead_key=record_key)
        return current
