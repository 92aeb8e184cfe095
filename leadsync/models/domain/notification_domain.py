# models/domain/notification_domain.py
"""
Notification domain models: dedup key, notification payload and user settings.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from leadsync.models.domain.lead_domain import normalize_person


class NotificationCategory(str, Enum):
    NEW_LEAD = "new_lead"
    REASSIGNED = "reassigned"
    BOOKED = "booked"
    FOLLOW_UP = "follow_up"
    HEADS_UP = "heads_up"
    ADMIN_BROADCAST = "admin_broadcast"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass(frozen=True, slots=True)
class NotificationKey:
    """
    Dedup key: one delivered notification per (recipient, source entity, action)
    inside the rate-limit window.
    """

    recipient: str
    source_entity: str
    action: str

    @classmethod
    def build(cls, recipient: str, source_entity: str, action: str) -> "NotificationKey":
        return cls(normalize_person(recipient), source_entity.strip(), action.strip().upper())

    def storage_key(self) -> str:
        return f"{self.recipient}|{self.source_entity}|{self.action}"


class DeepLink(BaseModel):
    route: str
    entity_ref: str | None = None


class Notification(BaseModel):
    """
    A notification candidate or delivered notification.

    Only `read`, `snoozed_until` and `scheduled_at` change after creation.
    """

    id: str
    recipient: str
    source_entity: str
    action: str
    title: str
    body: str
    category: NotificationCategory
    priority: NotificationPriority = NotificationPriority.NORMAL
    deep_link: DeepLink | None = None
    created_at: datetime
    read: bool = False
    scheduled_at: datetime | None = None
    snoozed_until: datetime | None = None

    @classmethod
    def build(
        cls,
        *,
        recipient: str,
        source_entity: str,
        action: str,
        title: str,
        body: str,
        category: NotificationCategory,
        priority: NotificationPriority,
        created_at: datetime,
        deep_link: DeepLink | None = None,
        scheduled_at: datetime | None = None,
    ) -> "Notification":
        key = NotificationKey.build(recipient, source_entity, action)
        return cls(
            id=notification_id(key, created_at),
            recipient=key.recipient,
            source_entity=key.source_entity,
            action=key.action,
            title=title,
            body=body,
            category=category,
            priority=priority,
            deep_link=deep_link,
            created_at=created_at,
            scheduled_at=scheduled_at,
        )

    @property
    def key(self) -> NotificationKey:
        return NotificationKey(self.recipient, self.source_entity, self.action)

    def recreate_for(self, scheduled_at: datetime) -> "Notification":
        """New unread copy of this notification due at scheduled_at."""
        return self.model_copy(
            update={
                "id": notification_id(self.key, scheduled_at),
                "created_at": scheduled_at,
                "scheduled_at": scheduled_at,
                "read": False,
                "snoozed_until": None,
            }
        )


def notification_id(key: NotificationKey, created_at: datetime) -> str:
    """Deterministic id from the dedup key and the creation instant."""
    digest = hashlib.sha256(f"{key.storage_key()}@{created_at.isoformat()}".encode("utf-8"))
    return digest.hexdigest()[:24]


def _default_category_flags() -> dict[str, bool]:
    return {category.value: True for category in NotificationCategory}


class NotificationSettings(BaseModel):
    """Per-user delivery preferences."""

    category_enabled: dict[str, bool] = Field(default_factory=_default_category_flags)
    dnd_enabled: bool = False
    dnd_start_hour: int = Field(default=22, ge=0, le=23)
    dnd_end_hour: int = Field(default=7, ge=0, le=23)
    digest_low_priority: bool = False
    snoozed_record_ids: dict[str, datetime] = Field(default_factory=dict)

    def is_category_enabled(self, category: NotificationCategory) -> bool:
        # Categories missing from the map default to enabled
        return self.category_enabled.get(category.value, True) is not False

    def is_record_snoozed(self, record_key: str, now: datetime) -> bool:
        until = self.snoozed_record_ids.get(record_key)
        return until is not None and until > now

    def in_dnd(self, local_now: datetime) -> bool:
        """True when local_now falls inside the DND window (which may wrap midnight)."""
        if not self.dnd_enabled or self.dnd_start_hour == self.dnd_end_hour:
            return False
        hour = local_now.hour
        if self.dnd_start_hour < self.dnd_end_hour:
            return self.dnd_start_hour <= hour < self.dnd_end_hour
        return hour >= self.dnd_start_hour or hour < self.dnd_end_hour

    def prune_expired_snoozes(self, now: datetime) -> bool:
        """Drop expired snoozes; returns True when anything was removed."""
        expired = [key for key, until in self.snoozed_record_ids.items() if until <= now]
        for key in expired:
            del self.snoozed_record_ids[key]
        return bool(expired)
