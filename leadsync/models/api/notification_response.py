# leadsync/models/api/notification_response.py
"""
Notification API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from leadsync.models.domain.notification_domain import Notification, NotificationSettings


class InboxResponse(BaseModel):
    notifications: list[Notification]
    unread_count: int = Field(..., description="Badge count")


class MarkReadResponse(BaseModel):
    updated: int = Field(..., description="Notifications changed")
    unread_count: int


class SnoozeResponse(BaseModel):
    snoozed_id: str
    redeliver_id: str = Field(..., description="Id of the copy scheduled for re-delivery")
    until: datetime


class SettingsResponse(BaseModel):
    settings: NotificationSettings


class ScheduledResponse(BaseModel):
    scheduled: list[Notification]


class DispatchResponse(BaseModel):
    """Per-outcome counts of one dispatch pass."""

    outcomes: dict[str, int]
    delivered: int
