# leadsync/models/api/notification_request.py
"""
Notification API request models.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from leadsync.models.api.lead_request import LeadIdentityRequest
from leadsync.models.domain.notification_domain import NotificationPriority


class SnoozeRequest(BaseModel):
    """Snooze until an instant, or for a number of minutes."""

    until: datetime | None = Field(None, description="Re-deliver at this instant")
    minutes: int | None = Field(None, ge=1, le=60 * 24 * 14, description="Or after this many minutes")

    @model_validator(mode="after")
    def _exactly_one(self) -> "SnoozeRequest":
        if (self.until is None) == (self.minutes is None):
            raise ValueError("provide exactly one of 'until' or 'minutes'")
        return self


class SettingsUpdateRequest(BaseModel):
    """Partial update of notification settings."""

    category_enabled: dict[str, bool] | None = None
    dnd_enabled: bool | None = None
    dnd_start_hour: int | None = Field(None, ge=0, le=23)
    dnd_end_hour: int | None = Field(None, ge=0, le=23)
    digest_low_priority: bool | None = None


class LeadSnoozeRequest(SnoozeRequest):
    """Silence every notification about one lead."""

    identity: LeadIdentityRequest


class ReminderRequest(BaseModel):
    identity: LeadIdentityRequest
    at: datetime = Field(..., description="When to deliver the reminder")
    title: str = Field(default="Follow-up reminder", min_length=1, max_length=120)
    body: str = Field(default="", max_length=500)


class BroadcastRequest(BaseModel):
    """Admin message to every user (or every admin)."""

    title: str = Field(..., min_length=1, max_length=120)
    body: str = Field(..., min_length=1, max_length=1000)
    audience: Literal["all", "admins"] = "all"
    priority: NotificationPriority = NotificationPriority.NORMAL
