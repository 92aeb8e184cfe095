# models/domain/session_domain.py
"""
Session domain model: the signed-in user plus access/refresh token lifetimes.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, model_validator


class SessionUser(BaseModel):
    """The authenticated user as seen by the pipeline."""

    identity: str  # normalized email
    display_name: str = ""
    phone: str = ""
    role: str = "consultant"

    def is_admin(self) -> bool:
        return "admin" in self.role.lower()

    def owner_aliases(self) -> tuple[str, ...]:
        """Other values the owner column may hold for this user."""
        return (self.display_name,) if self.display_name else ()


class Session(BaseModel):
    """Domain model for a local session (tokens in plain text, encrypted at rest)."""

    user: SessionUser
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    last_touched_at: datetime
    last_refreshed_at: datetime | None = None

    @model_validator(mode="after")
    def _access_within_refresh(self) -> "Session":
        if self.access_expires_at > self.refresh_expires_at:
            raise ValueError("access token must not outlive the refresh token")
        return self

    def is_refresh_expired(self, now: datetime) -> bool:
        return now > self.refresh_expires_at

    def access_needs_refresh(self, now: datetime, grace: timedelta) -> bool:
        """Access token expired or inside the grace window."""
        return self.access_expires_at - now < grace

    def refresh_needs_rotation(self, now: datetime, window: timedelta) -> bool:
        return self.refresh_expires_at - now < window

    def is_idle_expired(self, now: datetime, idle_ttl: timedelta) -> bool:
        return now - self.last_touched_at >= idle_ttl

    def to_public_dict(self) -> dict:
        """Session summary without token material."""
        return {
            "user": self.user.model_dump(),
            "access_expires_at": self.access_expires_at.isoformat(),
            "refresh_expires_at": self.refresh_expires_at.isoformat(),
            "last_touched_at": self.last_touched_at.isoformat(),
            "last_refreshed_at": (
                self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
            ),
            "access_token_preview": self.access_token[:8] + "...",
        }
