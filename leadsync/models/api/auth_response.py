# leadsync/models/api/auth_response.py
"""
Auth API response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class SessionUserResponse(BaseModel):
    identity: str = Field(..., description="Normalized user email")
    display_name: str = Field(default="", description="Display name")
    role: str = Field(..., description="User role")
    is_admin: bool = Field(..., description="Whether the user has admin rights")


class LoginResponse(BaseModel):
    """Response for a successful login."""

    access_token: str = Field(..., description="Bearer token for subsequent requests")
    token_type: str = Field(default="bearer", description="Token type")
    access_expires_at: datetime = Field(..., description="Access token expiry")
    refresh_expires_at: datetime = Field(..., description="Session expiry")
    user: SessionUserResponse


class SessionResponse(BaseModel):
    """Current session summary without token material."""

    authenticated: bool = Field(..., description="Whether a session is active")
    user: SessionUserResponse | None = None
    access_expires_at: datetime | None = None
    refresh_expires_at: datetime | None = None
    last_touched_at: datetime | None = None
    next_refresh_in_seconds: float | None = Field(
        None, description="Seconds until the background refresh fires"
    )
