# leadsync/models/api/auth_request.py
"""
Auth API request models.
"""

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Credentials checked against the users worksheet."""

    email: str = Field(..., min_length=3, max_length=320, description="User email")
    password: str = Field(..., min_length=1, max_length=200, description="User password")
