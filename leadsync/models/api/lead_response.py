# leadsync/models/api/lead_response.py
"""
Lead API response models.
Used by routes for output formatting.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class NextActionResponse(BaseModel):
    action: str = Field(..., description="Recommended action code")
    label: str = Field(..., description="Human-readable action")
    priority: str = Field(..., description="low, normal or high")
    reason: str = Field(default="", description="Why this action was chosen")


class LeadResponse(BaseModel):
    """One lead with its urgency score and recommended action."""

    key: str = Field(..., description="Identity key (created_at|traveller)")
    trip_id: str = ""
    created_at: str
    traveller_name: str
    owner: str = ""
    status: str = ""
    destination: str = ""
    travel_date: str = ""
    phone: str = ""
    email: str = ""
    remarks: str = ""
    row_address: int | None = Field(None, description="Row hint from the last read")
    score: float = Field(..., description="Urgency score 0-100")
    next_action: NextActionResponse
    last_activity_at: datetime | None = None


class LeadsListResponse(BaseModel):
    """Leads from the last good snapshot."""

    leads: list[LeadResponse]
    total: int
    captured_at: datetime | None = None
    served_from_cache: bool = False
    error: dict[str, Any] | None = None


class WriteResponse(BaseModel):
    """Result of a create or update."""

    status: str = Field(..., description="applied or queued")
    mutation_id: str | None = Field(None, description="Queue id when the write was deferred")
    row_address: int | None = Field(None, description="Row written, when applied")
    reason: str | None = Field(None, description="Why the write was queued")


class MutationResponse(BaseModel):
    id: str
    operation: str
    identity: dict[str, str] | None = None
    fields: dict[str, Any]
    enqueued_at: datetime
    attempts: int
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    status: str


class MutationsListResponse(BaseModel):
    mutations: list[MutationResponse]
    pending: int
    failed: int
    is_flushing: bool


class FlushResponse(BaseModel):
    """Outcome of one queue replay pass."""

    flushed: bool = Field(..., description="False when offline or signed out")
    attempted: int = 0
    succeeded: int = 0
    retry_later: int = 0
    failed_permanently: int = 0
    remaining: int = 0
    skipped: bool = False
    aborted_reason: str | None = None
