# leadsync/models/api/lead_request.py
"""
Lead API request models.
Used by routes for input validation.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from leadsync.models.domain.lead_domain import LeadIdentity


class LeadIdentityRequest(BaseModel):
    """Natural key of a lead."""

    created_at: str = Field(..., min_length=1, description="Creation timestamp as shown in the sheet")
    traveller_name: str = Field(..., min_length=1, description="Traveller name")

    def to_identity(self) -> LeadIdentity:
        return LeadIdentity(self.created_at, self.traveller_name)


class CreateLeadRequest(BaseModel):
    """Request for appending a new lead row."""

    created_at: str = Field(..., min_length=1, description="Creation timestamp")
    traveller_name: str = Field(..., min_length=1, max_length=200, description="Traveller name")
    owner: str = Field(default="", description="Assigned consultant")
    status: str = Field(default="", description="Pipeline status")
    travel_date: str = Field(default="", description="Travel date")
    travel_state: str = Field(default="", description="Travel state")
    destination: str = Field(default="", description="Destination")
    remarks: str = Field(default="", description="Remarks log")
    nights: str = Field(default="", description="Number of nights")
    pax: str = Field(default="", description="Number of travellers")
    hotel_category: str = Field(default="", description="Hotel category")
    meal_plan: str = Field(default="", description="Meal plan")
    phone: str = Field(default="", description="Phone number")
    email: str = Field(default="", description="Email address")

    def to_fields(self) -> dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v != ""}


class UpdateLeadRequest(BaseModel):
    """Request for updating fields of one lead, addressed by natural key."""

    identity: LeadIdentityRequest
    fields: dict[str, Any] = Field(..., description="Field deltas to apply")
    address_hint: int | None = Field(
        None, ge=2, description="Row address from the last read, re-resolved before writing"
    )

    @field_validator("fields")
    @classmethod
    def _not_empty(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError("at least one field is required")
        return value
