# models/domain/lead_domain.py
"""
Lead domain model.

A lead is one row of the MASTER DATA worksheet. Its identity is the natural
key (creation timestamp, traveller name); the row address is only a hint
about where the row sat during the last read.
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime

from pydantic import BaseModel, ConfigDict, Field

# Controlled status vocabulary, in pipeline order
CANONICAL_STATUSES = (
    "Hot Leads",
    "Negotiations",
    "Proposal 3 Shared",
    "Proposal 2 Shared",
    "Proposal 1 Shared",
    "Working on it",
    "Follow-up Calls - 5",
    "Follow-up Calls - 4",
    "Follow-up Calls - 3",
    "Follow-up Calls - 2",
    "Follow-up Calls - 1",
    "Follow-up Calls",
    "Whatsapp Sent",
    "Unfollowed",
    "Pamplets Shared",
    "Booked With Us",
    "Cancellations",
    "Postponed",
    "Booked Outside",
)

CLOSED_STATUSES = {"Booked With Us", "Cancellations", "Booked Outside", "Postponed"}

_STATUS_LOOKUP = {re.sub(r"[\s\-_]+", "", s.lower()): s for s in CANONICAL_STATUSES}

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def normalize_status(raw: str | None) -> str:
    """
    Map free-text status onto the controlled vocabulary.

    Matching ignores case, whitespace, dashes and underscores. Unknown text
    is returned trimmed so it still round-trips to the sheet.
    """
    text = (raw or "").strip()
    if not text:
        return ""
    return _STATUS_LOOKUP.get(re.sub(r"[\s\-_]+", "", text.lower()), text)


def is_booked_status(status: str | None) -> bool:
    return "booked" in normalize_status(status).lower()


def normalize_person(value: str | None) -> str:
    """Case/whitespace-normalized owner or user identifier."""
    return " ".join((value or "").split()).lower()


def parse_sheet_datetime(value: str | None) -> datetime | None:
    """Best-effort parse of a sheet timestamp; naive unless the text carries an offset."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_sheet_date(value: str | None) -> date | None:
    """Best-effort calendar date of a sheet timestamp."""
    parsed = parse_sheet_datetime(value)
    return parsed.date() if parsed else None


@dataclass(frozen=True, slots=True)
class LeadIdentity:
    """Natural key correlating a lead across snapshots and writes."""

    created_at: str
    traveller_name: str

    @property
    def key(self) -> str:
        created = (self.created_at or "").strip()
        name = normalize_person(self.traveller_name)
        if not created or not name:
            return ""
        return f"{created}|{name}"

    def is_empty(self) -> bool:
        return not self.key

    def matches(self, other: "LeadIdentity") -> bool:
        """Same traveller (case-insensitive) created on the same day or at the same instant."""
        if normalize_person(self.traveller_name) != normalize_person(other.traveller_name):
            return False
        if (self.created_at or "").strip() == (other.created_at or "").strip():
            return True
        mine, theirs = parse_sheet_date(self.created_at), parse_sheet_date(other.created_at)
        return mine is not None and mine == theirs

    def to_dict(self) -> dict:
        return {"created_at": self.created_at, "traveller_name": self.traveller_name}

    @classmethod
    def from_dict(cls, data: dict) -> "LeadIdentity":
        return cls(
            created_at=str(data.get("created_at", "")),
            traveller_name=str(data.get("traveller_name", "")),
        )


class Lead(BaseModel):
    """Domain model for one lead row."""

    model_config = ConfigDict(frozen=True)

    trip_id: str = ""
    created_at: str
    owner: str = ""
    status: str = ""
    traveller_name: str
    travel_date: str = ""
    travel_state: str = ""
    destination: str = ""
    remarks: str = ""
    nights: str = ""
    pax: str = ""
    hotel_category: str = ""
    meal_plan: str = ""
    phone: str = ""
    email: str = ""
    priority: str = ""
    notes: str = ""
    row_address: int | None = None  # cache hint, re-resolved before every write

    @property
    def identity(self) -> LeadIdentity:
        return LeadIdentity(self.created_at, self.traveller_name)

    @property
    def normalized_owner(self) -> str:
        return normalize_person(self.owner)

    @property
    def canonical_status(self) -> str:
        return normalize_status(self.status)

    def is_unassigned(self) -> bool:
        return not self.normalized_owner

    def is_closed(self) -> bool:
        return self.canonical_status in CLOSED_STATUSES


class Snapshot(BaseModel):
    """All leads captured at one sync instant."""

    model_config = ConfigDict(frozen=True)

    records: tuple[Lead, ...] = ()
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def is_empty(self) -> bool:
        return not self.records

    def by_identity(self) -> dict[str, Lead]:
        """Map identity key -> lead; records without an identity are skipped."""
        indexed: dict[str, Lead] = {}
        for record in self.records:
            key = record.identity.key
            if key:
                indexed[key] = record
        return indexed


class SheetUser(BaseModel):
    """A user row from the BACKEND SHEET worksheet."""

    email: str
    display_name: str = ""
    phone: str = ""
    role: str = "consultant"
    password: str = ""

    @property
    def identity(self) -> str:
        return normalize_person(self.email)

    def is_admin(self) -> bool:
        return "admin" in self.role.lower()
