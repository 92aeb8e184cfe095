"""
Row <-> Lead mapping for the leads and users worksheets.
"""

from typing import Any

from leadsync.models.domain.lead_domain import Lead, LeadIdentity, SheetUser

HEADER_ROWS = 1
# Fields that identify a row and are never written by an update
PROTECTED_FIELDS = {"trip_id", "created_at", "row_address"}

# Fixed BACKEND SHEET layout (0-based): C=name, D=email, E=phone, M=role, N=password
USER_COLUMNS = {"display_name": 2, "email": 3, "phone": 4, "role": 12, "password": 13}


def column_to_index(column: str) -> int:
    """'A' -> 0, 'Z' -> 25, 'AA' -> 26."""
    letters = (column or "").strip().upper()
    if not letters or not letters.isalpha():
        raise ValueError(f"Invalid column letter: {column!r}")
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def _cell(row: list[Any], index: int) -> str:
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def row_to_lead(row: list[Any], row_address: int, mappings: dict[str, str]) -> Lead | None:
    """
    Build a Lead from a raw sheet row.

    Returns None for rows missing an identity (blank name or timestamp).
    """
    values = {field: _cell(row, column_to_index(col)) for field, col in mappings.items() if col}
    if not values.get("traveller_name") or not values.get("created_at"):
        return None
    return Lead(**{k: v for k, v in values.items() if k in Lead.model_fields}, row_address=row_address)


def rows_to_leads(rows: list[list[Any]], mappings: dict[str, str]) -> list[Lead]:
    """Map every data row, keeping the actual sheet row number as the address hint."""
    leads: list[Lead] = []
    for offset, row in enumerate(rows[HEADER_ROWS:]):
        lead = row_to_lead(row, offset + HEADER_ROWS + 1, mappings)
        if lead is not None:
            leads.append(lead)
    return leads


def lead_to_row(fields: dict[str, Any], mappings: dict[str, str]) -> list[str]:
    """Lay out a new lead's fields as a full row for append."""
    used = [column_to_index(col) for col in mappings.values() if col]
    row = [""] * (max(used) + 1 if used else 0)
    for field, col in mappings.items():
        if not col or field == "row_address":
            continue
        value = fields.get(field)
        if value is None:
            continue
        row[column_to_index(col)] = "; ".join(value) if isinstance(value, list) else str(value)
    return row


def update_ranges(
    worksheet: str, row_address: int, fields: dict[str, Any], mappings: dict[str, str]
) -> list[dict[str, Any]]:
    """values:batchUpdate payload entries for the writable fields of one row."""
    data = []
    for field, value in fields.items():
        if value is None or field in PROTECTED_FIELDS:
            continue
        col = mappings.get(field)
        if not col:
            continue
        data.append({"range": f"{worksheet}!{col}{row_address}", "values": [[str(value)]]})
    return data


def rows_to_users(rows: list[list[Any]]) -> list[SheetUser]:
    users = []
    for row in rows[HEADER_ROWS:]:
        email = _cell(row, USER_COLUMNS["email"])
        password = _cell(row, USER_COLUMNS["password"])
        if not email or not password:
            continue
        users.append(
            SheetUser(
                email=email,
                display_name=_cell(row, USER_COLUMNS["display_name"]),
                phone=_cell(row, USER_COLUMNS["phone"]),
                role=(_cell(row, USER_COLUMNS["role"]) or "consultant").lower(),
                password=password,
            )
        )
    return users


def find_by_identity(leads: list[Lead], identity: LeadIdentity) -> Lead | None:
    """First lead matching the identity: exact key first, then same-day match."""
    key = identity.key
    for lead in leads:
        if lead.identity.key == key:
            return lead
    for lead in leads:
        if identity.matches(lead.identity):
            return lead
    return None
