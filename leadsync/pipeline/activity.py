"""
Activity timestamps parsed from a lead's remark log.

Consultants append markers such as
"Last Call: 2025-11-01 14:30, Last WA: 2025-11-01 15:10" to the remarks
column. Marker times are wall-clock times in the configured timezone.
"""

import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from leadsync.models.domain.lead_domain import parse_sheet_datetime

_STAMP = r"(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2})"

CALL_PATTERN = re.compile(r"Last\s*Call\s*:\s*" + _STAMP, re.IGNORECASE)
WHATSAPP_PATTERN = re.compile(r"Last\s*(?:WA|Whatsapp)\s*:\s*" + _STAMP, re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"Last\s*Email\s*:\s*" + _STAMP, re.IGNORECASE)
STATUS_PATTERN = re.compile(r"Last\s*Status\s*:\s*" + _STAMP, re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class LeadActivity:
    last_call_at: datetime | None = None
    last_whatsapp_at: datetime | None = None
    last_email_at: datetime | None = None
    last_status_change_at: datetime | None = None

    @property
    def channels(self) -> tuple[datetime | None, ...]:
        return (
            self.last_call_at,
            self.last_whatsapp_at,
            self.last_email_at,
            self.last_status_change_at,
        )

    @property
    def last_activity_at(self) -> datetime | None:
        stamps = [stamp for stamp in self.channels if stamp is not None]
        return max(stamps) if stamps else None

    def has_any(self) -> bool:
        return self.last_activity_at is not None


def resolve_timezone(name: str | None) -> tzinfo:
    return ZoneInfo(name or "UTC")


def _localize(value: datetime | None, tz: tzinfo) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=tz) if value.tzinfo is None else value


def _find(pattern: re.Pattern, text: str, tz: tzinfo) -> datetime | None:
    match = pattern.search(text)
    if not match:
        return None
    try:
        stamp = datetime.strptime(" ".join(match.group(1).split()), "%Y-%m-%d %H:%M")
    except ValueError:
        return None
    return stamp.replace(tzinfo=tz)


def parse_activity(remarks: str | None, tz: tzinfo) -> LeadActivity:
    """Pull the first marker of each kind out of the remark text."""
    text = remarks or ""
    return LeadActivity(
        last_call_at=_find(CALL_PATTERN, text, tz),
        last_whatsapp_at=_find(WHATSAPP_PATTERN, text, tz),
        last_email_at=_find(EMAIL_PATTERN, text, tz),
        last_status_change_at=_find(STATUS_PATTERN, text, tz),
    )


def parse_created_at(created_at: str | None, tz: tzinfo) -> datetime | None:
    return _localize(parse_sheet_datetime(created_at), tz)


def hours_since(value: datetime | None, now: datetime) -> float | None:
    if value is None:
        return None
    return (now - value).total_seconds() / 3600
