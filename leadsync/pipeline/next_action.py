"""
Next-best-action rules.

Rules are evaluated in priority order; the first match wins. Every rule is
"hours since the last relevant activity exceeds a threshold".
"""

from dataclasses import dataclass
from datetime import datetime

from leadsync.models.domain.lead_domain import Lead
from leadsync.models.domain.notification_domain import NotificationPriority
from leadsync.pipeline.activity import LeadActivity, hours_since

CALL_NOW = "CALL_NOW"
SEND_WHATSAPP = "SEND_WHATSAPP"
SEND_EMAIL = "SEND_EMAIL"
SEND_FOLLOW_UP = "SEND_FOLLOW_UP"
PUSH_NEGOTIATION = "PUSH_NEGOTIATION"
ASSIGN_OWNER = "ASSIGN_OWNER"
CHECK_INTEREST = "CHECK_INTEREST"

ACTION_LABELS = {
    CALL_NOW: "Call the lead now",
    SEND_WHATSAPP: "Send a WhatsApp follow-up",
    SEND_EMAIL: "Send an email follow-up",
    SEND_FOLLOW_UP: "Send a follow-up message",
    PUSH_NEGOTIATION: "Push negotiation forward",
    ASSIGN_OWNER: "Assign an owner",
    CHECK_INTEREST: "Light touch base",
}

HIGH_SCORE = 70
MODERATE_SCORE = 40
LOW_SCORE = 20


@dataclass(frozen=True, slots=True)
class NextAction:
    action: str
    label: str
    priority: NotificationPriority
    reason: str

    @property
    def is_actionable(self) -> bool:
        return self.action != CHECK_INTEREST


def _action(action: str, priority: NotificationPriority, reason: str) -> NextAction:
    return NextAction(action, ACTION_LABELS[action], priority, reason)


def _over(hours: float | None, threshold: float) -> bool:
    """Missing activity counts as overdue."""
    return hours is None or hours > threshold


def next_action(
    lead: Lead,
    score: float,
    activity: LeadActivity,
    now: datetime,
    created_at: datetime | None = None,
) -> NextAction:
    """
    Recommend the next step for a lead.

    Args:
        lead: The lead
        score: Its urgency score
        activity: Parsed remark activity
        now: Evaluation instant (aware)
        created_at: Parsed creation time, the fallback for "untouched since"
    """
    status = lead.canonical_status
    lowered = status.lower()
    high, normal, low = (
        NotificationPriority.HIGH,
        NotificationPriority.NORMAL,
        NotificationPriority.LOW,
    )

    if lead.is_closed():
        return _action(CHECK_INTEREST, low, "Lead is closed.")

    h_call = hours_since(activity.last_call_at, now)
    h_whatsapp = hours_since(activity.last_whatsapp_at, now)
    h_email = hours_since(activity.last_email_at, now)
    h_status = hours_since(activity.last_status_change_at, now)
    h_idle = hours_since(activity.last_activity_at or created_at, now)

    if status == "Hot Leads" and _over(h_call, 6):
        return _action(CALL_NOW, high, "Hot lead with no call in the last 6h.")

    if status == "Negotiations" and h_status is not None and h_status > 8:
        return _action(PUSH_NEGOTIATION, high, "No status change in over 8h while negotiating.")

    if lowered.startswith("proposal"):
        if h_idle is not None and h_idle > 48:
            return _action(CALL_NOW, high, "Proposal shared with no reply for over 48h.")
        if h_idle is not None and h_idle > 12:
            return _action(
                SEND_FOLLOW_UP,
                high if score >= HIGH_SCORE else normal,
                "Proposal shared; follow up after 12h.",
            )

    if lead.is_unassigned() and h_idle is not None and h_idle > 2:
        return _action(ASSIGN_OWNER, high, "Unassigned lead untouched for over 2h.")

    if status == "Hot Leads" and _over(h_whatsapp, 12):
        return _action(SEND_WHATSAPP, normal, "WhatsApp follow-up pending for hot lead.")

    if status == "Negotiations" and h_email is not None and h_email > 24:
        return _action(SEND_EMAIL, normal, "Email follow-up pending in negotiations for over 24h.")

    if lowered.startswith("follow-up calls") and _over(h_call, 24):
        return _action(
            CALL_NOW,
            high if score >= HIGH_SCORE else normal,
            "Follow-up status with no call in the last 24h.",
        )

    if status == "Whatsapp Sent" and _over(h_whatsapp, 18) and _over(h_call, 18):
        return _action(SEND_WHATSAPP, normal, "WhatsApp sent over 18h ago; ping again or call.")

    if status == "Unfollowed" and _over(h_call, 2):
        return _action(CALL_NOW, high, "Unfollowed with no call in the last 2h.")

    if score >= HIGH_SCORE:
        return _action(CALL_NOW, high, "High urgency score; immediate call recommended.")
    if score >= MODERATE_SCORE:
        return _action(SEND_WHATSAPP, normal, "Moderate urgency; send a WhatsApp follow-up.")
    if score >= LOW_SCORE:
        return _action(SEND_EMAIL, low, "Low urgency; send a brief check-in email.")

    return _action(CHECK_INTEREST, low, "Very low urgency; optional nudge.")
