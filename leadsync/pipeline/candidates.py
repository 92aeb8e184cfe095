"""
Notification candidates from one sync cycle.

Combines the snapshot diff (transitions) with the urgency pass (actions)
into a single candidate list. Both halves may fire for the same lead; they
carry different actions, and dedup in the dispatcher keeps each
(recipient, lead, action) to one delivery per window.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from leadsync.models.domain.lead_domain import Lead, Snapshot, normalize_person
from leadsync.models.domain.notification_domain import (
    DeepLink,
    Notification,
    NotificationCategory,
    NotificationPriority,
)
from leadsync.models.domain.session_domain import SessionUser
from leadsync.pipeline.activity import LeadActivity, parse_created_at
from leadsync.pipeline.diff import LeadDiff
from leadsync.pipeline.next_action import NextAction, next_action
from leadsync.pipeline.scoring import UrgencyScorer

NEW_LEAD_ACTION = "NEW_LEAD"
NEW_LEADS_SUMMARY_ACTION = "NEW_LEADS_SUMMARY"
REASSIGNED_ACTION = "REASSIGNED"
BOOKED_ACTION = "BOOKED"


@dataclass(frozen=True, slots=True)
class ScoredLead:
    lead: Lead
    activity: LeadActivity
    score: float
    next_action: NextAction


def score_snapshot(snapshot: Snapshot, scorer: UrgencyScorer, now: datetime) -> list[ScoredLead]:
    """Score and recommend an action for every lead, in snapshot order."""
    scored = []
    for lead in snapshot.records:
        activity = scorer.activity(lead)
        score = scorer.score(lead, now, activity)
        action = next_action(
            lead, score, activity, now, created_at=parse_created_at(lead.created_at, scorer.tz)
        )
        scored.append(ScoredLead(lead, activity, score, action))
    return scored


def _lead_link(lead: Lead) -> DeepLink:
    return DeepLink(route="/leads", entity_ref=lead.identity.key)


def _new_lead_candidates(
    leads: list[Lead], recipient: str, now: datetime, captured_at: datetime, threshold: int
) -> list[Notification]:
    if not leads:
        return []

    if len(leads) > threshold:
        names = ", ".join(lead.traveller_name for lead in leads[:threshold])
        more = len(leads) - threshold
        return [
            Notification.build(
                recipient=recipient,
                source_entity=f"batch:{captured_at.isoformat()}",
                action=NEW_LEADS_SUMMARY_ACTION,
                title=f"{len(leads)} New Leads",
                body=f"New trips for {names} and {more} more.",
                category=NotificationCategory.NEW_LEAD,
                priority=NotificationPriority.NORMAL,
                created_at=now,
                deep_link=DeepLink(route="/leads"),
            )
        ]

    return [
        Notification.build(
            recipient=recipient,
            source_entity=lead.identity.key,
            action=NEW_LEAD_ACTION,
            title="New Lead",
            body=f"New trip for {lead.traveller_name}"
            + (f" to {lead.destination}." if lead.destination else "."),
            category=NotificationCategory.NEW_LEAD,
            priority=NotificationPriority.NORMAL,
            created_at=now,
            deep_link=_lead_link(lead),
        )
        for lead in leads
    ]


def _in_scope(lead: Lead, recipient: SessionUser) -> bool:
    if lead.is_unassigned():
        return recipient.is_admin()
    owners = {normalize_person(name) for name in (recipient.identity, *recipient.owner_aliases())}
    return lead.normalized_owner in owners


def build_candidates(
    diff: LeadDiff,
    scored: list[ScoredLead],
    recipient: SessionUser,
    now: datetime,
    captured_at: datetime,
    summary_threshold: int = 3,
    is_snoozed: Callable[[str], bool] | None = None,
) -> list[Notification]:
    """
    Candidates for one recipient, transitions first.

    Snoozed leads are left out of the new-lead summary so it does not name
    them; per-lead candidates are filtered by the dispatcher instead.
    """
    candidates: list[Notification] = []

    fresh = [
        lead
        for lead in diff.new_records
        if is_snoozed is None or not is_snoozed(lead.identity.key)
    ]
    candidates.extend(
        _new_lead_candidates(fresh, recipient.identity, now, captured_at, summary_threshold)
    )

    for lead in diff.reassigned_to_recipient:
        candidates.append(
            Notification.build(
                recipient=recipient.identity,
                source_entity=lead.identity.key,
                action=REASSIGNED_ACTION,
                title="New Trip Assigned to You",
                body=f'The trip for "{lead.traveller_name}" has been assigned to you.',
                category=NotificationCategory.REASSIGNED,
                priority=NotificationPriority.HIGH,
                created_at=now,
                deep_link=_lead_link(lead),
            )
        )

    for lead in diff.newly_booked:
        candidates.append(
            Notification.build(
                recipient=recipient.identity,
                source_entity=lead.identity.key,
                action=BOOKED_ACTION,
                title="Trip Booked",
                body=f'The trip for "{lead.traveller_name}" is now {lead.canonical_status}.',
                category=NotificationCategory.BOOKED,
                priority=NotificationPriority.NORMAL,
                created_at=now,
                deep_link=_lead_link(lead),
            )
        )

    for item in scored:
        action = item.next_action
        if not action.is_actionable or not item.lead.identity.key:
            continue
        if not _in_scope(item.lead, recipient):
            continue
        is_high = action.priority == NotificationPriority.HIGH
        candidates.append(
            Notification.build(
                recipient=recipient.identity,
                source_entity=item.lead.identity.key,
                action=action.action,
                title=f"{action.label}: {item.lead.traveller_name}",
                body=action.reason,
                category=(
                    NotificationCategory.HEADS_UP if is_high else NotificationCategory.FOLLOW_UP
                ),
                priority=action.priority,
                created_at=now,
                deep_link=_lead_link(item.lead),
            )
        )

    return candidates
