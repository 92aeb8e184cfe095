"""
Urgency scoring: how badly a lead needs attention right now.

score = status weight + time decay (capped) + behaviour signals (clamped),
clamped to [0, 100].
"""

from dataclasses import dataclass
from datetime import datetime, tzinfo

from leadsync.models.domain.lead_domain import Lead
from leadsync.pipeline.activity import (
    LeadActivity,
    hours_since,
    parse_activity,
    parse_created_at,
)

STATUS_WEIGHTS: dict[str, float] = {
    "Hot Leads": 40,
    "Negotiations": 30,
    "Proposal 3 Shared": 25,
    "Proposal 2 Shared": 22,
    "Proposal 1 Shared": 20,
    "Working on it": 15,
    "Follow-up Calls - 5": 14,
    "Follow-up Calls - 4": 13,
    "Follow-up Calls - 3": 12,
    "Follow-up Calls - 2": 11,
    "Follow-up Calls - 1": 10,
    "Follow-up Calls": 10,
    "Whatsapp Sent": 8,
    "Unfollowed": 5,
    "Pamplets Shared": 3,
    "Booked With Us": -100,
    "Cancellations": -50,
    "Postponed": -30,
    "Booked Outside": -50,
}

POSITIVE_KEYWORDS = ("interested", "very keen", "serious", "will confirm", "finalizing", "almost done")
PRICE_KEYWORDS = ("price", "budget", "too expensive", "costly")
NON_RESPONSE_KEYWORDS = ("not picking up", "no response", "didn't answer", "didnt answer")
NEGATIVE_KEYWORDS = ("not interested", "no longer interested", "stop calling", "do not call")

# (upper bound in hours, points); anything older scores the final value
TIME_BUCKETS = ((6, 0), (12, 3), (24, 6), (48, 10), (72, 15))
STALE_CHANNEL_POINTS = 20
NO_ACTIVITY_POINTS = 10
TIME_DECAY_CAP = 30

AGE_BOOST_HOURS = 24 * 7
AGE_BOOST_POINTS = 15
BEHAVIOUR_MIN = -40
BEHAVIOUR_MAX = 25


def time_contribution(hours: float | None) -> float:
    if hours is None:
        return 0
    for bound, points in TIME_BUCKETS:
        if hours < bound:
            return points
    return STALE_CHANNEL_POINTS


def behaviour_points(remarks: str | None) -> float:
    text = (remarks or "").lower()
    points = 0
    if any(k in text for k in POSITIVE_KEYWORDS):
        points += 15
    if any(k in text for k in PRICE_KEYWORDS):
        points += 10
    if any(k in text for k in NON_RESPONSE_KEYWORDS):
        points += 5
    if any(k in text for k in NEGATIVE_KEYWORDS):
        points -= 40
    return points


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    status_weight: float
    time_decay: float
    behaviour: float
    total: float


class UrgencyScorer:
    """Scores leads against a fixed wall-clock timezone."""

    def __init__(self, tz: tzinfo):
        self.tz = tz

    def activity(self, lead: Lead) -> LeadActivity:
        return parse_activity(lead.remarks, self.tz)

    def breakdown(self, lead: Lead, now: datetime, activity: LeadActivity | None = None) -> ScoreBreakdown:
        activity = activity or self.activity(lead)
        status_weight = STATUS_WEIGHTS.get(lead.canonical_status, 0)

        time_decay = sum(time_contribution(hours_since(stamp, now)) for stamp in activity.channels)
        if not activity.has_any():
            time_decay += NO_ACTIVITY_POINTS
        time_decay = min(time_decay, TIME_DECAY_CAP)

        behaviour = behaviour_points(lead.remarks)
        if not lead.is_closed():
            age_hours = hours_since(parse_created_at(lead.created_at, self.tz), now)
            if age_hours is not None and age_hours > AGE_BOOST_HOURS:
                behaviour += AGE_BOOST_POINTS
        behaviour = max(BEHAVIOUR_MIN, min(behaviour, BEHAVIOUR_MAX))

        total = max(0.0, min(float(status_weight + time_decay + behaviour), 100.0))
        return ScoreBreakdown(status_weight, time_decay, behaviour, total)

    def score(self, lead: Lead, now: datetime, activity: LeadActivity | None = None) -> float:
        """Urgency in [0, 100]; pure in (lead, now)."""
        return self.breakdown(lead, now, activity).total
