from datetime import UTC, datetime, timedelta

from leadsync.models.domain.notification_domain import NotificationPriority
from leadsync.pipeline import next_action as rules
from leadsync.pipeline.activity import parse_activity
from tests.conftest import make_lead

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _recommend(score=0, remarks="", created_at=None, **lead_fields):
    lead = make_lead(remarks=remarks, **lead_fields)
    return rules.next_action(lead, score, parse_activity(remarks, UTC), NOW, created_at=created_at)


def test_closed_lead_only_gets_light_touch():
    result = _recommend(score=90, status="Booked With Us")

    assert result.action == rules.CHECK_INTEREST
    assert not result.is_actionable


def test_hot_lead_without_recent_call():
    result = _recommend(status="Hot Leads", remarks="Last Call: 2026-03-10 04:00")

    assert result.action == rules.CALL_NOW
    assert result.priority == NotificationPriority.HIGH


def test_hot_lead_called_recently_gets_whatsapp():
    result = _recommend(status="Hot Leads", remarks="Last Call: 2026-03-10 10:00")

    assert result.action == rules.SEND_WHATSAPP
    assert result.priority == NotificationPriority.NORMAL


def test_stalled_negotiation():
    result = _recommend(status="Negotiations", remarks="Last Status: 2026-03-10 02:00")

    assert result.action == rules.PUSH_NEGOTIATION


def test_proposal_idle_two_days_escalates_to_call():
    result = _recommend(status="Proposal 1 Shared", remarks="Last Status: 2026-03-08 10:00")

    assert result.action == rules.CALL_NOW
    assert result.priority == NotificationPriority.HIGH


def test_proposal_idle_half_day_gets_follow_up():
    result = _recommend(score=30, status="Proposal 2 Shared", remarks="Last Email: 2026-03-09 16:00")

    assert result.action == rules.SEND_FOLLOW_UP
    assert result.priority == NotificationPriority.NORMAL


def test_unassigned_lead_falls_back_to_creation_time():
    result = _recommend(
        owner="", status="Working on it", created_at=NOW - timedelta(hours=3)
    )

    assert result.action == rules.ASSIGN_OWNER


def test_unfollowed_without_call():
    result = _recommend(status="Unfollowed")

    assert result.action == rules.CALL_NOW
    assert result.priority == NotificationPriority.HIGH


def test_score_fallbacks():
    recent = "Last Call: 2026-03-10 11:00"

    assert _recommend(score=75, status="Working on it", remarks=recent).action == rules.CALL_NOW
    assert _recommend(score=45, status="Working on it", remarks=recent).action == rules.SEND_WHATSAPP
    low = _recommend(score=25, status="Working on it", remarks=recent)
    assert low.action == rules.SEND_EMAIL
    assert low.priority == NotificationPriority.LOW
    assert _recommend(score=5, status="Working on it", remarks=recent).action == rules.CHECK_INTEREST
