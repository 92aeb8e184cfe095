from datetime import UTC, datetime

import pytest

from leadsync.pipeline.scoring import UrgencyScorer
from tests.conftest import make_lead

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def scorer():
    return UrgencyScorer(UTC)


def test_recent_call_on_hot_lead_scores_status_only(scorer):
    lead = make_lead(status="Hot Leads", created_at="2026-03-09 12:00", remarks="Last Call: 2026-03-10 10:00")

    assert scorer.score(lead, NOW) == 40


def test_no_activity_adds_flat_points(scorer):
    lead = make_lead(status="Working on it", created_at="2026-03-10 09:00")

    breakdown = scorer.breakdown(lead, NOW)

    assert breakdown.time_decay == 10
    assert breakdown.total == 25


def test_time_decay_is_capped(scorer):
    remarks = (
        "Last Call: 2026-03-01 10:00, Last WA: 2026-03-01 10:00, "
        "Last Email: 2026-03-01 10:00, Last Status: 2026-03-01 10:00. very interested"
    )
    lead = make_lead(status="Hot Leads", created_at="2026-03-09 12:00", remarks=remarks)

    breakdown = scorer.breakdown(lead, NOW)

    assert breakdown.time_decay == 30
    assert breakdown.behaviour == 15
    assert breakdown.total == 85


def test_old_open_lead_gets_age_boost(scorer):
    lead = make_lead(status="working on it", created_at="2026-03-01 09:00")

    assert scorer.score(lead, NOW) == 40


def test_closed_lead_has_no_age_boost_and_clamps_to_zero(scorer):
    lead = make_lead(status="Booked With Us", created_at="2026-01-01 09:00")

    assert scorer.score(lead, NOW) == 0


def test_negative_remarks_pull_score_down(scorer):
    base = make_lead(status="Negotiations", created_at="2026-03-10 09:00")
    negative = make_lead(
        status="Negotiations", created_at="2026-03-10 09:00", remarks="Client not interested anymore"
    )

    assert scorer.score(negative, NOW) < scorer.score(base, NOW)


def test_score_is_pure(scorer):
    lead = make_lead(status="Hot Leads", remarks="price too expensive")

    assert scorer.score(lead, NOW) == scorer.score(lead, NOW)
    assert 0 <= scorer.score(lead, NOW) <= 100
