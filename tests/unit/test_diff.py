from datetime import UTC, datetime

from leadsync.models.domain.lead_domain import Snapshot
from leadsync.pipeline.diff import diff_snapshots
from tests.conftest import make_lead

ME = "priya@agency.test"


def _snapshot(*leads):
    return Snapshot(records=tuple(leads), captured_at=datetime(2026, 3, 10, tzinfo=UTC))


def test_first_run_has_no_transitions():
    current = _snapshot(make_lead(), make_lead(traveller_name="Ravi"))

    assert diff_snapshots(None, current, ME).is_empty()
    assert diff_snapshots(_snapshot(), current, ME).is_empty()


def test_new_record_detected_by_identity():
    existing = make_lead()
    added = make_lead(traveller_name="Ravi Kumar", created_at="2026-03-09 10:00:00")

    diff = diff_snapshots(_snapshot(existing), _snapshot(existing, added), ME)

    assert [lead.traveller_name for lead in diff.new_records] == ["Ravi Kumar"]
    assert diff.reassigned_to_recipient == ()
    assert diff.newly_booked == ()


def test_row_move_is_not_a_new_record():
    lead = make_lead()
    moved = lead.model_copy(update={"row_address": 40})

    diff = diff_snapshots(_snapshot(lead.model_copy(update={"row_address": 2})), _snapshot(moved), ME)

    assert diff.is_empty()


def test_reassignment_to_alias_is_detected():
    before = make_lead(owner="someone@agency.test")
    after = make_lead(owner="  PRIYA ")

    diff = diff_snapshots(_snapshot(before), _snapshot(after), ME, aliases=("Priya",))

    assert len(diff.reassigned_to_recipient) == 1


def test_reassignment_between_my_aliases_is_ignored():
    before = make_lead(owner="Priya")
    after = make_lead(owner="priya@agency.test")

    diff = diff_snapshots(_snapshot(before), _snapshot(after), ME, aliases=("Priya",))

    assert diff.reassigned_to_recipient == ()


def test_booked_transition_fires_once():
    open_lead = make_lead(status="Working on it")
    booked = make_lead(status="booked outside")
    rebooked = make_lead(status="Booked With Us")

    first = diff_snapshots(_snapshot(open_lead), _snapshot(booked), ME)
    second = diff_snapshots(_snapshot(booked), _snapshot(rebooked), ME)

    assert len(first.newly_booked) == 1
    assert second.newly_booked == ()


def test_records_without_identity_are_skipped():
    anonymous = make_lead(traveller_name="   ")

    diff = diff_snapshots(_snapshot(make_lead()), _snapshot(make_lead(), anonymous), ME)

    assert diff.is_empty()


def test_diff_is_pure():
    previous = _snapshot(make_lead(owner="other"))
    current = _snapshot(make_lead(owner=ME, status="Booked With Us"))

    assert diff_snapshots(previous, current, ME) == diff_snapshots(previous, current, ME)
    assert previous.records[0].owner == "other"
