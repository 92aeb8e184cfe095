from datetime import UTC, datetime

from leadsync.pipeline.activity import hours_since, parse_activity, resolve_timezone


def test_parses_each_marker_in_configured_timezone():
    tz = resolve_timezone("Asia/Kolkata")
    remarks = "Called twice. Last Call: 2026-03-10 10:00, last whatsapp:2026-03-09 08:30"

    activity = parse_activity(remarks, tz)

    assert activity.last_call_at == datetime(2026, 3, 10, 10, 0, tzinfo=tz)
    assert activity.last_whatsapp_at == datetime(2026, 3, 9, 8, 30, tzinfo=tz)
    assert activity.last_email_at is None
    assert activity.last_activity_at == activity.last_call_at


def test_wa_shorthand_and_status_marker():
    activity = parse_activity("Last WA: 2026-03-01 09:15 | Last Status: 2026-03-02 18:00", UTC)

    assert activity.last_whatsapp_at == datetime(2026, 3, 1, 9, 15, tzinfo=UTC)
    assert activity.last_status_change_at == datetime(2026, 3, 2, 18, 0, tzinfo=UTC)


def test_no_markers():
    activity = parse_activity("customer asked for a quote", UTC)

    assert not activity.has_any()
    assert activity.last_activity_at is None


def test_invalid_marker_date_is_ignored():
    assert parse_activity("Last Call: 2026-13-45 10:00", UTC).last_call_at is None


def test_hours_since():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    assert hours_since(datetime(2026, 3, 10, 9, 0, tzinfo=UTC), now) == 3
    assert hours_since(None, now) is None
