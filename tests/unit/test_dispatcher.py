from datetime import UTC, datetime, timedelta

import pytest

from leadsync.models.domain.notification_domain import (
    Notification,
    NotificationCategory,
    NotificationKey,
    NotificationPriority,
    NotificationSettings,
)
from leadsync.services.notifications.dispatcher import DIGEST_ACTION, DispatchOutcome
from tests.conftest import make_lead

ME = "priya@agency.test"


def _candidate(clock, action="CALL_NOW", priority=NotificationPriority.HIGH, entity="2026-03-01|asha rao",
               category=NotificationCategory.HEADS_UP):
    return Notification.build(
        recipient=ME,
        source_entity=entity,
        action=action,
        title="Call the lead now: Asha Rao",
        body="Hot lead with no call in the last 6h.",
        category=category,
        priority=priority,
        created_at=clock(),
    )


@pytest.mark.asyncio
async def test_same_key_delivered_once_per_window(container, clock, sink):
    dispatcher = container.dispatcher

    first = await dispatcher.dispatch([_candidate(clock)])
    clock.advance(hours=3, minutes=59)
    second = await dispatcher.dispatch([_candidate(clock)])
    clock.advance(minutes=2)
    third = await dispatcher.dispatch([_candidate(clock)])

    assert first.count(DispatchOutcome.DELIVERED) == 1
    assert second.count(DispatchOutcome.DUPLICATE) == 1
    assert third.count(DispatchOutcome.DELIVERED) == 1
    assert len(sink.presented) == 2


@pytest.mark.asyncio
async def test_different_action_same_lead_is_not_duplicate(container, clock):
    report = await container.dispatcher.dispatch(
        [_candidate(clock), _candidate(clock, action="REASSIGNED")]
    )

    assert report.count(DispatchOutcome.DELIVERED) == 2


@pytest.mark.asyncio
async def test_disabled_category_is_dropped(container, clock, sink):
    await container.settings_service.set_category_enabled(ME, NotificationCategory.HEADS_UP, False)

    report = await container.dispatcher.dispatch([_candidate(clock)])

    assert report.count(DispatchOutcome.CATEGORY_DISABLED) == 1
    assert sink.presented == []


@pytest.mark.asyncio
async def test_snoozed_lead_is_dropped_until_expiry(container, clock):
    await container.settings_service.snooze_record(ME, "2026-03-01|asha rao", clock() + timedelta(hours=2))

    blocked = await container.dispatcher.dispatch([_candidate(clock)])
    clock.advance(hours=2, minutes=1)
    allowed = await container.dispatcher.dispatch([_candidate(clock)])

    assert blocked.count(DispatchOutcome.RECORD_SNOOZED) == 1
    assert allowed.count(DispatchOutcome.DELIVERED) == 1


@pytest.mark.asyncio
async def test_low_priority_during_dnd_is_digested_without_badge(container, clock, sink):
    await container.settings_service.update(
        ME, {"dnd_enabled": True, "dnd_start_hour": 22, "dnd_end_hour": 7, "digest_low_priority": True}
    )
    clock.now = datetime(2026, 3, 10, 23, 0, tzinfo=UTC)

    report = await container.dispatcher.dispatch(
        [_candidate(clock, action="SEND_EMAIL", priority=NotificationPriority.LOW,
                    category=NotificationCategory.FOLLOW_UP)]
    )

    assert report.count(DispatchOutcome.DIGESTED) == 1
    assert sink.presented == []
    assert sink.badges == []
    assert await container.delivery_log.inbox(ME) == []

    # still inside the window, nothing released
    clock.now = datetime(2026, 3, 11, 3, 0, tzinfo=UTC)
    assert await container.dispatcher.flush_digest(ME) == 0

    clock.now = datetime(2026, 3, 11, 7, 30, tzinfo=UTC)
    assert await container.dispatcher.flush_digest(ME) == 1
    [summary] = sink.presented
    assert summary.action == DIGEST_ACTION
    [held] = await container.delivery_log.inbox(ME)
    assert held.action == "SEND_EMAIL"
    assert sink.badges[-1] == (1, ME)


@pytest.mark.asyncio
async def test_low_priority_during_dnd_without_digest_is_dropped(container, clock):
    await container.settings_service.update(ME, {"dnd_enabled": True, "dnd_start_hour": 22, "dnd_end_hour": 7})
    clock.now = datetime(2026, 3, 10, 23, 0, tzinfo=UTC)

    report = await container.dispatcher.dispatch(
        [
            _candidate(clock, action="SEND_EMAIL", priority=NotificationPriority.LOW),
            _candidate(clock, action="REASSIGNED", priority=NotificationPriority.HIGH),
        ]
    )

    assert report.count(DispatchOutcome.DND_DROPPED) == 1
    assert report.count(DispatchOutcome.DELIVERED) == 1


def test_dnd_window_wraps_midnight():
    prefs = NotificationSettings(dnd_enabled=True, dnd_start_hour=22, dnd_end_hour=7)
    day = NotificationSettings(dnd_enabled=True, dnd_start_hour=9, dnd_end_hour=17)

    assert prefs.in_dnd(datetime(2026, 3, 10, 23, 0))
    assert prefs.in_dnd(datetime(2026, 3, 10, 6, 59))
    assert not prefs.in_dnd(datetime(2026, 3, 10, 7, 0))
    assert not prefs.in_dnd(datetime(2026, 3, 10, 12, 0))
    assert day.in_dnd(datetime(2026, 3, 10, 10, 0))
    assert not day.in_dnd(datetime(2026, 3, 10, 22, 0))
    assert not NotificationSettings(dnd_enabled=False).in_dnd(datetime(2026, 3, 10, 23, 0))


@pytest.mark.asyncio
async def test_snooze_recreates_after_dedup_window(container, clock, sink):
    dispatcher = container.dispatcher
    report = await dispatcher.dispatch([_candidate(clock)])
    [delivered] = report.delivered

    recreated = await dispatcher.snooze(ME, delivered.id, clock() + timedelta(hours=1))

    [inbox_item] = await container.delivery_log.inbox(ME)
    assert inbox_item.read is True
    assert inbox_item.snoozed_until == clock() + timedelta(hours=1)
    assert recreated.id != delivered.id
    assert sink.badges[-1] == (0, ME)

    # due, but the original delivery is still inside the 4h window
    clock.advance(hours=1)
    released = await dispatcher.release_due(ME)
    assert released.delivered == []
    [deferred] = await dispatcher.scheduled(ME)
    assert deferred.scheduled_at == delivered.created_at + timedelta(hours=4)

    clock.advance(hours=3)
    released = await dispatcher.release_due(ME)
    assert len(released.delivered) == 1
    assert await dispatcher.scheduled(ME) == []
    assert await dispatcher.unread_count(ME) == 1


@pytest.mark.asyncio
async def test_reminder_released_when_due(container, clock, sink):
    lead = make_lead()
    reminder = await container.dispatcher.schedule_reminder(
        ME, lead, clock() + timedelta(hours=2), "Call Asha", "Check on the proposal"
    )

    assert (await container.dispatcher.release_due(ME)).delivered == []
    clock.advance(hours=2)
    released = await container.dispatcher.release_due(ME)

    assert [n.id for n in released.delivered] == [reminder.id]
    assert sink.presented[-1].title == "Call Asha"


@pytest.mark.asyncio
async def test_mark_all_read_clears_badge(container, clock, sink):
    await container.dispatcher.dispatch([_candidate(clock), _candidate(clock, action="BOOKED")])
    assert sink.badges[-1] == (2, ME)

    assert await container.dispatcher.mark_all_read(ME) == 2
    assert sink.badges[-1] == (0, ME)


@pytest.mark.asyncio
async def test_repeated_syncs_during_dnd_hold_one_digest_item_per_key(container, clock, sink):
    await container.settings_service.update(
        ME, {"dnd_enabled": True, "dnd_start_hour": 22, "dnd_end_hour": 7, "digest_low_priority": True}
    )
    clock.now = datetime(2026, 3, 10, 23, 0, tzinfo=UTC)

    for _ in range(12):
        report = await container.dispatcher.dispatch(
            [_candidate(clock, action="SEND_EMAIL", priority=NotificationPriority.LOW,
                        category=NotificationCategory.FOLLOW_UP)]
        )
        assert report.count(DispatchOutcome.DIGESTED) == 1
        clock.advance(minutes=5)

    [held] = await container.dispatcher.digest_bucket.items(ME)
    assert held.created_at == datetime(2026, 3, 10, 23, 55, tzinfo=UTC)

    clock.now = datetime(2026, 3, 11, 7, 30, tzinfo=UTC)
    assert await container.dispatcher.flush_digest(ME) == 1
    assert len(await container.delivery_log.inbox(ME)) == 1


@pytest.mark.asyncio
async def test_ledger_keys_with_separator_in_source_entity(container, clock):
    ledger = container.delivery_log
    key = NotificationKey.build(ME, "2026-03-01|asha rao", "CALL_NOW")
    other = NotificationKey.build(ME, "2026-03-01|asha rao", "SEND_EMAIL")

    await ledger.record_delivery(key, clock(), timedelta(hours=4))

    assert key.storage_key() == "priya@agency.test|2026-03-01|asha rao|CALL_NOW"
    assert await ledger.last_delivered(key) == clock()
    assert await ledger.last_delivered(other) is None
