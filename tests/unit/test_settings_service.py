from datetime import timedelta

import pytest

from leadsync.models.domain.notification_domain import NotificationCategory

ME = "priya@agency.test"


@pytest.mark.asyncio
async def test_defaults_enable_every_category(container):
    prefs = await container.settings_service.get(ME)

    assert all(prefs.is_category_enabled(category) for category in NotificationCategory)
    assert prefs.dnd_enabled is False


@pytest.mark.asyncio
async def test_partial_update_merges_category_flags(container):
    service = container.settings_service
    await service.set_category_enabled(ME, NotificationCategory.BOOKED, False)

    updated = await service.update(ME, {"category_enabled": {"new_lead": False}, "dnd_enabled": True})

    assert not updated.is_category_enabled(NotificationCategory.BOOKED)
    assert not updated.is_category_enabled(NotificationCategory.NEW_LEAD)
    assert updated.is_category_enabled(NotificationCategory.REASSIGNED)
    assert (await service.get(" PRIYA@agency.test")).dnd_enabled is True


@pytest.mark.asyncio
async def test_unknown_or_invalid_fields_are_rejected(container):
    with pytest.raises(ValueError):
        await container.settings_service.update(ME, {"volume": 11})
    with pytest.raises(ValueError):
        await container.settings_service.update(ME, {"dnd_start_hour": 24})


@pytest.mark.asyncio
async def test_expired_snoozes_are_pruned_on_read(container, clock):
    service = container.settings_service
    await service.snooze_record(ME, "lead-a", clock() + timedelta(hours=1))
    await service.snooze_record(ME, "lead-b", clock() + timedelta(days=1))

    clock.advance(hours=2)
    prefs = await service.get(ME)

    assert list(prefs.snoozed_record_ids) == ["lead-b"]


@pytest.mark.asyncio
async def test_unsnooze(container, clock):
    service = container.settings_service
    await service.snooze_record(ME, "lead-a", clock() + timedelta(hours=1))

    prefs = await service.unsnooze_record(ME, "lead-a")

    assert prefs.snoozed_record_ids == {}
