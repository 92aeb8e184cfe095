from datetime import UTC, datetime

import pytest

from leadsync.models.domain.lead_domain import Snapshot
from leadsync.services.lead_cache import CURRENT_KEY, LeadCache
from tests.conftest import FakeStore, make_lead

CAPTURED = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_current_snapshot_survives_reload():
    store = FakeStore()
    snapshot = Snapshot(records=(make_lead(row_address=2),), captured_at=CAPTURED)

    await LeadCache(store).write_current(snapshot)
    loaded = await LeadCache(store).read_current()

    assert loaded == snapshot
    assert loaded.records[0].row_address == 2


@pytest.mark.asyncio
async def test_baselines_are_kept_per_recipient():
    cache = LeadCache(FakeStore())
    mine = Snapshot(records=(make_lead(),), captured_at=CAPTURED)

    await cache.write_baseline("Priya@Agency.test ", mine)

    assert await cache.read_baseline("priya@agency.test") == mine
    assert await cache.read_baseline("boss@agency.test") is None


@pytest.mark.asyncio
async def test_unreadable_cache_is_treated_as_empty():
    store = FakeStore()
    store.store[CURRENT_KEY] = '{"records": [{"pax": "lots"}]}'

    assert await LeadCache(store).read_current() is None


@pytest.mark.asyncio
async def test_clear_removes_current_and_baseline():
    store = FakeStore()
    cache = LeadCache(store)
    snapshot = Snapshot(records=(make_lead(),), captured_at=CAPTURED)
    await cache.write_current(snapshot)
    await cache.write_baseline("priya@agency.test", snapshot)

    await cache.clear("priya@agency.test")

    assert await cache.read_current() is None
    assert await cache.read_baseline("priya@agency.test") is None
