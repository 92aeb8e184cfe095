import asyncio

import pytest

from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.services.notifications.dispatcher import DispatchOutcome
from leadsync.services.sheets.errors import RemoteNetworkError
from tests.conftest import make_lead

ME = "priya@agency.test"


@pytest.mark.asyncio
async def test_first_sync_seeds_baseline_without_notifications(signed_in, fake_remote, sink):
    fake_remote._insert(make_lead(status="Hot Leads"))

    outcome = await signed_in.sync.sync()

    assert outcome.status == "success"
    assert outcome.record_count == 1
    assert outcome.diff.is_empty()
    assert sink.presented == []
    assert await signed_in.cache.read_baseline("priya@agency.test") is not None
    state = signed_in.sync.state
    assert state.loading is False
    assert state.error is None
    assert state.served_from_cache is False


@pytest.mark.asyncio
async def test_signed_out_sync_reports_auth_error(container):
    outcome = await container.sync.sync()

    assert outcome.status == "failed"
    assert outcome.error.kind == "auth"
    assert outcome.error.recoverable is False


@pytest.mark.asyncio
async def test_fetch_failure_keeps_cached_records(signed_in, fake_remote):
    fake_remote._insert(make_lead())
    await signed_in.sync.sync()

    fake_remote.errors.append(RemoteNetworkError("timeout"))
    outcome = await signed_in.sync.sync(force_visible_loading=True)

    assert outcome.status == "failed"
    state = signed_in.sync.state
    assert state.error.kind == "network"
    assert state.error.recoverable is True
    assert len(state.records) == 1
    assert state.served_from_cache is True
    assert state.loading is False


@pytest.mark.asyncio
async def test_fetch_timeout_is_a_network_error(signed_in, fake_remote):
    signed_in.sync.config = signed_in.config.model_copy(update={"SYNC_FETCH_TIMEOUT_SECONDS": 0.01})

    async def hang(force_refresh=False):
        await asyncio.Event().wait()

    fake_remote.fetch_all = hang

    outcome = await signed_in.sync.sync()

    assert outcome.error.kind == "network"


@pytest.mark.asyncio
async def test_new_sync_supersedes_one_in_flight(signed_in, fake_remote):
    fake_remote._insert(make_lead())
    gate = asyncio.Event()
    original = fake_remote.fetch_all
    calls = []

    async def fetch(force_refresh=False):
        calls.append(force_refresh)
        if len(calls) == 1:
            await gate.wait()
        return await original(force_refresh)

    fake_remote.fetch_all = fetch

    first = asyncio.create_task(signed_in.sync.sync())
    for _ in range(5):
        await asyncio.sleep(0)
    assert signed_in.sync.is_syncing

    second = await signed_in.sync.sync()
    gate.set()
    first_outcome = await first

    assert first_outcome.status == "cancelled"
    assert second.status == "success"
    assert len(signed_in.sync.state.records) == 1


@pytest.mark.asyncio
async def test_listeners_see_loading_then_result(signed_in, fake_remote):
    fake_remote._insert(make_lead())
    states = []
    unsubscribe = signed_in.sync.subscribe(states.append)

    await signed_in.sync.sync()
    unsubscribe()

    assert states[0].loading is False
    assert any(state.loading for state in states)
    assert states[-1].loading is False
    assert len(states[-1].records) == 1


def _hold_first_call(obj, name: str) -> tuple[asyncio.Event, asyncio.Event]:
    """Make the first call of obj.<name> wait on a gate; later calls pass through."""
    entered, gate = asyncio.Event(), asyncio.Event()
    original = getattr(obj, name)

    async def held(*args, **kwargs):
        if not entered.is_set():
            entered.set()
            await gate.wait()
        return await original(*args, **kwargs)

    setattr(obj, name, held)
    return entered, gate


async def _drain():
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_sync_superseded_during_cache_write_does_not_advance_baseline(
    signed_in, fake_remote, sink
):
    fake_remote._insert(make_lead(owner="Priya"))
    await signed_in.sync.sync()
    fake_remote._insert(make_lead(traveller_name="Ravi Kumar", created_at="2026-03-10 11:30"))
    entered, gate = _hold_first_call(signed_in.cache, "write_current")

    first = asyncio.create_task(signed_in.sync.sync())
    await entered.wait()
    assert len((await signed_in.cache.read_baseline(ME)).records) == 1

    second = await signed_in.sync.sync()
    gate.set()
    first_outcome = await first
    await _drain()

    assert first_outcome.status == "cancelled"
    assert [lead.traveller_name for lead in second.diff.new_records] == ["Ravi Kumar"]
    assert [n.action for n in sink.presented].count("NEW_LEAD") == 1
    assert len((await signed_in.cache.read_baseline(ME)).records) == 2
    assert len((await signed_in.cache.read_current()).records) == 2


@pytest.mark.asyncio
async def test_sync_superseded_after_dispatch_notifies_exactly_once(signed_in, fake_remote, sink):
    fake_remote._insert(make_lead(owner="Priya"))
    await signed_in.sync.sync()
    fake_remote._insert(make_lead(traveller_name="Ravi Kumar", created_at="2026-03-10 11:30"))
    entered, gate = _hold_first_call(signed_in.cache, "write_baseline")

    first = asyncio.create_task(signed_in.sync.sync())
    await entered.wait()
    second = await signed_in.sync.sync()
    gate.set()
    first_outcome = await first
    await _drain()

    assert first_outcome.status == "cancelled"
    assert second.report.count(DispatchOutcome.DUPLICATE) >= 1
    assert [n.action for n in sink.presented].count("NEW_LEAD") == 1
    assert len((await signed_in.cache.read_baseline(ME)).records) == 2


@pytest.mark.asyncio
async def test_settings_store_failure_resolves_to_storage_error(signed_in, fake_remote, sink, monkeypatch):
    fake_remote._insert(make_lead(owner="Priya"))
    await signed_in.sync.sync()
    fake_remote._insert(make_lead(traveller_name="Ravi Kumar", created_at="2026-03-10 11:30"))

    async def broken_get(recipient):
        raise StoreError("redis down", operation="get")

    monkeypatch.setattr(signed_in.settings_service, "get", broken_get)
    outcome = await signed_in.sync.sync()

    assert outcome.status == "failed"
    assert outcome.error.kind == "storage"
    state = signed_in.sync.state
    assert state.error.kind == "storage"
    assert len(state.records) == 2
    assert state.loading is False
    assert len((await signed_in.cache.read_baseline(ME)).records) == 1

    monkeypatch.undo()
    retried = await signed_in.sync.sync()

    assert [lead.traveller_name for lead in retried.diff.new_records] == ["Ravi Kumar"]
    assert "NEW_LEAD" in [n.action for n in sink.presented]
