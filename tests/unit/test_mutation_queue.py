import asyncio

import pytest

from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.models.domain.lead_domain import LeadIdentity
from leadsync.models.domain.mutation_domain import QueuedMutation
from leadsync.services.mutation_queue import MutationQueue, MutationQueueError
from leadsync.services.sheets.errors import (
    RemoteAuthError,
    RemoteNetworkError,
)
from tests.conftest import FakeRemoteStore, make_lead

ASHA = LeadIdentity("2026-03-01 09:00:00", "Asha Rao")


def _update(status: str, identity: LeadIdentity = ASHA) -> QueuedMutation:
    return QueuedMutation.for_update(identity, {"status": status})


@pytest.mark.asyncio
async def test_queue_survives_restart(fake_store, clock):
    await MutationQueue(fake_store, clock).enqueue(_update("Hot Leads"))

    reopened = MutationQueue(fake_store, clock)

    assert [m.fields for m in await reopened.all()] == [{"status": "Hot Leads"}]


@pytest.mark.asyncio
async def test_enqueue_failure_is_raised(fake_store, clock, monkeypatch):
    async def broken_push(*args):
        raise StoreError("redis down", operation="push")

    monkeypatch.setattr(fake_store, "push_to_list", broken_push)

    with pytest.raises(MutationQueueError):
        await MutationQueue(fake_store, clock).enqueue(_update("Hot Leads"))


@pytest.mark.asyncio
async def test_flush_replays_in_order_and_empties_queue(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    queue = MutationQueue(fake_store, clock)
    await queue.enqueue(_update("Hot Leads"))
    await queue.enqueue(_update("Negotiations"))

    result = await queue.flush(remote)

    assert result.succeeded == 2
    assert result.remaining == 0
    assert [call[2] for call in remote.calls_named("update_by_identity")] == [
        {"status": "Hot Leads"},
        {"status": "Negotiations"},
    ]
    assert remote.leads[0].status == "Negotiations"


@pytest.mark.asyncio
async def test_permanent_failure_is_kept_and_later_items_continue(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    queue = MutationQueue(fake_store, clock)
    await queue.enqueue(_update("Hot Leads", LeadIdentity("2026-01-01", "Ghost")))
    await queue.enqueue(_update("Negotiations"))

    result = await queue.flush(remote)

    assert result.failed_permanently == 1
    assert result.succeeded == 1
    remaining = await queue.all()
    assert len(remaining) == 1
    assert remaining[0].status == "failed"
    assert remaining[0].attempts == 1

    again = await queue.flush(remote)
    assert again.attempted == 0
    assert len(await queue.all()) == 1


@pytest.mark.asyncio
async def test_transient_failure_stays_pending(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    remote.errors.append(RemoteNetworkError("timeout"))
    queue = MutationQueue(fake_store, clock)
    await queue.enqueue(_update("Hot Leads"))

    result = await queue.flush(remote)

    assert result.retry_later == 1
    [pending] = await queue.all()
    assert pending.status == "pending"
    assert pending.last_error == "timeout"


@pytest.mark.asyncio
async def test_auth_failure_stops_the_pass(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    remote.errors.append(RemoteAuthError("denied"))
    queue = MutationQueue(fake_store, clock)
    await queue.enqueue(_update("Hot Leads"))
    await queue.enqueue(_update("Negotiations"))

    result = await queue.flush(remote)

    assert result.aborted_reason == "auth"
    assert result.attempted == 1
    assert len(await queue.all()) == 2


@pytest.mark.asyncio
async def test_retried_append_is_not_duplicated(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    queue = MutationQueue(fake_store, clock)
    landed = QueuedMutation.for_append(
        {"created_at": "2026-03-01 09:00:00", "traveller_name": "Asha Rao"}
    ).model_copy(update={"attempts": 1})
    await queue.enqueue(landed)

    result = await queue.flush(remote)

    assert result.succeeded == 1
    assert remote.calls_named("append") == []
    assert len(remote.leads) == 1


@pytest.mark.asyncio
async def test_concurrent_flush_is_skipped(fake_store, clock):
    gate = asyncio.Event()
    remote = FakeRemoteStore([make_lead()])
    original = remote.update_by_identity

    async def slow_update(*args, **kwargs):
        await gate.wait()
        return await original(*args, **kwargs)

    remote.update_by_identity = slow_update
    queue = MutationQueue(fake_store, clock)
    await queue.enqueue(_update("Hot Leads"))

    first = asyncio.create_task(queue.flush(remote))
    await asyncio.sleep(0)
    second = await queue.flush(remote)
    gate.set()
    first_result = await first

    assert second.skipped is True
    assert first_result.succeeded == 1


@pytest.mark.asyncio
async def test_remove_discards_one_item(fake_store, clock):
    queue = MutationQueue(fake_store, clock)
    keep = await queue.enqueue(_update("Hot Leads"))
    drop = await queue.enqueue(_update("Negotiations"))

    assert await queue.remove(drop.id) is True
    assert await queue.remove("mut_missing") is False
    assert [m.id for m in await queue.all()] == [keep.id]


@pytest.mark.asyncio
async def test_replaying_an_update_twice_leaves_the_same_lead(fake_store, clock):
    remote = FakeRemoteStore([make_lead()])
    queue = MutationQueue(fake_store, clock)
    mutation = QueuedMutation.for_update(
        ASHA, {"status": "Negotiations", "remarks": "Last Call: 2026-03-10 11:00"}
    )

    await queue.enqueue(mutation)
    await queue.flush(remote)
    after_first = remote.leads[0]

    # e.g. the removal after a confirmed write was lost and the item replays again
    await queue.enqueue(mutation)
    second = await queue.flush(remote)

    assert second.succeeded == 1
    assert len(remote.calls_named("update_by_identity")) == 2
    assert remote.leads == [after_first]
    assert await queue.all() == []
