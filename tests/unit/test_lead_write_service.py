import pytest

from leadsync.models.domain.lead_domain import LeadIdentity
from leadsync.services.lead_write_service import LeadWriteError
from leadsync.services.sheets.errors import RemoteNetworkError, RemoteValidationError
from tests.conftest import make_lead

ASHA = LeadIdentity("2026-03-01 09:00:00", "Asha Rao")


@pytest.mark.asyncio
async def test_online_update_is_applied(signed_in, fake_remote):
    fake_remote.leads = []
    fake_remote._insert(make_lead())

    result = await signed_in.writes.update_lead(ASHA, {"status": "Hot Leads"}, address_hint=9)

    assert result.status == "applied"
    assert result.row_address == 2
    assert await signed_in.queue.all() == []


@pytest.mark.asyncio
async def test_offline_update_is_queued_without_remote_call(signed_in, fake_remote):
    signed_in.connectivity.set_online(False)

    result = await signed_in.writes.update_lead(ASHA, {"status": "Hot Leads"})

    assert result.status == "queued"
    assert result.reason == "offline"
    assert fake_remote.calls_named("update_by_identity") == []
    [queued] = await signed_in.queue.all()
    assert queued.id == result.mutation_id
    assert queued.attempts == 0


@pytest.mark.asyncio
async def test_network_failure_is_queued_for_replay(signed_in, fake_remote):
    fake_remote._insert(make_lead())
    fake_remote.errors.append(RemoteNetworkError("connection reset"))

    result = await signed_in.writes.create_lead(
        {"created_at": "2026-03-10 11:00", "traveller_name": "Meera"}
    )

    assert result.status == "queued"
    assert result.reason == "network"
    [queued] = await signed_in.queue.all()
    assert queued.operation == "append"
    assert queued.attempts == 1


@pytest.mark.asyncio
async def test_permanent_failure_is_raised(signed_in, fake_remote):
    fake_remote.errors.append(RemoteValidationError("bad value"))

    with pytest.raises(RemoteValidationError):
        await signed_in.writes.update_lead(ASHA, {"status": "Hot Leads"})
    assert await signed_in.queue.all() == []


@pytest.mark.asyncio
async def test_empty_identity_is_refused(signed_in):
    with pytest.raises(LeadWriteError) as exc_info:
        await signed_in.writes.update_lead(LeadIdentity("", "Asha"), {"status": "Hot Leads"})

    assert exc_info.value.operation == "identity"


@pytest.mark.asyncio
async def test_signed_out_write_is_refused(container):
    with pytest.raises(LeadWriteError):
        await container.writes.create_lead({"created_at": "2026-03-10 11:00", "traveller_name": "Meera"})
