import pytest

from leadsync.models.domain.session_domain import SessionUser
from leadsync.services.notifications.broadcast_service import BroadcastError
from leadsync.services.notifications.dispatcher import DispatchOutcome
from tests.conftest import ADMIN, CONSULTANT

BOSS = SessionUser(identity="boss@agency.test", role="admin")


@pytest.mark.asyncio
async def test_broadcast_reaches_each_user_once(container, fake_remote):
    fake_remote.users = [CONSULTANT, ADMIN, CONSULTANT.model_copy(update={"email": "PRIYA@agency.test"})]

    report = await container.broadcasts.broadcast(BOSS, "Office closed", "Holiday on Friday")

    assert report.count(DispatchOutcome.DELIVERED) == 2
    assert await container.dispatcher.unread_count("priya@agency.test") == 1

    repeat = await container.broadcasts.broadcast(BOSS, "Office closed", "Holiday on Friday")
    assert repeat.count(DispatchOutcome.DUPLICATE) == 2


@pytest.mark.asyncio
async def test_admins_audience(container):
    assert await container.broadcasts.recipients("admins") == ["boss@agency.test"]


@pytest.mark.asyncio
async def test_only_admins_can_broadcast(container):
    consultant = SessionUser(identity="priya@agency.test")

    with pytest.raises(BroadcastError):
        await container.broadcasts.broadcast(consultant, "Hi", "there")
