from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from leadsync.config import Settings
from leadsync.container import build_container
from leadsync.models.domain.lead_domain import Lead, SheetUser
from leadsync.services.notifications.sinks import PresentationSink
from leadsync.services.sheets.errors import RecordNotFoundError, RemoteValidationError
from leadsync.services.sheets.row_mapping import HEADER_ROWS, find_by_identity

TEST_ENCRYPTION_KEY = "g_05-Zf0LNl3qSX9Oo2Rcam6zzqF_JEm3zIqD78P-3c="


class FakeStore:
    """In-memory stand-in for RedisStore."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}
        self.initialized = False
        self.closed = False

    async def initialize(self):
        self.initialized = True

    async def close(self):
        self.closed = True

    async def ping(self) -> bool:
        return True

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> None:
        self.store[key] = value

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        removed = self.store.pop(key, None) is not None
        return self.lists.pop(key, None) is not None or removed

    async def push_to_list(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start : end + 1]

    async def remove_from_list(self, key: str, value: str) -> bool:
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return True
        return False

    async def replace_in_list(self, key: str, old_value: str, new_value: str) -> bool:
        items = self.lists.get(key, [])
        if old_value not in items:
            return False
        items[items.index(old_value)] = new_value
        return True


class FakeRemoteStore:
    """
    In-memory record store with the GoogleSheetsStore contract.

    Queue exceptions in `errors` to fail the next calls in order.
    """

    def __init__(self, leads: list[Lead] | None = None, users: list[SheetUser] | None = None):
        self.leads: list[Lead] = []
        for lead in leads or []:
            self._insert(lead)
        self.users = users or []
        self.errors: list[Exception] = []
        self.calls: list[tuple] = []

    def _insert(self, lead: Lead) -> None:
        self.leads.append(lead.model_copy(update={"row_address": len(self.leads) + HEADER_ROWS + 1}))

    def _maybe_fail(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    async def fetch_all(self, force_refresh: bool = False) -> list[Lead]:
        self.calls.append(("fetch_all", force_refresh))
        self._maybe_fail()
        return list(self.leads)

    async def fetch_users(self) -> list[SheetUser]:
        self.calls.append(("fetch_users",))
        self._maybe_fail()
        return list(self.users)

    async def append(self, fields: dict) -> None:
        self.calls.append(("append", dict(fields)))
        self._maybe_fail()
        if not fields.get("traveller_name") or not fields.get("created_at"):
            raise RemoteValidationError("created_at and traveller_name are required", operation="append")
        self._insert(Lead(**fields))

    async def update_by_identity(self, identity, fields: dict, address_hint: int | None = None) -> int:
        self.calls.append(("update_by_identity", identity, dict(fields), address_hint))
        self._maybe_fail()
        lead = find_by_identity(self.leads, identity)
        if lead is None:
            raise RecordNotFoundError(f"No lead matches {identity.key}", operation="update")
        index = self.leads.index(lead)
        self.leads[index] = lead.model_copy(update=fields)
        return lead.row_address

    def config_snapshot(self) -> dict:
        return {"worksheet": "MASTER DATA", "columns": {}}

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class RecordingSink(PresentationSink):
    def __init__(self):
        self.presented = []
        self.badges: list[tuple[int, str | None]] = []

    async def present(self, notification) -> None:
        self.presented.append(notification)

    async def set_badge_count(self, count: int, recipient: str | None = None) -> None:
        self.badges.append((count, recipient))


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_lead(**overrides) -> Lead:
    values = {
        "created_at": "2026-03-01 09:00:00",
        "traveller_name": "Asha Rao",
        "owner": "priya@agency.test",
        "status": "Working on it",
    }
    values.update(overrides)
    return Lead(**values)


CONSULTANT = SheetUser(
    email="priya@agency.test", display_name="Priya", role="consultant", password="s3cret"
)
ADMIN = SheetUser(email="boss@agency.test", display_name="Boss", role="Admin", password="admin-pw")


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        TIMEZONE="UTC",
        RUN_SCHEDULERS=False,
        SHEETS_SPREADSHEET_ID="sheet-123",
        SHEETS_API_KEY="api-key",
        ENCRYPTION_KEY=TEST_ENCRYPTION_KEY,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, tzinfo=UTC))


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_remote():
    return FakeRemoteStore(users=[CONSULTANT, ADMIN])


@pytest.fixture
def sink():
    return RecordingSink()


@pytest_asyncio.fixture
async def container(test_settings, fake_store, fake_remote, sink, clock):
    built = build_container(
        config=test_settings,
        store=fake_store,
        adapter=fake_remote,
        sink=sink,
        clock=clock,
        encryption_key=TEST_ENCRYPTION_KEY,
    )
    yield built
    await built.session_manager.close()
    built.sync.reset()


@pytest_asyncio.fixture
async def signed_in(container):
    session, error = await container.session_manager.login("priya@agency.test", "s3cret")
    assert error is None
    return container
