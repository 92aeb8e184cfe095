"""
Local cache of lead snapshots.

Holds the last successfully fetched snapshot (rendered instantly on open)
and, per recipient, the last snapshot that recipient's notifications were
diffed against. Only the sync orchestrator writes here.
"""

from datetime import datetime

from pydantic import ValidationError

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.storage.redis_client import get_json, set_json
from leadsync.models.domain.lead_domain import Lead, Snapshot, normalize_person

logger = get_logger(__name__)

CURRENT_KEY = "cache:current"
BASELINE_KEY_PREFIX = "cache:baseline:"


def snapshot_to_payload(snapshot: Snapshot) -> dict:
    return {
        "records": [record.model_dump() for record in snapshot.records],
        "captured_at": snapshot.captured_at.isoformat(),
    }


def snapshot_from_payload(payload: dict) -> Snapshot:
    return Snapshot(
        records=tuple(Lead.model_validate(item) for item in payload.get("records", [])),
        captured_at=datetime.fromisoformat(payload["captured_at"]),
    )


class LeadCache:
    def __init__(self, store):
        self.store = store

    async def _read(self, key: str) -> Snapshot | None:
        payload = await get_json(self.store, key)
        if not payload:
            return None
        try:
            return snapshot_from_payload(payload)
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning("Discarding unreadable cached snapshot", key=key, error=str(e))
            return None

    async def read_current(self) -> Snapshot | None:
        return await self._read(CURRENT_KEY)

    async def write_current(self, snapshot: Snapshot) -> None:
        await set_json(self.store, CURRENT_KEY, snapshot_to_payload(snapshot))
        logger.debug("Cached snapshot written", record_count=len(snapshot.records))

    def _baseline_key(self, recipient: str) -> str:
        return BASELINE_KEY_PREFIX + normalize_person(recipient)

    async def read_baseline(self, recipient: str) -> Snapshot | None:
        return await self._read(self._baseline_key(recipient))

    async def write_baseline(self, recipient: str, snapshot: Snapshot) -> None:
        await set_json(self.store, self._baseline_key(recipient), snapshot_to_payload(snapshot))

    async def clear(self, recipient: str | None = None) -> None:
        await self.store.delete(CURRENT_KEY)
        if recipient:
            await self.store.delete(self._baseline_key(recipient))
