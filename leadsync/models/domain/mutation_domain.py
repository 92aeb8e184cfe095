# models/domain/mutation_domain.py
"""
Queued write operations awaiting replay against the record store.
"""

import uuid
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from leadsync.models.domain.lead_domain import LeadIdentity

MutationOperation = Literal["append", "update"]
MutationStatus = Literal["pending", "failed"]


def _new_mutation_id() -> str:
    return f"mut_{uuid.uuid4().hex[:16]}"


class QueuedMutation(BaseModel):
    """
    A not-yet-confirmed write.

    `identity` is None for appends. `config_snapshot` records the worksheet
    and column layout in force when the write was made, for diagnostics when
    a replay happens after the layout changed.
    """

    id: str = Field(default_factory=_new_mutation_id)
    operation: MutationOperation
    identity: dict[str, str] | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    config_snapshot: dict[str, Any] | None = None
    attempts: int = 0
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    status: MutationStatus = "pending"

    @classmethod
    def for_update(
        cls,
        identity: LeadIdentity,
        fields: dict[str, Any],
        config_snapshot: dict[str, Any] | None = None,
    ) -> "QueuedMutation":
        return cls(
            operation="update",
            identity=identity.to_dict(),
            fields=dict(fields),
            config_snapshot=config_snapshot,
        )

    @classmethod
    def for_append(
        cls, fields: dict[str, Any], config_snapshot: dict[str, Any] | None = None
    ) -> "QueuedMutation":
        return cls(operation="append", fields=dict(fields), config_snapshot=config_snapshot)

    @property
    def lead_identity(self) -> LeadIdentity | None:
        return LeadIdentity.from_dict(self.identity) if self.identity else None

    def to_storage(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_storage(cls, raw: str) -> "QueuedMutation":
        return cls.model_validate_json(raw)
