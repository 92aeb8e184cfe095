# leadsync/routes/lifecycle.py
"""
Lifecycle API Routes
Foreground / background / connectivity signals from the client, manual sync
and the published sync state.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from leadsync.auth.verify import auth_dependency, get_container
from leadsync.container import ServiceContainer
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.domain.session_domain import SessionUser
from leadsync.services.sync_service import SyncOutcome

logger = get_logger(__name__)

router = APIRouter(tags=["lifecycle"])


class ConnectivityRequest(BaseModel):
    online: bool = Field(..., description="Whether the client currently has network access")


class SyncRequest(BaseModel):
    force_visible_loading: bool = Field(
        default=True, description="Show the loading state even when cached records exist"
    )


def _outcome_dict(outcome: SyncOutcome | None) -> dict | None:
    if outcome is None:
        return None
    return {
        "status": outcome.status,
        "record_count": outcome.record_count,
        "error": (
            {"kind": outcome.error.kind, "message": outcome.error.message}
            if outcome.error
            else None
        ),
        "new_records": len(outcome.diff.new_records),
        "reassigned": len(outcome.diff.reassigned_to_recipient),
        "newly_booked": len(outcome.diff.newly_booked),
        "notifications": outcome.report.to_dict() if outcome.report else {},
    }


@router.post("/lifecycle/foreground")
async def foreground(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    outcome = await container.lifecycle.on_foreground()
    return {"transitioned": outcome is not None, "sync": _outcome_dict(outcome)}


@router.post("/lifecycle/background")
async def background(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    await container.lifecycle.on_background()
    return {"foreground": False}


@router.post("/lifecycle/connectivity")
async def connectivity(
    payload: ConnectivityRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Record a connectivity change; reconnecting replays the queue, then syncs."""
    flush, outcome = await container.lifecycle.on_connectivity_change(payload.online)
    return {
        "online": container.connectivity.online,
        "flush": flush.to_dict() if flush else None,
        "sync": _outcome_dict(outcome),
    }


@router.post("/sync")
async def run_sync(
    payload: SyncRequest | None = None,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Manual refresh; supersedes any sync in flight."""
    force = payload.force_visible_loading if payload else True
    outcome = await container.sync.sync(force_visible_loading=force)
    return _outcome_dict(outcome)


@router.get("/sync/state")
async def sync_state(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    state = container.sync.state.to_dict()
    state["is_syncing"] = container.sync.is_syncing
    state["online"] = container.connectivity.online
    state["foreground"] = container.connectivity.foreground
    return state
