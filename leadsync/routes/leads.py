# leadsync/routes/leads.py
"""
Leads API Routes
Scored lead list from the last good snapshot, create/update with offline
queueing, and the pending mutation queue.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from leadsync.auth.verify import auth_dependency, get_container
from leadsync.container import ServiceContainer
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.api.lead_request import CreateLeadRequest, UpdateLeadRequest
from leadsync.models.api.lead_response import (
    FlushResponse,
    LeadResponse,
    LeadsListResponse,
    MutationResponse,
    MutationsListResponse,
    NextActionResponse,
    WriteResponse,
)
from leadsync.models.domain.lead_domain import Snapshot, normalize_person
from leadsync.models.domain.session_domain import SessionUser
from leadsync.pipeline.candidates import ScoredLead, score_snapshot
from leadsync.services.lead_write_service import LeadWriteError, WriteResult
from leadsync.services.mutation_queue import MutationQueueError
from leadsync.services.sheets.errors import RemoteErrorKind, RemoteStoreError

logger = get_logger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])

_REMOTE_ERROR_STATUS = {
    RemoteErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    RemoteErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    RemoteErrorKind.AUTH: status.HTTP_502_BAD_GATEWAY,
    RemoteErrorKind.CONFIGURATION: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _remote_error(e: RemoteStoreError) -> HTTPException:
    return HTTPException(
        status_code=_REMOTE_ERROR_STATUS.get(e.kind, status.HTTP_503_SERVICE_UNAVAILABLE),
        detail={"kind": e.kind.value, "message": str(e)},
    )


def _lead_response(item: ScoredLead) -> LeadResponse:
    lead = item.lead
    return LeadResponse(
        key=lead.identity.key,
        trip_id=lead.trip_id,
        created_at=lead.created_at,
        traveller_name=lead.traveller_name,
        owner=lead.owner,
        status=lead.canonical_status,
        destination=lead.destination,
        travel_date=lead.travel_date,
        phone=lead.phone,
        email=lead.email,
        remarks=lead.remarks,
        row_address=lead.row_address,
        score=round(item.score, 1),
        next_action=NextActionResponse(
            action=item.next_action.action,
            label=item.next_action.label,
            priority=item.next_action.priority.value,
            reason=item.next_action.reason,
        ),
        last_activity_at=item.activity.last_activity_at,
    )


def _write_response(result: WriteResult) -> WriteResponse:
    return WriteResponse(
        status=result.status,
        mutation_id=result.mutation_id,
        row_address=result.row_address,
        reason=result.reason,
    )


@router.get("", response_model=LeadsListResponse)
async def list_leads(
    mine: bool = Query(False, description="Only leads owned by the current user"),
    min_score: float = Query(0, ge=0, le=100, description="Minimum urgency score"),
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Leads sorted by urgency, most urgent first."""
    state = container.sync.state
    try:
        records = state.records
        captured_at = state.captured_at
        if not records:
            cached = await container.cache.read_current()
            if cached is not None:
                records, captured_at = cached.records, cached.captured_at

        snapshot = Snapshot(records=records, captured_at=captured_at) if captured_at else Snapshot(records=records)
        scored = score_snapshot(snapshot, container.scorer, container.sync.clock())
    except Exception as e:
        logger.error("Error listing leads", user=user.identity, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list leads",
        )

    if mine:
        me = {user.identity, *(normalize_person(a) for a in user.owner_aliases())}
        scored = [item for item in scored if item.lead.normalized_owner in me]
    scored = [item for item in scored if item.score >= min_score]
    scored.sort(key=lambda item: item.score, reverse=True)

    return LeadsListResponse(
        leads=[_lead_response(item) for item in scored],
        total=len(scored),
        captured_at=captured_at,
        served_from_cache=state.served_from_cache,
        error=state.to_dict()["error"],
    )


@router.post("", response_model=WriteResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_lead(
    payload: CreateLeadRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Append a lead; 202 whether applied now or queued for replay."""
    try:
        result = await container.writes.create_lead(payload.to_fields())
    except RemoteStoreError as e:
        logger.warning("Lead create rejected", user=user.identity, kind=e.kind.value, error=str(e))
        raise _remote_error(e)
    except LeadWriteError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except MutationQueueError as e:
        logger.error("Lead create could not be queued", user=user.identity, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _write_response(result)


@router.patch("", response_model=WriteResponse, status_code=status.HTTP_202_ACCEPTED)
async def update_lead(
    payload: UpdateLeadRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Update a lead by natural key; the row is re-resolved before writing."""
    try:
        result = await container.writes.update_lead(
            payload.identity.to_identity(), payload.fields, payload.address_hint
        )
    except RemoteStoreError as e:
        logger.warning("Lead update rejected", user=user.identity, kind=e.kind.value, error=str(e))
        raise _remote_error(e)
    except LeadWriteError as e:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY if e.operation == "identity" else status.HTTP_401_UNAUTHORIZED
        raise HTTPException(status_code=code, detail=str(e))
    except MutationQueueError as e:
        logger.error("Lead update could not be queued", user=user.identity, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _write_response(result)


@router.get("/mutations", response_model=MutationsListResponse)
async def list_mutations(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    mutations = await container.queue.all()
    return MutationsListResponse(
        mutations=[MutationResponse(**m.model_dump(exclude={"config_snapshot"})) for m in mutations],
        pending=sum(1 for m in mutations if m.status == "pending"),
        failed=sum(1 for m in mutations if m.status == "failed"),
        is_flushing=container.queue.is_flushing,
    )


@router.post("/mutations/flush", response_model=FlushResponse)
async def flush_mutations(
    include_failed: bool = Query(False, description="Also retry permanently failed items"),
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    result = await container.lifecycle.flush_queue(include_failed=include_failed)
    if result is None:
        return FlushResponse(flushed=False)
    return FlushResponse(flushed=True, **result.to_dict())


@router.delete("/mutations/{mutation_id}")
async def discard_mutation(
    mutation_id: str,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Drop a queued write the user gave up on."""
    if not await container.queue.remove(mutation_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mutation not found")
    logger.info("Queued mutation discarded", user=user.identity, mutation_id=mutation_id)
    return {"removed": True, "mutation_id": mutation_id}
