# leadsync/routes/notifications.py
"""
Notification API Routes
Inbox, read state, snoozing, per-user settings, reminders and admin broadcast.
"""

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status

from leadsync.auth.verify import admin_dependency, auth_dependency, get_container
from leadsync.container import ServiceContainer
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.api.lead_request import LeadIdentityRequest
from leadsync.models.api.notification_request import (
    BroadcastRequest,
    LeadSnoozeRequest,
    ReminderRequest,
    SettingsUpdateRequest,
    SnoozeRequest,
)
from leadsync.models.api.notification_response import (
    DispatchResponse,
    InboxResponse,
    MarkReadResponse,
    ScheduledResponse,
    SettingsResponse,
    SnoozeResponse,
)
from leadsync.models.domain.lead_domain import Lead
from leadsync.models.domain.session_domain import SessionUser
from leadsync.services.notifications.broadcast_service import BroadcastError
from leadsync.services.sheets.errors import RemoteStoreError
from leadsync.services.sheets.row_mapping import find_by_identity

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _resolve_until(payload: SnoozeRequest, now: datetime) -> datetime:
    until = payload.until or now + timedelta(minutes=payload.minutes)
    if until.tzinfo is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="'until' must carry a timezone offset",
        )
    if until <= now:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Snooze must end in the future"
        )
    return until


def _find_lead(container: ServiceContainer, identity: LeadIdentityRequest) -> Lead:
    lead = find_by_identity(list(container.sync.state.records), identity.to_identity())
    if lead is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    return lead


@router.get("", response_model=InboxResponse)
async def get_inbox(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Delivered notifications, newest first."""
    try:
        items = await container.delivery_log.inbox(user.identity, unread_only=unread_only, limit=limit)
        unread = await container.dispatcher.unread_count(user.identity)
    except Exception as e:
        logger.error("Error reading inbox", user=user.identity, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read notifications",
        )
    return InboxResponse(notifications=items, unread_count=unread)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    changed = await container.dispatcher.mark_all_read(user.identity)
    return MarkReadResponse(updated=changed, unread_count=0)


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_read(
    notification_id: str,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    updated = await container.dispatcher.mark_read(user.identity, notification_id)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return MarkReadResponse(
        updated=1, unread_count=await container.dispatcher.unread_count(user.identity)
    )


@router.post("/{notification_id}/snooze", response_model=SnoozeResponse)
async def snooze_notification(
    notification_id: str,
    payload: SnoozeRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Hide a notification and re-deliver a fresh copy later."""
    until = _resolve_until(payload, container.dispatcher.clock())
    recreated = await container.dispatcher.snooze(user.identity, notification_id, until)
    if recreated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return SnoozeResponse(snoozed_id=notification_id, redeliver_id=recreated.id, until=until)


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    return SettingsResponse(settings=await container.settings_service.get(user.identity))


@router.patch("/settings", response_model=SettingsResponse)
async def update_settings(
    payload: SettingsUpdateRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    changes = payload.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No changes")
    try:
        updated = await container.settings_service.update(user.identity, changes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return SettingsResponse(settings=updated)


@router.post("/lead-snooze", response_model=SettingsResponse)
async def snooze_lead(
    payload: LeadSnoozeRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Silence all notifications about one lead until the given time."""
    until = _resolve_until(payload, container.dispatcher.clock())
    key = payload.identity.to_identity().key
    if not key:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Lead identity is required")
    updated = await container.settings_service.snooze_record(user.identity, key, until)
    return SettingsResponse(settings=updated)


@router.post("/lead-unsnooze", response_model=SettingsResponse)
async def unsnooze_lead(
    payload: LeadIdentityRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    updated = await container.settings_service.unsnooze_record(
        user.identity, payload.to_identity().key
    )
    return SettingsResponse(settings=updated)


@router.post("/reminders", status_code=status.HTTP_201_CREATED)
async def create_reminder(
    payload: ReminderRequest,
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    now = container.dispatcher.clock()
    if payload.at.tzinfo is None or payload.at <= now:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Reminder time must be a future instant with a timezone offset",
        )
    lead = _find_lead(container, payload.identity)
    body = payload.body or f"Follow up with {lead.traveller_name}"
    reminder = await container.dispatcher.schedule_reminder(
        user.identity, lead, payload.at, payload.title, body
    )
    return {"reminder_id": reminder.id, "scheduled_at": payload.at.isoformat()}


@router.get("/reminders", response_model=ScheduledResponse)
async def list_scheduled(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Reminders and snoozed copies waiting for their time."""
    return ScheduledResponse(scheduled=await container.dispatcher.scheduled(user.identity))


@router.post("/broadcast", response_model=DispatchResponse)
async def broadcast(
    payload: BroadcastRequest,
    user: SessionUser = Depends(admin_dependency),
    container: ServiceContainer = Depends(get_container),
):
    try:
        report = await container.broadcasts.broadcast(
            user, payload.title, payload.body, audience=payload.audience, priority=payload.priority
        )
    except BroadcastError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except RemoteStoreError as e:
        logger.error("Broadcast failed to load users", error=str(e), kind=e.kind.value)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Users sheet unavailable"
        )
    return DispatchResponse(outcomes=report.to_dict(), delivered=len(report.delivered))
