# leadsync/routes/auth.py
"""
Auth API Routes
Login against the users worksheet, logout, and the current session summary.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from leadsync.auth.verify import auth_dependency, get_container
from leadsync.container import ServiceContainer
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.api.auth_request import LoginRequest
from leadsync.models.api.auth_response import LoginResponse, SessionResponse, SessionUserResponse
from leadsync.models.domain.session_domain import SessionUser

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_response(user: SessionUser) -> SessionUserResponse:
    return SessionUserResponse(
        identity=user.identity,
        display_name=user.display_name,
        role=user.role,
        is_admin=user.is_admin(),
    )


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, container: ServiceContainer = Depends(get_container)):
    """Sign in and start the background refresh timer."""
    session, error = await container.session_manager.login(payload.email, payload.password)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=error or "Login failed")

    # A fresh user starts from their own baseline
    await container.sync.sync(force_visible_loading=True)

    return LoginResponse(
        access_token=session.access_token,
        access_expires_at=session.access_expires_at,
        refresh_expires_at=session.refresh_expires_at,
        user=_user_response(session.user),
    )


@router.post("/logout")
async def logout(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    container.sync.reset()
    await container.session_manager.logout()
    return {"logged_out": True, "user": user.identity}


@router.get("/session", response_model=SessionResponse)
async def get_session(
    user: SessionUser = Depends(auth_dependency),
    container: ServiceContainer = Depends(get_container),
):
    """Session lifetimes without token material."""
    manager = container.session_manager
    session = manager.current()
    if session is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(
        authenticated=True,
        user=_user_response(user),
        access_expires_at=session.access_expires_at,
        refresh_expires_at=session.refresh_expires_at,
        last_touched_at=session.last_touched_at,
        next_refresh_in_seconds=manager.refresh_delay_seconds(),
    )
