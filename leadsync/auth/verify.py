"""
verify.py
---------
Purpose:
    Bearer-token check against the local session.

Notes:
    - The access token issued by the session manager is the API credential.
    - Every authenticated request counts as activity (touch / refresh).
    - A rotated access token is returned in the X-Access-Token header.
    - Provides `auth_dependency` for protected routes.
"""

import hmac

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from leadsync.container import ServiceContainer
from leadsync.models.domain.session_domain import SessionUser

_security = HTTPBearer()


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def auth_dependency(
    response: Response,
    credentials: HTTPAuthorizationCredentials = Depends(_security),
    container: ServiceContainer = Depends(get_container),
) -> SessionUser:
    manager = container.session_manager
    session = manager.current()
    if session is None:
        raise _unauthorized("Not signed in")
    if not hmac.compare_digest(credentials.credentials.encode(), session.access_token.encode()):
        raise _unauthorized("Invalid authentication token")
    if not await manager.ensure_fresh("api"):
        raise _unauthorized("Session expired, sign in again")

    refreshed = manager.current()
    if refreshed is not None and refreshed.access_token != session.access_token:
        response.headers["X-Access-Token"] = refreshed.access_token
    return manager.current_user()


async def admin_dependency(user: SessionUser = Depends(auth_dependency)) -> SessionUser:
    if not user.is_admin():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return user
