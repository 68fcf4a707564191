"""
auth/dependencies.py -- FastAPI Depends() helpers for the JSON API.

Pages do not use these: they read the session with auth.sessions.get_session()
and redirect. JSON routes fail with 401 / 403 in the shared error envelope.

get_current_session() raises HTTP 401 if unauthenticated.
require_role(role) wraps it and raises HTTP 403 if the role does not match.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Role
from auth.sessions import AuthSession, get_session


def get_current_session(request: Request) -> AuthSession:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(auth: AuthSession = Depends(get_current_session)): ...
    """
    auth = get_session(request)
    if auth is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return auth


def require_role(role: Role):
    """Build a dependency that requires the given role (401, then 403)."""

    def dependency(request: Request) -> AuthSession:
        auth = get_current_session(request)
        if auth.user.role != role.value:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"{role.value} role required."},
            )
        return auth

    return dependency
