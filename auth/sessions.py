"""
auth/sessions.py -- Issue and read server-side sessions.

start_session() is the only place a session row and its cookie token are
created; every sign-in path (password, sign-up, OAuth, magic link) calls it.

get_session() is the server-side session read used by pages and JSON routes.
It never raises: a missing, malformed, expired or revoked token all read as
"no session".

Layer rule: no imports from api/, web/, actions/, or messages/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from starlette.requests import Request

from auth.models import Session, User
from auth.store import UserStore, iso
from auth.tokens import SESSION_COOKIE, create_session_token, decode_session_token, new_session_id
from core.config import get_settings

logger = logging.getLogger("gatehouse.auth")


@dataclass
class AuthSession:
    """A verified session together with the user it belongs to."""

    session: Session
    user: User

    @property
    def display_name(self) -> str:
        return self.user.display_name

    def to_dict(self) -> dict:
        return {
            "session": {"id": self.session.id, "expires_at": self.session.expires_at},
            "user": {
                "id": self.user.id,
                "name": self.user.name,
                "email": self.user.email,
                "image": self.user.image,
                "role": self.user.role,
                "email_verified": self.user.email_verified,
            },
        }


def start_session(
    store: UserStore,
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> str:
    """Create a session row for user and return the signed cookie token."""
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=get_settings().session_expire_seconds)
    session = Session(
        id=new_session_id(),
        user_id=user.id,
        expires_at=iso(expires_at),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    store.create_session(session)
    logger.info("Session started for user_id=%s", user.id)
    return create_session_token(session)


def read_session_token(request: Request) -> str | None:
    """Return the raw session token from the cookie or a Bearer header."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def resolve_session(store: UserStore, token: str | None) -> AuthSession | None:
    """Turn a raw token into an AuthSession, or None if it is not valid now."""
    if not token:
        return None
    payload = decode_session_token(token)
    if payload is None:
        return None
    session = store.get_session(payload["sid"])
    if session is None or str(session.user_id) != payload["sub"]:
        return None
    if datetime.fromisoformat(session.expires_at) <= datetime.now(timezone.utc):
        store.delete_session(session.id)
        return None
    user = store.get_by_id(session.user_id)
    if user is None:
        return None
    return AuthSession(session=session, user=user)


def get_session(request: Request) -> AuthSession | None:
    """Read the current session from the request. Never raises."""
    store: UserStore = request.app.state.user_store
    return resolve_session(store, read_session_token(request))


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
