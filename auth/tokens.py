"""
auth/tokens.py -- Session JWTs, password hashing, and one-time token utilities.

Security design decisions:
  Session cookie: python-jose with HS256. The token names a server-side
       session row (sid) plus the user id and expiry. Decoding alone is not
       enough to be signed in -- auth.sessions also requires the row to exist,
       which is what makes sign-out effective. Verification returns None on
       any failure.

  Passwords: bcrypt directly (no passlib wrapper). _DUMMY_HASH enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  Magic-link tokens: secrets.token_urlsafe(32) (256 bits). We store
       HMAC-SHA256(SECRET_KEY, token) so a leaked table cannot be replayed
       and lookup is a single indexed query.

  SECRET_KEY: sourced from core.config.get_settings(), which validates it
       at startup.

Layer rule: no imports from api/, web/, actions/, or messages/. Import from
core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Session, User
    from auth.store import UserStore

logger = logging.getLogger("gatehouse.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# Name of the httpOnly cookie carrying the session JWT. The route proxy checks
# for its presence by this exact name.
SESSION_COOKIE = "gatehouse.session_token"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes; the sign-up schema caps passwords
    at 128 characters and bcrypt 4.x raises on >72 bytes, so encode and slice.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first sign-in attempt is not measurably
# slower than the rest.
_DUMMY_HASH: str = hash_password("gatehouse_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password sign-in with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email or passwordless user: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Session JWT encode / decode
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    return secrets.token_hex(16)


def create_session_token(session: Session) -> str:
    """Encode a signed JWT naming the given session row."""
    expire = datetime.fromisoformat(session.expires_at)
    payload = {
        "sid": session.id,
        "sub": str(session.user_id),
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "sid" not in payload or "sub" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# One-time tokens (magic links)
# ---------------------------------------------------------------------------


def generate_magic_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": sent on top-level navigations (OAuth and magic-link
        redirects land here), not on cross-site POSTs.
    secure: HTTPS only when SECURE_COOKIES=true.
    max_age: matches the session expiry so both end together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=max_age if max_age > 0 else _settings.session_expire_seconds,
        path="/",
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
