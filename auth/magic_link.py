"""
auth/magic_link.py -- Passwordless sign-in via a one-time emailed URL.

Flow:
  1. send_magic_link() stores HMAC(token) with an expiry and emails
     {base_url}/api/auth/magic-link/verify?token=<raw token>.
  2. verify_magic_link() consumes the row (single use), rejects expired
     tokens, and returns the user -- creating one on first use, which is
     how magic-link sign-up works. The address is marked verified because
     only its owner could have clicked the link.

The raw token only ever exists in the email. Nothing here logs it.

Layer rule: no imports from api/, web/, actions/, or messages/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from auth.models import Role, User, Verification
from auth.store import UserStore, iso
from auth.tokens import generate_magic_token, hash_token
from core.config import get_settings
from core.mailer import Mailer, render_magic_link_email

logger = logging.getLogger("gatehouse.auth.magic_link")

VERIFY_PATH = "/api/auth/magic-link/verify"


class MagicLinkError(Exception):
    """The token is unknown, already used, or expired."""


def safe_callback(url: str | None) -> str:
    """Only accept relative paths as a post-sign-in redirect target.

    "//evil.example" is protocol-relative and would leave the site.
    """
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return "/"


def send_magic_link(
    store: UserStore,
    mailer: Mailer,
    email: str,
    callback_url: str = "/",
    base_url: str = "",
    name: str = "",
) -> str:
    """Store a new token for email and send the link. Returns the verify URL.

    Raises core.mailer.MailerError if the email could not be sent. The stored
    token is left to expire in that case.
    """
    cfg = get_settings()
    raw_token = generate_magic_token()
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=cfg.magic_link_expire_seconds)
    store.create_verification(
        Verification(
            identifier=email,
            token_hash=hash_token(raw_token),
            callback_url=safe_callback(callback_url),
            name=name,
            expires_at=iso(expires_at),
        )
    )
    root = (base_url or cfg.base_url).rstrip("/")
    url = f"{root}{VERIFY_PATH}?{urlencode({'token': raw_token})}"
    mailer.send(email, "Your sign-in link", render_magic_link_email(url))
    logger.info("Magic link sent")
    return url


def verify_magic_link(store: UserStore, raw_token: str) -> tuple[User, str]:
    """Consume a magic-link token. Returns (user, callback_url).

    Raises:
        MagicLinkError: unknown, already used, or expired token.
    """
    if not raw_token:
        raise MagicLinkError("Missing token")

    verification = store.consume_verification(hash_token(raw_token))
    if verification is None:
        raise MagicLinkError("Invalid or already used token")
    if datetime.fromisoformat(verification.expires_at) <= datetime.now(timezone.utc):
        raise MagicLinkError("Token expired")

    user = store.get_by_email(verification.identifier)
    if user is None:
        try:
            store.create_user(
                User(
                    email=verification.identifier,
                    name=verification.name,
                    role=Role.USER.value,
                    email_verified=True,
                )
            )
        except IntegrityError:
            pass  # created by a concurrent request; read it back below
        user = store.get_by_email(verification.identifier)
        logger.info("Created user_id=%s from magic link", user.id if user else None)
    elif not user.email_verified:
        store.update_user(user.id, email_verified=True)
        user = store.get_by_id(user.id)

    if user is None:
        raise MagicLinkError("Could not resolve user for token")
    return user, verification.callback_url
