"""
actions/auth.py -- Server actions behind the sign-in, sign-up and sign-out forms.

Every action takes form-shaped input, validates it, makes one call into the
auth layer, and returns an ActionResult. Expected failures never raise:

  validation error       -> first validation message
  bad credentials        -> "Invalid email or password"
  duplicate email        -> "User already exists"
  store / mail failure   -> logged with traceback, generic message

On success the sign-in and sign-up actions return the session token in
data["token"]; the caller (page or JSON route) writes the cookie.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from actions.schemas import MagicLinkInput, SignInInput, SignUpInput
from auth.magic_link import send_magic_link
from auth.models import Role, User
from auth.sessions import start_session
from auth.store import UserStore
from auth.tokens import authenticate_user, decode_session_token, hash_password
from core.mailer import Mailer, MailerError
from core.results import ActionResult, first_error

logger = logging.getLogger("gatehouse.actions")


def sign_in_action(
    store: UserStore,
    form: Mapping[str, Any],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActionResult:
    """Email/password sign-in."""
    try:
        data = SignInInput.model_validate(dict(form))
    except ValidationError as exc:
        return ActionResult.fail(first_error(exc))

    try:
        user = authenticate_user(store, data.email, data.password)  # timing equalized
        if user is None:
            return ActionResult.fail("Invalid email or password")
        token = start_session(store, user, ip_address, user_agent)
    except SQLAlchemyError:
        logger.exception("[sign_in_action] store failure")
        return ActionResult.fail("Failed to sign in")

    return ActionResult.ok({"user_id": user.id, "token": token})


def sign_up_action(
    store: UserStore,
    form: Mapping[str, Any],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> ActionResult:
    """Create a USER with a password and sign them in."""
    try:
        data = SignUpInput.model_validate(dict(form))
    except ValidationError as exc:
        return ActionResult.fail(first_error(exc))

    try:
        user_id = store.create_user(
            User(
                email=data.email,
                name=data.name,
                role=Role.USER.value,
                hashed_password=hash_password(data.password),
            )
        )
    except IntegrityError:
        return ActionResult.fail("User already exists")
    except SQLAlchemyError:
        logger.exception("[sign_up_action] store failure")
        return ActionResult.fail("Failed to sign up")

    try:
        user = store.get_by_id(user_id)
        token = start_session(store, user, ip_address, user_agent)
    except SQLAlchemyError:
        logger.exception("[sign_up_action] could not start session for user_id=%s", user_id)
        return ActionResult.fail("Failed to sign up")

    logger.info("New user signed up (user_id=%s)", user_id)
    return ActionResult.ok({"user_id": user_id, "token": token})


def sign_out_action(store: UserStore, token: str | None) -> ActionResult:
    """Revoke the session named by token. Succeeds even without a session."""
    payload = decode_session_token(token) if token else None
    if payload is None:
        return ActionResult.ok()
    try:
        store.delete_session(payload["sid"])
    except SQLAlchemyError:
        logger.exception("[sign_out_action] store failure")
        return ActionResult.fail("Failed to sign out")
    return ActionResult.ok()


def send_magic_link_action(
    store: UserStore,
    mailer: Mailer,
    form: Mapping[str, Any],
    base_url: str = "",
) -> ActionResult:
    """Email a one-time sign-in link. Works for new and existing addresses."""
    try:
        data = MagicLinkInput.model_validate(dict(form))
    except ValidationError as exc:
        return ActionResult.fail(first_error(exc))

    try:
        send_magic_link(store, mailer, data.email, data.callback_url, base_url, name=data.name)
    except (MailerError, SQLAlchemyError):
        logger.exception("[send_magic_link_action] failed")
        return ActionResult.fail("Failed to send magic link")
    return ActionResult.ok()
