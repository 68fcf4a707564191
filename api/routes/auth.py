"""
api/routes/auth.py -- Authentication endpoints under /api/auth.

Routes:
  POST /api/auth/sign-in/email              -- sign_in_action; sets session cookie
  POST /api/auth/sign-up/email              -- sign_up_action; sets session cookie
  POST /api/auth/sign-out                   -- sign_out_action; clears cookie
  GET  /api/auth/get-session                -- current session + user, or null
  POST /api/auth/sign-in/magic-link         -- send_magic_link_action
  GET  /api/auth/magic-link/verify          -- consume token, set cookie, redirect
  GET  /api/auth/providers                  -- enabled OAuth providers (public)
  GET  /api/auth/sign-in/social/{provider}  -- redirect to provider
  GET  /api/auth/callback/{provider}        -- OAuth callback, set cookie, redirect

The /api prefix keeps all of these outside the route proxy. Browser-facing
redirects (magic link, OAuth) send failures to /signin?error=<code>; the
sign-in page maps the code through a whitelist.

Security:
  Sign-in, sign-up and magic-link requests are rate-limited per IP.
  Cache-Control: no-store on every response that sets a session cookie.
  callbackUrl is reduced to a relative path before any redirect.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from actions.auth import send_magic_link_action, sign_in_action, sign_out_action, sign_up_action
from api.models import OAuthProviderInfo, SessionResponse
from auth.magic_link import MagicLinkError, safe_callback, verify_magic_link
from auth.oauth import get_enabled_providers, get_oauth_user_info, is_enabled, sign_in_with_oauth
from auth.sessions import client_ip, get_session, read_session_token, start_session
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.limiter import limiter
from core.results import ActionResult

logger = logging.getLogger("gatehouse.api.auth")

# Auth policy: every route here is public. Routes that act on "the current
# session" read it from the cookie / Bearer header and treat absence as a
# no-op (sign-out) or null (get-session).
router = APIRouter()

_settings = get_settings()

_OAUTH_CALLBACK_KEY = "oauth_callback_url"


def _action_response(result: ActionResult, status_code: int = 200) -> JSONResponse:
    """Serialise an action result; the session token stays in the cookie only."""
    body = result.to_dict()
    token: Optional[str] = None
    if result.success and isinstance(result.data, dict) and "token" in result.data:
        token = result.data["token"]
        body["data"] = {k: v for k, v in result.data.items() if k != "token"}
    resp = JSONResponse(status_code=status_code if result.success else 400, content=body)
    if token:
        set_session_cookie(resp, token)
        resp.headers["Cache-Control"] = "no-store"
    return resp


def _signin_error(code: str) -> RedirectResponse:
    return RedirectResponse(f"/signin?error={code}", status_code=302)


# ---------------------------------------------------------------------------
# Email / password
# ---------------------------------------------------------------------------


@router.post("/auth/sign-in/email")
@limiter.limit(_settings.login_rate_limit)
def sign_in_email(request: Request, payload: Optional[dict[str, Any]] = Body(default=None)) -> JSONResponse:
    result = sign_in_action(
        request.app.state.user_store,
        payload or {},
        client_ip(request),
        request.headers.get("user-agent"),
    )
    return _action_response(result)


@router.post("/auth/sign-up/email")
@limiter.limit(_settings.login_rate_limit)
def sign_up_email(request: Request, payload: Optional[dict[str, Any]] = Body(default=None)) -> JSONResponse:
    result = sign_up_action(
        request.app.state.user_store,
        payload or {},
        client_ip(request),
        request.headers.get("user-agent"),
    )
    return _action_response(result, status_code=201)


@router.post("/auth/sign-out")
def sign_out(request: Request) -> JSONResponse:
    result = sign_out_action(request.app.state.user_store, read_session_token(request))
    resp = _action_response(result)
    clear_session_cookie(resp)
    return resp


@router.get("/auth/get-session")
def get_current(request: Request) -> JSONResponse:
    """Return {"session", "user"} for the caller, or JSON null when signed out."""
    auth = get_session(request)
    body = SessionResponse.model_validate(auth.to_dict()).model_dump() if auth else None
    resp = JSONResponse(content=body)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Magic link
# ---------------------------------------------------------------------------


@router.post("/auth/sign-in/magic-link")
@limiter.limit(_settings.login_rate_limit)
def sign_in_magic_link(request: Request, payload: Optional[dict[str, Any]] = Body(default=None)) -> JSONResponse:
    form = dict(payload or {})
    # Accept the camelCase key browser clients send.
    if "callbackURL" in form and "callback_url" not in form:
        form["callback_url"] = form.pop("callbackURL")
    result = send_magic_link_action(
        request.app.state.user_store,
        request.app.state.mailer,
        form,
        base_url=_settings.base_url,
    )
    return _action_response(result)


@router.get("/auth/magic-link/verify")
def verify_magic(request: Request, token: str = "") -> RedirectResponse:
    user_store: UserStore = request.app.state.user_store
    try:
        user, callback_url = verify_magic_link(user_store, token)
        session_token = start_session(user_store, user, client_ip(request), request.headers.get("user-agent"))
    except MagicLinkError as exc:
        logger.warning("Magic link rejected: %s", exc)
        return _signin_error("magic_link_invalid")
    except SQLAlchemyError:
        logger.exception("Magic link verification failed")
        return _signin_error("magic_link_invalid")

    resp = RedirectResponse(safe_callback(callback_url), status_code=302)
    set_session_cookie(resp, session_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when no OAuth env vars are set."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/sign-in/social/{provider}")
async def oauth_redirect(request: Request, provider: str, callbackUrl: Optional[str] = None):  # noqa: N803
    """Redirect the browser to the provider's authorization page.

    The provider name is checked against the enabled list first so a crafted
    name cannot reach authlib's registry.
    """
    if not is_enabled(provider):
        return _signin_error("oauth_failed")

    request.session[_OAUTH_CALLBACK_KEY] = safe_callback(callbackUrl)
    client = request.app.state.oauth.create_client(provider)
    if _settings.auth_url:
        redirect_uri = f"{_settings.auth_url.rstrip('/')}/api/auth/callback/{provider}"
    else:
        redirect_uri = str(request.url_for("oauth_callback", provider=provider))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/callback/{provider}", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Handle the provider callback and issue a session cookie.

    Flow:
      1. Exchange the code for a token (authlib checks state from the session).
      2. Extract a verified profile -- ValueError if the email is unverified.
      3. Resolve the user: linked account, else same email (link), else create.
      4. Start a session, set the cookie, redirect to the stored callbackUrl.
    """
    if not is_enabled(provider):
        return _signin_error("oauth_failed")

    user_store: UserStore = request.app.state.user_store
    client = request.app.state.oauth.create_client(provider)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", provider)
        return _signin_error("oauth_failed")

    try:
        profile = await get_oauth_user_info(client, provider, token)
    except ValueError:
        logger.warning("OAuth sign-in rejected: unverified or missing email from %r", provider)
        return _signin_error("oauth_failed")

    try:
        user = sign_in_with_oauth(user_store, provider, profile)
        session_token = start_session(user_store, user, client_ip(request), request.headers.get("user-agent"))
    except SQLAlchemyError:
        logger.exception("OAuth sign-in could not be stored for provider %r", provider)
        return _signin_error("oauth_failed")

    next_url = safe_callback(request.session.pop(_OAUTH_CALLBACK_KEY, "/"))
    resp = RedirectResponse(next_url, status_code=302)
    set_session_cookie(resp, session_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp
