"""
web/routes.py -- Jinja2 template routes for the Gatehouse web UI.

These routes serve server-rendered HTML. They share app.state with the API
routes (same user store, message store, mailer) but return HTML and
redirects instead of JSON. Forms post to the same path they were rendered
from; each POST handler calls one server action and either redirects
(success) or re-renders the form with the action's error message.

Gating is done here, not in the proxy: the proxy only checks that a cookie
exists, these handlers verify it.

Routes:
  GET  /                   -- home (links when signed out, user id + sign out when signed in)
  GET  /signin             -- sign-in form (password, OAuth buttons)
  POST /signin             -- sign_in_action, redirect to ?callbackUrl
  GET  /signup             -- sign-up form + magic-link form
  POST /signup             -- sign_up_action, redirect /
  POST /signup/magic-link  -- send_magic_link_action, re-render with notice
  POST /signout            -- sign_out_action, clear cookie, redirect /
  GET  /messages           -- contact form
  POST /messages           -- send_message, re-render with status
  GET  /user               -- any signed-in user
  GET  /admin              -- ADMIN only
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from actions.auth import send_magic_link_action, sign_in_action, sign_out_action, sign_up_action
from actions.messages import send_message
from auth.magic_link import safe_callback
from auth.models import Role
from auth.oauth import get_enabled_providers
from auth.sessions import client_ip, get_session, read_session_token
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.limiter import limiter

logger = logging.getLogger("gatehouse.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# layout.html calls get_session(request) to switch the nav between
# "Sign In / Sign Up" and "Sign Out" without every handler passing it in.
templates.env.globals["get_session"] = get_session
router = APIRouter()

_settings = get_settings()

# Whitelist for ?error= on /signin. The raw query value never reaches a
# template, only the message mapped here.
_ERROR_MESSAGES: dict[str, str] = {
    "oauth_failed": "Sign-in with that provider failed. Please try again.",
    "magic_link_invalid": "That sign-in link is invalid or has expired.",
}

_MAGIC_LINK_SENT = "Check your email for the magic link!"
_MESSAGE_SENT = "Message sent successfully!"


def _auth_context(request: Request) -> dict:
    return {
        "providers": get_enabled_providers(),
        "magic_link_enabled": request.app.state.mailer.configured,
    }


def _signed_in_redirect(request: Request, token: str, target: str) -> RedirectResponse:
    resp = RedirectResponse(safe_callback(target), status_code=303)
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# GET / -- home
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    auth = get_session(request)
    return templates.TemplateResponse(request, "home.html", {"auth": auth})


# ---------------------------------------------------------------------------
# Sign in / sign up / sign out
# ---------------------------------------------------------------------------


@router.get("/signin", response_class=HTMLResponse)
def signin_form(request: Request, callbackUrl: Optional[str] = None) -> HTMLResponse:  # noqa: N803 -- query param name
    if get_session(request) is not None:
        return RedirectResponse(safe_callback(callbackUrl), status_code=302)
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "signin.html",
        {
            "error_msg": error_msg,
            "callback_url": safe_callback(callbackUrl),
            **_auth_context(request),
        },
    )


@router.post("/signin", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)
def signin_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    callbackUrl: str = Form("/"),  # noqa: N803 -- form field name
) -> HTMLResponse:
    result = sign_in_action(
        request.app.state.user_store,
        {"email": email, "password": password},
        client_ip(request),
        request.headers.get("user-agent"),
    )
    if not result.success:
        return templates.TemplateResponse(
            request,
            "signin.html",
            {
                "error_msg": result.error,
                "email": email,
                "callback_url": safe_callback(callbackUrl),
                **_auth_context(request),
            },
            status_code=400,
        )
    return _signed_in_redirect(request, result.data["token"], callbackUrl)


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    if get_session(request) is not None:
        return RedirectResponse("/", status_code=302)
    return templates.TemplateResponse(request, "signup.html", _auth_context(request))


@router.post("/signup", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)
def signup_post(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
) -> HTMLResponse:
    result = sign_up_action(
        request.app.state.user_store,
        {"name": name, "email": email, "password": password},
        client_ip(request),
        request.headers.get("user-agent"),
    )
    if not result.success:
        return templates.TemplateResponse(
            request,
            "signup.html",
            {"error_msg": result.error, "name": name, "email": email, **_auth_context(request)},
            status_code=400,
        )
    return _signed_in_redirect(request, result.data["token"], "/")


@router.post("/signup/magic-link", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)
def magic_link_post(request: Request, email: str = Form("")) -> HTMLResponse:
    result = send_magic_link_action(
        request.app.state.user_store,
        request.app.state.mailer,
        {"email": email, "callback_url": "/"},
        base_url=_settings.base_url,
    )
    context = _auth_context(request)
    if result.success:
        context["magic_link_notice"] = _MAGIC_LINK_SENT
    else:
        context.update({"magic_link_error": result.error, "magic_email": email})
    return templates.TemplateResponse(request, "signup.html", context, status_code=200 if result.success else 400)


@router.post("/signout")
def signout(request: Request) -> RedirectResponse:
    result = sign_out_action(request.app.state.user_store, read_session_token(request))
    if not result.success:
        logger.warning("Sign-out could not revoke the session; clearing cookie anyway")
    resp = RedirectResponse("/", status_code=303)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Contact form
# ---------------------------------------------------------------------------


@router.get("/messages", response_class=HTMLResponse)
def messages_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "messages.html", {"form": {}})


@router.post("/messages", response_class=HTMLResponse)
@limiter.limit(_settings.message_rate_limit)
def messages_post(
    request: Request,
    name: str = Form(""),
    email: str = Form(""),
    message: str = Form(""),
) -> HTMLResponse:
    form = {"name": name, "email": email, "message": message}
    result = send_message(request.app.state.message_store, request.app.state.mailer, form)
    if result.success:
        context = {"form": {}, "status": "success", "status_msg": _MESSAGE_SENT}
    else:
        # Keep what the visitor typed so they can fix it.
        context = {"form": form, "status": "error", "status_msg": result.error}
    return templates.TemplateResponse(request, "messages.html", context, status_code=200 if result.success else 400)


# ---------------------------------------------------------------------------
# Gated pages
# ---------------------------------------------------------------------------


@router.get("/user", response_class=HTMLResponse)
def user_page(request: Request) -> HTMLResponse:
    auth = get_session(request)
    if auth is None:
        return RedirectResponse("/signin", status_code=302)
    return templates.TemplateResponse(request, "user.html", {"auth": auth})


@router.get("/admin", response_class=HTMLResponse)
def admin_page(request: Request) -> HTMLResponse:
    auth = get_session(request)
    if auth is None:
        return RedirectResponse("/signin", status_code=302)
    if auth.user.role != Role.ADMIN.value:
        return RedirectResponse("/", status_code=302)
    recent = request.app.state.message_store.list_messages(limit=10)
    return templates.TemplateResponse(request, "admin.html", {"auth": auth, "recent_messages": recent})
