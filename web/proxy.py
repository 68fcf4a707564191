"""
web/proxy.py -- Route proxy that gates protected pages on the session cookie.

Runs as HTTP middleware in front of every page. It only checks that the
session cookie is PRESENT; it does not verify it. Pages that need a real
identity read the session themselves (web/routes.py) and redirect when the
token turns out to be invalid. This keeps the proxy free of database calls.

Matching:
  - Paths under /api, /static and /favicon.ico are never inspected.
  - A path is protected when it equals a PROTECTED_ROUTES entry or is a
    sub-path of one ("/user/settings" yes, "/username" no).
  - Protected + no cookie -> 307 to /signin?callbackUrl=<original path>.
  - Everything else passes through unmodified.
"""

from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from auth.tokens import SESSION_COOKIE

PROTECTED_ROUTES: tuple[str, ...] = ("/messages", "/user")
SIGN_IN_PATH = "/signin"

_UNMATCHED_PREFIXES: tuple[str, ...] = ("/api", "/static")
_UNMATCHED_PATHS: frozenset[str] = frozenset({"/favicon.ico"})


def is_matched_path(path: str) -> bool:
    """Return True if the proxy should look at this path at all."""
    if path in _UNMATCHED_PATHS:
        return False
    return not any(path == p or path.startswith(f"{p}/") for p in _UNMATCHED_PREFIXES)


def is_protected_route(path: str) -> bool:
    return any(path == route or path.startswith(f"{route}/") for route in PROTECTED_ROUTES)


def sign_in_redirect(path: str, method: str = "GET") -> RedirectResponse:
    # safe="/" keeps the callback readable: callbackUrl=/messages
    query = urlencode({"callbackUrl": path}, safe="/")
    # 307 keeps the method; a form POST must arrive at the sign-in page as a GET.
    status_code = 307 if method in ("GET", "HEAD") else 303
    return RedirectResponse(f"{SIGN_IN_PATH}?{query}", status_code=status_code)


async def session_proxy(request: Request, call_next):
    """HTTP middleware: redirect cookie-less requests for protected pages."""
    path = request.url.path
    if is_matched_path(path) and is_protected_route(path):
        if not request.cookies.get(SESSION_COOKIE):
            return sign_in_redirect(path, request.method)
    return await call_next(request)
