"""
api/routes/messages.py -- Contact message endpoints.

Routes:
  POST /api/messages  -- send_message as JSON (public, rate-limited)
  GET  /api/messages  -- list received messages, newest first (ADMIN only)
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from actions.messages import send_message
from api.models import MessageResponse
from auth.dependencies import require_role
from auth.models import Role
from auth.sessions import AuthSession
from core.config import get_settings
from core.limiter import limiter
from messages.store import MessageStore

router = APIRouter()

_settings = get_settings()


@router.post("/messages")
@limiter.limit(_settings.message_rate_limit)
def create_message(request: Request, payload: Optional[dict[str, Any]] = Body(default=None)) -> JSONResponse:
    result = send_message(request.app.state.message_store, request.app.state.mailer, payload or {})
    return JSONResponse(status_code=201 if result.success else 400, content=result.to_dict())


@router.get("/messages", response_model=list[MessageResponse])
def list_messages(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    auth: AuthSession = Depends(require_role(Role.ADMIN)),
) -> list[MessageResponse]:
    store: MessageStore = request.app.state.message_store
    return [
        MessageResponse(
            id=m.id,
            name=m.name,
            email=m.email,
            message=m.message,
            created_at=m.created_at or "",
        )
        for m in store.list_messages(limit=limit, offset=offset)
    ]
