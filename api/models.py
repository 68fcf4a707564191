"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are separate from the dataclasses in auth/models.py and
messages/models.py, which own the internal domain representation. Route
handlers map between the two.

Server-action routes do not declare request models: they accept a raw JSON
object and let the action validate it, so validation failures come back in
the action envelope ({"success": false, "error": ...}) rather than as 422.
"""

from typing import Optional

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class SessionUser(BaseModel):
    id: int
    name: str
    email: str
    image: Optional[str] = None
    role: str
    email_verified: bool


class SessionInfo(BaseModel):
    id: str
    expires_at: str


class SessionResponse(BaseModel):
    """Body of GET /api/auth/get-session when a session exists."""

    session: SessionInfo
    user: SessionUser


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    id: int
    name: str
    email: str
    message: str
    created_at: str


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Structured error detail included in every API error response."""

    code: str = Field(description="Machine-readable error code (e.g. 'unauthorized').")
    message: str = Field(description="Human-readable description of the error.")
    detail: Optional[str] = Field(default=None, description="Optional additional context.")


class ErrorResponse(BaseModel):
    """Uniform error envelope returned for all API errors."""

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
