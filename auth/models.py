"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/, web/, actions/, or messages/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Access levels, lowest to highest. Stored verbatim in users.role."""

    USER = "USER"
    CLIENT = "CLIENT"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


@dataclass
class User:
    """Represents an identity in Gatehouse.

    hashed_password is None for users who only ever signed in through OAuth
    or a magic link. email is unique and is the join key when an OAuth
    identity is linked to an existing account for the first time.
    """

    email: str
    name: str = ""
    role: str = Role.USER.value
    id: int | None = None
    image: str | None = None
    hashed_password: str | None = None  # None = passwordless user
    email_verified: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email


@dataclass
class Account:
    """A linked OAuth identity. (provider, subject) is unique."""

    user_id: int
    provider: str  # "github", "google"
    subject: str  # provider's stable user ID
    id: int | None = None
    created_at: str | None = None


@dataclass
class Session:
    """A server-side session row. The cookie JWT names it by id."""

    id: str
    user_id: int
    expires_at: str
    created_at: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class Verification:
    """A pending magic-link token. Only the HMAC of the token is stored."""

    identifier: str  # email address the link was sent to
    token_hash: str
    expires_at: str
    callback_url: str = "/"
    name: str = ""
    id: int | None = None
    created_at: str | None = None
