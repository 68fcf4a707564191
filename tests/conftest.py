"""
tests/conftest.py -- Shared test fixtures for Gatehouse integration tests.

This module provides:
  - _make_test_stores(): isolated in-memory DBs for users and messages
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - harness (module scope): one TestClient per module with seeded users
  - client (function scope): the same TestClient with cookies and mocks reset

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the process.

DEBUG and ALLOWED_HOSTS must be set before any gatehouse import so
get_settings() auto-generates SECRET_KEY and accepts TestClient's Host header.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import (settings are cached on first use).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.models import Role, User
from auth.sessions import start_session
from auth.store import UserStore
from auth.tokens import SESSION_COOKIE, hash_password
from core.limiter import limiter
from core.mailer import Mailer
from messages.store import MessageStore

# Rate limits are exercised by slowapi's own tests; here they would only make
# results depend on how many requests earlier tests in the module sent.
limiter.enabled = False

OWNER_EMAIL = "owner@example.com"
ADMIN_PASSWORD = "adminpass123"
USER_PASSWORD = "userpass123"


# ---------------------------------------------------------------------------
# Store / mock helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, MessageStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string so modules don't share state.
    """
    users_url = f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true"
    messages_url = f"sqlite:///file:test_messages_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(users_url), MessageStore(messages_url)


def make_mailer() -> MagicMock:
    """A Mailer stand-in that records sends instead of calling Resend."""
    mailer = MagicMock(spec=Mailer)
    mailer.configured = True
    mailer.sender = OWNER_EMAIL
    mailer.send.return_value = "email_123"
    return mailer


def _patch_lifespan(user_store: UserStore, message_store: MessageStore, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine: shutdown calls .cancel() on
    it, which needs a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.message_store = message_store
        app.state.mailer = mailer
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@dataclass
class Harness:
    client: TestClient
    user_store: UserStore
    message_store: MessageStore
    mailer: MagicMock
    admin: User
    user: User
    manager: User

    def sign_in_as(self, user: User) -> str:
        """Start a real session for user and put its cookie on the client."""
        token = start_session(self.user_store, user)
        self.client.cookies.set(SESSION_COOKIE, token)
        return token


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def harness(request) -> Generator[Harness, None, None]:
    """One TestClient per test module, with ADMIN, USER and MANAGER seeded.

    follow_redirects=False is essential: tests assert on redirect Location
    headers, which are invisible once the client follows them.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, message_store = _make_test_stores(suffix)
    mailer = make_mailer()

    admin_id = user_store.create_user(
        User(
            email="grace@example.com",
            name="Grace Admin",
            role=Role.ADMIN.value,
            hashed_password=hash_password(ADMIN_PASSWORD),
        )
    )
    # No name on purpose: pages must fall back to the email.
    user_id = user_store.create_user(
        User(email="nameless@example.com", role=Role.USER.value, hashed_password=hash_password(USER_PASSWORD))
    )
    manager_id = user_store.create_user(User(email="mo@example.com", name="Mo Manager", role=Role.MANAGER.value))

    app.router.lifespan_context = _patch_lifespan(user_store, message_store, mailer)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield Harness(
            client=client,
            user_store=user_store,
            message_store=message_store,
            mailer=mailer,
            admin=user_store.get_by_id(admin_id),
            user=user_store.get_by_id(user_id),
            manager=user_store.get_by_id(manager_id),
        )

    user_store.close()
    message_store.close()


@pytest.fixture
def client(harness: Harness) -> Generator[TestClient, None, None]:
    """The module's TestClient with a clean cookie jar and fresh mailer mock."""
    harness.client.cookies.clear()
    harness.mailer.reset_mock()
    harness.mailer.send.side_effect = None
    harness.mailer.send.return_value = "email_123"
    yield harness.client
    harness.client.cookies.clear()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    """A standalone in-memory UserStore for unit tests (no HTTP)."""
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def mailer() -> MagicMock:
    return make_mailer()
