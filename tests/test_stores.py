"""Unit tests for auth/store.py and messages/store.py.

Covers:
- Email normalisation and uniqueness
- Role validation on create and update
- Account linking uniqueness per (provider, subject)
- purge_expired() removes only expired sessions and tokens
- consume_verification() is single use
- MessageStore ordering and limit clamping
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Session, User, Verification
from auth.store import iso
from messages.models import Message
from messages.store import MessageStore


def _in(delta: timedelta) -> str:
    return iso(datetime.now(timezone.utc) + delta)


class TestUsers:
    def test_email_is_normalised(self, user_store):
        user_id = user_store.create_user(User(email="  Ada@Example.COM "))
        assert user_store.get_by_id(user_id).email == "ada@example.com"
        assert user_store.get_by_email("ADA@example.com").id == user_id

    def test_duplicate_email_raises(self, user_store):
        user_store.create_user(User(email="ada@example.com"))
        with pytest.raises(IntegrityError):
            user_store.create_user(User(email="ADA@example.com"))

    def test_unknown_role_rejected(self, user_store):
        with pytest.raises(ValueError):
            user_store.create_user(User(email="ada@example.com", role="SUPERUSER"))

    def test_update_user(self, user_store):
        user_id = user_store.create_user(User(email="ada@example.com"))
        before = user_store.get_by_id(user_id)
        assert user_store.update_user(user_id, role="MANAGER", email_verified=True, name="Ada")
        after = user_store.get_by_id(user_id)
        assert (after.role, after.email_verified, after.name) == ("MANAGER", True, "Ada")
        assert after.updated_at >= before.updated_at

    def test_update_missing_user(self, user_store):
        assert user_store.update_user(999, name="Nobody") is False

    def test_update_rejects_unknown_role(self, user_store):
        user_id = user_store.create_user(User(email="ada@example.com"))
        with pytest.raises(ValueError):
            user_store.update_user(user_id, role="ROOT")

    def test_list_and_count(self, user_store):
        user_store.create_user(User(email="b@example.com"))
        user_store.create_user(User(email="a@example.com"))
        assert [u.email for u in user_store.list_users()] == ["a@example.com", "b@example.com"]
        assert user_store.count_users() == 2


class TestAccounts:
    def test_identity_links_once(self, user_store):
        ada = user_store.create_user(User(email="ada@example.com"))
        eve = user_store.create_user(User(email="eve@example.com"))
        user_store.link_account(ada, "github", "42")
        with pytest.raises(IntegrityError):
            user_store.link_account(eve, "github", "42")
        assert user_store.get_by_account("github", "42").id == ada
        assert user_store.get_by_account("google", "42") is None


class TestSessionsAndTokens:
    def test_purge_expired(self, user_store):
        user_id = user_store.create_user(User(email="ada@example.com"))
        user_store.create_session(Session(id="old", user_id=user_id, expires_at=_in(timedelta(seconds=-5))))
        user_store.create_session(Session(id="new", user_id=user_id, expires_at=_in(timedelta(hours=1))))
        user_store.create_verification(
            Verification(identifier="ada@example.com", token_hash="h-old", expires_at=_in(timedelta(seconds=-5)))
        )
        user_store.create_verification(
            Verification(identifier="ada@example.com", token_hash="h-new", expires_at=_in(timedelta(minutes=5)))
        )

        assert user_store.purge_expired() == 2
        assert user_store.get_session("old") is None
        assert user_store.get_session("new") is not None
        assert user_store.consume_verification("h-old") is None
        assert user_store.consume_verification("h-new") is not None

    def test_delete_user_sessions(self, user_store):
        user_id = user_store.create_user(User(email="ada@example.com"))
        for sid in ("s1", "s2"):
            user_store.create_session(Session(id=sid, user_id=user_id, expires_at=_in(timedelta(hours=1))))
        assert user_store.delete_user_sessions(user_id) == 2
        assert user_store.delete_session("s1") is False

    def test_consume_verification_once(self, user_store):
        user_store.create_verification(
            Verification(
                identifier="Ada@Example.com",
                token_hash="h1",
                callback_url="/user",
                expires_at=_in(timedelta(minutes=5)),
            )
        )
        first = user_store.consume_verification("h1")
        assert (first.identifier, first.callback_url) == ("ada@example.com", "/user")
        assert user_store.consume_verification("h1") is None


@pytest.fixture
def message_store():
    s = MessageStore("sqlite:///:memory:")
    yield s
    s.close()


class TestMessageStore:
    def test_newest_first(self, message_store):
        for i in range(3):
            message_store.create_message(Message(name=f"n{i}", email="e@example.com", message=f"m{i}"))
        assert [m.name for m in message_store.list_messages()] == ["n2", "n1", "n0"]

    def test_limit_is_clamped(self, message_store):
        for i in range(3):
            message_store.create_message(Message(name=f"n{i}", email="e@example.com", message="m"))
        assert len(message_store.list_messages(limit=0)) == 1
        assert len(message_store.list_messages(limit=2, offset=2)) == 1

    def test_get_message(self, message_store):
        message_id = message_store.create_message(Message(name="Ada", email="ada@example.com", message="Hi"))
        saved = message_store.get_message(message_id)
        assert saved.message == "Hi"
        assert saved.created_at
        assert message_store.get_message(message_id + 1) is None
