"""
tests/test_auth_actions.py -- Sign-in, sign-up, sign-out and magic-link actions.

The actions are called directly against an in-memory UserStore; no HTTP.
Every expected failure must come back as ActionResult.fail(...), never raise.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from actions.auth import send_magic_link_action, sign_in_action, sign_out_action, sign_up_action
from auth.models import Role, User
from auth.sessions import resolve_session
from auth.store import UserStore
from auth.tokens import hash_password
from core.mailer import MailerError

SIGN_UP = {"name": "Grace", "email": "grace@example.com", "password": "longenough"}


def _seed(store: UserStore, email: str = "ada@example.com", password: str = "correct-horse") -> int:
    return store.create_user(User(email=email, name="Ada", hashed_password=hash_password(password)))


def _broken_store() -> MagicMock:
    store = MagicMock(spec=UserStore)
    err = OperationalError("SELECT", {}, Exception("database is locked"))
    store.get_by_email.side_effect = err
    store.create_user.side_effect = err
    store.delete_session.side_effect = err
    store.create_verification.side_effect = err
    return store


class TestSignIn:
    def test_valid_credentials_start_a_session(self, user_store) -> None:
        user_id = _seed(user_store)
        result = sign_in_action(user_store, {"email": "ada@example.com", "password": "correct-horse"})
        assert result.success is True
        assert result.data["user_id"] == user_id
        auth = resolve_session(user_store, result.data["token"])
        assert auth is not None
        assert auth.user.id == user_id

    def test_email_is_case_insensitive(self, user_store) -> None:
        _seed(user_store)
        result = sign_in_action(user_store, {"email": "ADA@Example.com", "password": "correct-horse"})
        assert result.success is True

    def test_wrong_password(self, user_store) -> None:
        _seed(user_store)
        result = sign_in_action(user_store, {"email": "ada@example.com", "password": "wrong"})
        assert result.to_dict() == {"success": False, "error": "Invalid email or password"}

    def test_unknown_email_reads_the_same_as_wrong_password(self, user_store) -> None:
        result = sign_in_action(user_store, {"email": "nobody@example.com", "password": "whatever"})
        assert result.error == "Invalid email or password"

    def test_passwordless_user_cannot_sign_in_with_password(self, user_store) -> None:
        user_store.create_user(User(email="oauth@example.com"))
        result = sign_in_action(user_store, {"email": "oauth@example.com", "password": "anything"})
        assert result.error == "Invalid email or password"

    def test_validation_errors(self, user_store) -> None:
        assert sign_in_action(user_store, {"email": "x", "password": "p"}).error == "Invalid email"
        assert sign_in_action(user_store, {"email": "a@b.co", "password": ""}).error == "Password is required"

    @pytest.mark.parametrize(
        "form, expected",
        [
            ({"password": "correct-horse"}, "Invalid email"),
            ({"email": "ada@example.com"}, "Password is required"),
            ({}, "Invalid email"),
        ],
    )
    def test_absent_field(self, user_store, form, expected) -> None:
        _seed(user_store)
        result = sign_in_action(user_store, form)
        assert result.to_dict() == {"success": False, "error": expected}

    def test_store_failure(self) -> None:
        result = sign_in_action(_broken_store(), {"email": "ada@example.com", "password": "pw"})
        assert result.error == "Failed to sign in"


class TestSignUp:
    def test_creates_user_role_and_session(self, user_store) -> None:
        result = sign_up_action(
            user_store, {"name": "Grace", "email": "grace@example.com", "password": "longenough"}
        )
        assert result.success is True
        user = user_store.get_by_id(result.data["user_id"])
        assert user.role == Role.USER.value
        assert user.name == "Grace"
        assert user.hashed_password and user.hashed_password != "longenough"
        assert resolve_session(user_store, result.data["token"]) is not None

    def test_duplicate_email(self, user_store) -> None:
        _seed(user_store, email="grace@example.com")
        result = sign_up_action(
            user_store, {"name": "Grace", "email": "Grace@example.com", "password": "longenough"}
        )
        assert result.to_dict() == {"success": False, "error": "User already exists"}
        assert user_store.count_users() == 1

    def test_short_password(self, user_store) -> None:
        result = sign_up_action(user_store, {"name": "G", "email": "g@example.com", "password": "short"})
        assert result.error == "Password must be at least 8 characters"
        assert user_store.count_users() == 0

    def test_name_required(self, user_store) -> None:
        result = sign_up_action(user_store, {"email": "g@example.com", "password": "longenough"})
        assert result.error == "Name is required"

    @pytest.mark.parametrize(
        "missing, expected",
        [
            ("name", "Name is required"),
            ("email", "Invalid email"),
            ("password", "Password must be at least 8 characters"),
        ],
    )
    def test_absent_field_creates_nothing(self, user_store, missing, expected) -> None:
        form = {k: v for k, v in SIGN_UP.items() if k != missing}
        result = sign_up_action(user_store, form)
        assert result.to_dict() == {"success": False, "error": expected}
        assert user_store.count_users() == 0

    def test_store_failure(self) -> None:
        result = sign_up_action(_broken_store(), {"name": "G", "email": "g@example.com", "password": "longenough"})
        assert result.error == "Failed to sign up"


class TestSignOut:
    def test_revokes_the_session(self, user_store) -> None:
        _seed(user_store)
        token = sign_in_action(user_store, {"email": "ada@example.com", "password": "correct-horse"}).data["token"]
        assert sign_out_action(user_store, token).success is True
        assert resolve_session(user_store, token) is None

    def test_without_a_session_still_succeeds(self, user_store) -> None:
        assert sign_out_action(user_store, None).success is True
        assert sign_out_action(user_store, "garbage").success is True

    def test_store_failure(self, user_store) -> None:
        _seed(user_store)
        token = sign_in_action(user_store, {"email": "ada@example.com", "password": "correct-horse"}).data["token"]
        result = sign_out_action(_broken_store(), token)
        assert result.error == "Failed to sign out"


class TestMagicLinkAction:
    def test_sends_link(self, user_store, mailer) -> None:
        result = send_magic_link_action(user_store, mailer, {"email": "new@example.com"}, base_url="https://app.test")
        assert result.success is True
        to, subject, body = mailer.send.call_args.args
        assert to == "new@example.com"
        assert "https://app.test/api/auth/magic-link/verify?token=" in body

    def test_invalid_email(self, user_store, mailer) -> None:
        result = send_magic_link_action(user_store, mailer, {"email": "nope"})
        assert result.error == "Invalid email"
        mailer.send.assert_not_called()

    def test_absent_email(self, user_store, mailer) -> None:
        result = send_magic_link_action(user_store, mailer, {"callback_url": "/user"})
        assert result.error == "Invalid email"
        mailer.send.assert_not_called()

    def test_mail_failure(self, user_store, mailer) -> None:
        mailer.send.side_effect = MailerError("down")
        result = send_magic_link_action(user_store, mailer, {"email": "new@example.com"})
        assert result.error == "Failed to send magic link"

    def test_store_failure(self, mailer) -> None:
        result = send_magic_link_action(_broken_store(), mailer, {"email": "new@example.com"})
        assert result.error == "Failed to send magic link"
        mailer.send.assert_not_called()
