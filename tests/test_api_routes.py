"""
tests/test_api_routes.py -- JSON endpoints under /api.

Covers:
  - Sign-in / sign-up / sign-out / get-session over JSON
  - The session token never appears in a response body, only in the cookie
  - Bearer header works where the cookie is absent
  - POST /api/messages uses the action envelope (201 / 400)
  - GET /api/messages: 401 signed out, 403 non-ADMIN, 200 ADMIN
"""

from __future__ import annotations

from auth.tokens import SESSION_COOKIE
from conftest import ADMIN_PASSWORD


class TestEmailAuth:
    def test_sign_in_sets_cookie_and_hides_token(self, client, harness) -> None:
        resp = client.post("/api/auth/sign-in/email", json={"email": "grace@example.com", "password": ADMIN_PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body == {"success": True, "data": {"user_id": harness.admin.id}}
        assert resp.cookies.get(SESSION_COOKIE)
        assert resp.headers["cache-control"] == "no-store"

    def test_sign_in_failure(self, client) -> None:
        resp = client.post("/api/auth/sign-in/email", json={"email": "grace@example.com", "password": "nope"})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid email or password"}

    def test_empty_body_is_a_validation_result_not_422(self, client) -> None:
        resp = client.post("/api/auth/sign-in/email")
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Invalid email"}

    def test_sign_up(self, client, harness) -> None:
        resp = client.post(
            "/api/auth/sign-up/email",
            json={"name": "Api User", "email": "api-user@example.com", "password": "longenough"},
        )
        assert resp.status_code == 201
        assert resp.json()["success"] is True
        assert "token" not in resp.json()["data"]
        assert harness.user_store.get_by_email("api-user@example.com").role == "USER"

    def test_sign_up_duplicate(self, client) -> None:
        resp = client.post(
            "/api/auth/sign-up/email",
            json={"name": "G", "email": "grace@example.com", "password": "longenough"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "User already exists"


class TestGetSession:
    def test_signed_out_is_null(self, client) -> None:
        resp = client.get("/api/auth/get-session")
        assert resp.status_code == 200
        assert resp.json() is None

    def test_signed_in(self, client, harness) -> None:
        harness.sign_in_as(harness.admin)
        body = client.get("/api/auth/get-session").json()
        assert body["user"]["email"] == "grace@example.com"
        assert body["user"]["role"] == "ADMIN"
        assert body["session"]["id"]
        assert "hashed_password" not in body["user"]

    def test_bearer_header(self, client, harness) -> None:
        token = harness.sign_in_as(harness.user)
        client.cookies.clear()
        body = client.get("/api/auth/get-session", headers={"Authorization": f"Bearer {token}"}).json()
        assert body["user"]["email"] == "nameless@example.com"

    def test_sign_out_revokes(self, client, harness) -> None:
        token = harness.sign_in_as(harness.user)
        resp = client.post("/api/auth/sign-out")
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        client.cookies.clear()
        assert client.get("/api/auth/get-session", headers={"Authorization": f"Bearer {token}"}).json() is None


class TestMessagesApi:
    def test_create(self, client, harness) -> None:
        before = harness.message_store.count_messages()
        resp = client.post("/api/messages", json={"name": "Ada", "email": "ada@example.com", "message": "Hello"})
        assert resp.status_code == 201
        assert resp.json() == {"success": True}
        assert harness.message_store.count_messages() == before + 1
        harness.mailer.send.assert_called_once()

    def test_create_invalid(self, client, harness) -> None:
        resp = client.post("/api/messages", json={"name": "Ada", "email": "ada@example.com", "message": ""})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Message is required"}
        harness.mailer.send.assert_not_called()

    def test_list_requires_session(self, client) -> None:
        resp = client.get("/api/messages")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_list_requires_admin(self, client, harness) -> None:
        harness.sign_in_as(harness.manager)
        resp = client.get("/api/messages")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_list_as_admin(self, client, harness) -> None:
        client.post("/api/messages", json={"name": "Zed", "email": "zed@example.com", "message": "Latest"})
        harness.sign_in_as(harness.admin)
        resp = client.get("/api/messages?limit=5")
        assert resp.status_code == 200
        messages = resp.json()
        assert 1 <= len(messages) <= 5
        assert messages[0]["name"] == "Zed"
        assert set(messages[0]) == {"id", "name", "email", "message", "created_at"}

    def test_list_limit_is_validated(self, client, harness) -> None:
        harness.sign_in_as(harness.admin)
        resp = client.get("/api/messages?limit=0")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
