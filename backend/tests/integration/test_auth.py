"""
tests/integration/test_auth.py — Integration tests for account endpoints.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200
  POST /auth/refresh   → 200
  POST /auth/logout    → 200
  GET  /auth/profile   → 200
  POST /auth/balance   → 200
  GET  /users/by-username/:username → 200

Error cases:
  DUPLICATE_USERNAME        409
  INVALID_CREDENTIALS       401
  REFRESH_TOKEN_INVALID     401
  TOKEN_MISSING / TOKEN_INVALID / TOKEN_EXPIRED  401
  INVALID_AMOUNT_PRECISION  400
  BALANCE_LIMIT_EXCEEDED    422
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt

from .conftest import auth_headers, login, register, top_up


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_success_returns_201_with_tokens(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "username": "alice",
            "password": "Password1",
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert "access_token"  in data
        assert "refresh_token" in data
        assert data["user"]["username"] == "alice"
        assert Decimal(data["user"]["balance"]) == Decimal("0")
        # password_hash must NEVER appear in the response
        assert "password"      not in data["user"]
        assert "password_hash" not in data["user"]

    def test_balance_is_serialized_as_string(self, client):
        data = register(client, "bob")
        assert isinstance(data["user"]["balance"], str)

    def test_duplicate_username_returns_409(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/register", json={
            "username": "alice", "password": "Password1",
        })
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_USERNAME"
        assert error["field"] == "username"

    def test_missing_password_returns_400_missing_field(self, client):
        resp = client.post("/api/v1/auth/register", json={"username": "alice"})
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "password"

    def test_weak_password_returns_400_invalid_field(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "username": "alice", "password": "password",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success(self, client):
        register(client, "alice")
        data = login(client, "alice")
        assert data["user"]["username"] == "alice"
        assert data["access_token"]

    def test_wrong_password_returns_401(self, client):
        register(client, "alice")
        resp = client.post("/api/v1/auth/login", json={
            "username": "alice", "password": "WrongPass9",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_user_gets_same_error(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "username": "nobody", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


# ═══════════════════════════════════════════════════════════════════════════
# Refresh + logout
# ═══════════════════════════════════════════════════════════════════════════

class TestTokenLifecycle:

    def test_refresh_returns_new_access_token(self, client):
        tokens = register(client, "alice")
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        new_token = resp.get_json()["data"]["access_token"]

        profile = client.get("/api/v1/auth/profile", headers=auth_headers(new_token))
        assert profile.status_code == 200

    def test_refresh_with_garbage_returns_401(self, client):
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "not-a-token"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_revokes_refresh_token(self, client):
        tokens = register(client, "alice")
        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": tokens["refresh_token"]},
            headers=auth_headers(tokens["access_token"]),
        )
        assert resp.status_code == 200

        again = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert again.status_code == 401
        assert again.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_requires_auth(self, client):
        tokens = register(client, "alice")
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# Middleware
# ═══════════════════════════════════════════════════════════════════════════

class TestAuthMiddleware:

    def test_malformed_header(self, client):
        resp = client.get("/api/v1/auth/profile", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_tampered_token(self, client):
        tokens = register(client, "alice")
        resp = client.get(
            "/api/v1/auth/profile",
            headers=auth_headers(tokens["access_token"] + "x"),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_expired_token(self, app, client):
        user = register(client, "alice")["user"]
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        expired = jwt.encode(
            {"sub": str(user["id"]), "iat": past, "exp": past + timedelta(seconds=1)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        resp = client.get("/api/v1/auth/profile", headers=auth_headers(expired))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_token_without_numeric_sub(self, app, client):
        token = jwt.encode(
            {"sub": "abc", "exp": datetime.now(timezone.utc) + timedelta(minutes=1)},
            app.config["JWT_SECRET_KEY"],
            algorithm="HS256",
        )
        resp = client.get("/api/v1/auth/profile", headers=auth_headers(token))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"


# ═══════════════════════════════════════════════════════════════════════════
# Profile + balance
# ═══════════════════════════════════════════════════════════════════════════

class TestBalance:

    def test_profile_includes_balance(self, client):
        tokens = register(client, "alice")
        resp = client.get("/api/v1/auth/profile", headers=auth_headers(tokens["access_token"]))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["username"] == "alice"
        assert Decimal(data["balance"]) == Decimal("0")

    def test_top_up_accumulates(self, client):
        token = register(client, "alice")["access_token"]

        first = top_up(client, token, "50000")
        assert first.status_code == 200
        assert Decimal(first.get_json()["data"]["new_balance"]) == Decimal("50000")

        second = top_up(client, token, "2500.50")
        assert Decimal(second.get_json()["data"]["new_balance"]) == Decimal("52500.50")

        profile = client.get("/api/v1/auth/profile", headers=auth_headers(token))
        assert Decimal(profile.get_json()["data"]["balance"]) == Decimal("52500.50")

    def test_top_up_rejects_non_positive(self, client):
        token = register(client, "alice")["access_token"]
        resp = top_up(client, token, "0")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "amount"

    def test_top_up_rejects_three_decimals(self, client):
        token = register(client, "alice")["access_token"]
        resp = top_up(client, token, "10.001")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_top_up_rejects_amount_past_column(self, client):
        token = register(client, "alice")["access_token"]
        resp = top_up(client, token, "123456789012345678.91")
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_FIELD"
        assert error["field"] == "amount"

    def test_top_up_cannot_push_balance_past_column(self, client):
        token = register(client, "alice")["access_token"]
        assert top_up(client, token, "999999999000").status_code == 200

        resp = top_up(client, token, "1000")

        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "BALANCE_LIMIT_EXCEEDED"
        profile = client.get("/api/v1/auth/profile", headers=auth_headers(token))
        assert Decimal(profile.get_json()["data"]["balance"]) == Decimal("999999999000")


# ═══════════════════════════════════════════════════════════════════════════
# GET /users/by-username/:username
# ═══════════════════════════════════════════════════════════════════════════

class TestUserLookup:

    def test_found(self, client):
        token = register(client, "alice")["access_token"]
        bob = register(client, "bob")["user"]

        resp = client.get("/api/v1/users/by-username/bob", headers=auth_headers(token))
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["id"] == bob["id"]
        assert "balance" not in data

    def test_not_found(self, client):
        token = register(client, "alice")["access_token"]
        resp = client.get("/api/v1/users/by-username/ghost", headers=auth_headers(token))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"
