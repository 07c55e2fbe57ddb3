"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at in-memory SQLite unless TEST_DATABASE_URL names a real database.
  - All tables are created once via db.create_all() at session start.
  - Between tests, every row is deleted (children first) so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)    → dict with user + tokens
  - login(client, ...)       → dict with user + tokens
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - top_up(client, ...)      → HTTP response
  - make_bill(client, ...)   → HTTP response
  - bill_payload(...)        → create-bill request body

They are plain functions so they can be called with arbitrary arguments in
any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, dependent tables first."""
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

PASSWORD = "Password1"


def register(client, username: str = "alice", password: str = PASSWORD) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": username, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, username: str, password: str = PASSWORD) -> dict:
    resp = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def top_up(client, token: str, amount: str):
    """POST /auth/balance. Returns the HTTP response."""
    return client.post(
        "/api/v1/auth/balance",
        json={"amount": amount},
        headers=auth_headers(token),
    )


def bill_payload(
    participants: list[dict],
    items: list[dict],
    split_method: str = "equal",
    bill_name: str = "Dinner",
) -> dict:
    return {
        "bill_name": bill_name,
        "split_method": split_method,
        "participants": participants,
        "items": items,
    }


def make_bill(client, token: str, payload: dict):
    """POST /bills. Returns the HTTP response (callers assert the status)."""
    return client.post(
        "/api/v1/bills",
        json=payload,
        headers=auth_headers(token),
    )
