"""
routes/auth.py — Account, token and wallet route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register  → 201
  POST   /auth/login     → 200
  POST   /auth/refresh   → 200
  POST   /auth/logout    → 200
  GET    /auth/profile   → 200
  POST   /auth/balance   → 200  top up the caller's balance
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.auth_schema import (
    AddBalanceSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
)
from backend.app.services import auth_service, payment_service

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account (balance 0); return tokens."""
    data = RegisterSchema().load(request.get_json(force=True) or {})
    result = auth_service.register_user(
        username=data["username"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    current_app.logger.info("user registered id=%s", result["user"]["id"])
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens."""
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        username=data["username"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange a refresh token for a new access token."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    result = auth_service.refresh_access_token(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /auth/logout — Revoke a refresh token."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    auth_service.logout_user(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/profile", methods=["GET"])
@require_auth
def profile():
    """GET /auth/profile — Current user, including balance."""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/balance", methods=["POST"])
@require_auth
def add_balance():
    """POST /auth/balance — Top up the caller's balance by {amount}."""
    data = AddBalanceSchema().load(request.get_json(force=True) or {})
    result = payment_service.add_balance(
        user_id=g.user_id,
        amount=data["amount"],
        session=db.session,
    )
    db.session.commit()
    current_app.logger.info(
        "balance top-up user=%s amount=%s new_balance=%s",
        g.user_id, data["amount"], result["new_balance"],
    )
    return jsonify({"data": result, "warnings": []}), 200
