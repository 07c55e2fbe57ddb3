"""
middleware/auth_middleware.py — Bearer-token authentication decorator.

@require_auth verifies the HS256 access token issued by auth_service and
stores the caller's user id on flask.g. It answers one question only: who
is calling (401 on failure). Whether that caller may read a bill, pay a
share or mark someone else paid is decided by the services (403).

Routes read g.user_id and pass it on as caller_id; services never touch
flask.g themselves.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, or bad sub claim
  TOKEN_EXPIRED  (401) — exp claim is in the past; use POST /auth/refresh
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator: authenticate the request, then call the view with
    g.user_id set to the caller's id (int).

    Failures raise AppError and are rendered by the global error handler.

    Usage:
        @bills_bp.route("", methods=["GET"])
        @require_auth
        def list_bills():
            caller_id = g.user_id
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _unauthenticated(code: str, message: str) -> AppError:
    return AppError(code, message, 401)


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        raise _unauthenticated(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Send 'Authorization: Bearer <token>'.",
        )

    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token.strip():
        raise _unauthenticated(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )
    return token.strip()


def _decode(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise _unauthenticated(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
        )
    except jwt.InvalidTokenError:
        raise _unauthenticated(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
        )


def authenticate_request() -> int:
    """
    Reads the bearer token from the current request and returns the user id
    in its `sub` claim.

    Usable on its own (e.g. inside test_request_context) without wrapping a
    view function.

    Raises:
      AppError(TOKEN_MISSING / TOKEN_INVALID / TOKEN_EXPIRED, 401)
    """
    payload = _decode(_bearer_token())

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise _unauthenticated(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid user id.",
        )
