"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - User registration and credential validation
  - JWT access token creation (HS256)
  - Refresh token lifecycle (creation, validation, revocation)
  - Password hashing (bcrypt) and verification
  - Profile lookup

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes beyond AppError
  - current_app.config is read ONLY for JWT secrets/expiry and bcrypt rounds.

Token design:
  - Access token: JWT, HS256, sub = user_id (str)
  - Refresh token: random hex string, stored as SHA-256 hash. Revoked on logout.
  - The raw refresh token is returned to the client once and never stored.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone
from decimal import Decimal

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, NotFoundError
from backend.app.models.refresh_token import RefreshToken
from backend.app.models.user import User


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string. Used for refresh token storage."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _create_access_token(user_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (user_id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Makes each issued token unique even within the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    """
    Creates a new refresh token, stores its SHA-256 hash and returns the raw
    token to be sent to the client once.
    """
    raw_token = secrets.token_hex(32)
    expires_at = datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]

    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=expires_at,
    ))
    # flush so the row exists before we return; commit is the route's job
    session.flush()

    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "balance": user.balance,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
        )
    return user


def hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def check_password(user: User, password: str | None) -> bool:
    """Constant-time bcrypt comparison. None never matches."""
    if password is None:
        return False
    return bcrypt.checkpw(
        password.encode("utf-8"),
        user.password_hash.encode("utf-8"),
    )


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates a new user account (balance 0) and issues a token pair.

    Raises:
      AppError(DUPLICATE_USERNAME, 409) — username already taken

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    existing = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )

    user = User(
        username=username,
        password_hash=hash_password(password),
        balance=Decimal("0"),
    )
    session.add(user)
    session.flush()  # populate user.id and server defaults
    session.refresh(user)

    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def login_user(
        username: str,
        password: str,
        session: Session,
) -> dict:
    """
    Validates credentials and issues a new token pair.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — username not found or password wrong.
      Same error for both to avoid username enumeration.
    """
    user = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if user is None or not check_password(user, password):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The username or password is incorrect.",
            401,
        )

    return {
        "user": _build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def refresh_access_token(
        raw_refresh_token: str,
        session: Session,
) -> dict:
    """
    Validates a refresh token and issues a new access token.
    The refresh token is not rotated on use.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — not found, revoked, or expired.
    """
    now = datetime.now(timezone.utc)

    record = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()

    if record is None or record.revoked or _as_utc(record.expires_at) <= now:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            401,
        )

    return {
        "access_token": _create_access_token(record.user_id),
    }


def logout_user(
        raw_refresh_token: str,
        session: Session,
) -> None:
    """
    Revokes a refresh token.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — token not found or already revoked.
    """
    record = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()

    if record is None or record.revoked:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    record.revoked = True
    session.flush()


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile (including balance) of the authenticated user.

    Raises:
      NotFoundError(USER_NOT_FOUND, 404) — user deleted after the token was issued.
    """
    return _build_user_dict(_get_user_or_404(user_id, session))
