"""
schemas/auth_schema.py — Marshmallow schemas for authentication and balance endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns, amount precision.
  - services/auth_service.py: DUPLICATE_USERNAME (requires a DB lookup).

IMPORTANT: All schemas inherit from marshmallow.Schema directly so unit tests
can instantiate them without a Flask app context.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates

from backend.app.errors import ErrorCode
from backend.app.models.bill import MAX_AMOUNT


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      username : 3–50 chars, alphanumeric + underscore only
      password : min 8 chars, at least one letter and one digit

    Username uniqueness is enforced in auth_service.py, not here.
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    username = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and /auth/logout — the raw refresh token string."""

    refresh_token = fields.Str(required=True)


class AddBalanceSchema(Schema):
    """
    POST /auth/balance

    amount: required, strictly positive Decimal, at most MAX_AMOUNT, at most
            2 decimal places.
    More than 2 dp is REJECTED (INVALID_AMOUNT_PRECISION), never rounded.
    """

    amount = fields.Decimal(required=True)

    @validates("amount")
    def validate_amount(self, value: Decimal, **kwargs) -> None:
        if value <= Decimal("0"):
            raise ValidationError("Amount must be greater than zero.")
        if value > MAX_AMOUNT:
            raise ValidationError(f"Amount must not exceed {MAX_AMOUNT}.")
        if value.as_tuple().exponent < -2:
            raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)
