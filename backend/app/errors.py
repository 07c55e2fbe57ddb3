"""
errors.py — AppError base class, typed subclasses and the error code registry.

Every error returned by the BillSplit API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).

Typed subclasses map onto the bill/settlement error taxonomy:
  BillValidationError    (422) — malformed bill input
  InsufficientFundsError (422) — self-pay balance too low
  AuthorizationError     (403) — proxy-pay by non-creator, linked participant, bad password
  AlreadySettledError    (409) — participant already paid
  NotFoundError          (404) — unknown bill / participant / user

All of them are AppError, so the global handler in app/__init__.py renders
them without any extra registration.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class _TypedAppError(AppError):
    """AppError with a class-level default HTTP status."""

    default_status: int = 400

    def __init__(
            self,
            code: str,
            message: str,
            field: str | None = None,
            http_status: int | None = None,
    ) -> None:
        super().__init__(
            code,
            message,
            http_status if http_status is not None else self.default_status,
            field=field,
        )


class BillValidationError(_TypedAppError):
    default_status = 422


class InsufficientFundsError(_TypedAppError):
    default_status = 422


class AuthorizationError(_TypedAppError):
    default_status = 403


class AlreadySettledError(_TypedAppError):
    default_status = 409


class NotFoundError(_TypedAppError):
    default_status = 404


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD                = "MISSING_FIELD"
    INVALID_FIELD                = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION     = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_METHOD         = "INVALID_SPLIT_METHOD"
    AMBIGUOUS_PARTICIPANT_REF    = "AMBIGUOUS_PARTICIPANT_REF"
    SPLITS_SENT_FOR_EQUAL_METHOD = "SPLITS_SENT_FOR_EQUAL_METHOD"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_USERNAME           = "DUPLICATE_USERNAME"
    ALREADY_SETTLED              = "ALREADY_SETTLED"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND               = "USER_NOT_FOUND"
    BILL_NOT_FOUND               = "BILL_NOT_FOUND"
    PARTICIPANT_NOT_FOUND        = "PARTICIPANT_NOT_FOUND"

    # ── Bill validation (422) ──────────────────────────────────────────────
    MISSING_BILL_NAME            = "MISSING_BILL_NAME"
    NO_PARTICIPANTS              = "NO_PARTICIPANTS"
    NO_ITEMS                     = "NO_ITEMS"
    INVALID_PARTICIPANT          = "INVALID_PARTICIPANT"
    DUPLICATE_PARTICIPANT        = "DUPLICATE_PARTICIPANT"
    INVALID_ITEM                 = "INVALID_ITEM"
    UNKNOWN_SPLIT_PARTICIPANT    = "UNKNOWN_SPLIT_PARTICIPANT"
    DUPLICATE_SPLIT_PARTICIPANT  = "DUPLICATE_SPLIT_PARTICIPANT"
    INVALID_SPLIT_QUANTITY       = "INVALID_SPLIT_QUANTITY"
    SINGLE_UNIT_SPLIT            = "SINGLE_UNIT_SPLIT"
    SPLIT_QUANTITY_MISMATCH      = "SPLIT_QUANTITY_MISMATCH"
    PARTICIPANT_USER_NOT_FOUND   = "PARTICIPANT_USER_NOT_FOUND"

    # ── Settlement (422 / 403) ─────────────────────────────────────────────
    INSUFFICIENT_FUNDS           = "INSUFFICIENT_FUNDS"          # 422
    BALANCE_LIMIT_EXCEEDED       = "BALANCE_LIMIT_EXCEEDED"      # 422
    NOT_BILL_CREATOR             = "NOT_BILL_CREATOR"            # 403
    PARTICIPANT_LINKED_TO_USER   = "PARTICIPANT_LINKED_TO_USER"  # 403
    WRONG_SETTLEMENT_PATH        = "WRONG_SETTLEMENT_PATH"       # 403
    INVALID_PAYMENT_PASSWORD     = "INVALID_PAYMENT_PASSWORD"    # 403

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    INVALID_CREDENTIALS          = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING                = "TOKEN_MISSING"          # 401
    TOKEN_INVALID                = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED                = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID        = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                    = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR               = "INTERNAL_ERROR"
