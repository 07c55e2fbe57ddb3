"""
services/payment_service.py — Settling bill shares and topping up balances.

The rules live in settlement_processor.py. This module loads persisted state,
hands a snapshot to settle(), and applies the outcome:

  pay_own_share         — SELF_PAY: debit the caller's balance, mark their
                          participant row paid. Password-confirmed.
  mark_participant_paid — PROXY: the creator marks an external participant
                          paid. No balance moves.
  add_balance           — credit the caller's balance.

Concurrency:
  The payer's user row and the bill row are loaded with SELECT ... FOR UPDATE
  so two concurrent payments serialize. Status and balance change in the same
  transaction; the route commits.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility. Only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, AuthorizationError, ErrorCode, NotFoundError
from backend.app.models.bill import MAX_AMOUNT, MAX_QUANTITY, Bill
from backend.app.models.participant import BillParticipant
from backend.app.models.user import User
from backend.app.services.auth_service import check_password
from backend.app.services.bill_builder import ExternalRef, ParticipantRef, RegisteredRef
from backend.app.services.settlement_processor import (
    Actor,
    BillState,
    ParticipantState,
    SettlementOutcome,
    SettlementPath,
    settle,
)


# ── Private helpers ────────────────────────────────────────────────────────

def _lock_bill(bill_id: int, session: Session) -> Bill:
    bill = None
    if bill_id <= MAX_QUANTITY:
        bill = session.execute(
            select(Bill).where(Bill.id == bill_id).with_for_update()
        ).scalar_one_or_none()
    if bill is None:
        raise NotFoundError(
            ErrorCode.BILL_NOT_FOUND,
            f"Bill {bill_id} does not exist.",
        )
    return bill


def _lock_user(user_id: int, session: Session) -> User:
    user = session.execute(
        select(User).where(User.id == user_id).with_for_update()
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
        )
    return user


def participant_ref(row: BillParticipant) -> ParticipantRef:
    """The persisted participant's identity as a builder reference."""
    if row.user_id is not None:
        return RegisteredRef(row.user_id)
    return ExternalRef(row.external_name)


def bill_state(bill: Bill) -> BillState:
    """Snapshot of a persisted bill for the settlement processor."""
    return BillState(
        bill_id=bill.id,
        creator_user_id=bill.created_by_user_id,
        participants=tuple(
            ParticipantState(
                ref=participant_ref(p),
                display_name=p.external_name,
                amount_due=p.amount_due,
                status=p.status,
            )
            for p in bill.participants
        ),
    )


def _apply(bill: Bill, outcome: SettlementOutcome, now: datetime) -> BillParticipant:
    row = bill.participants[outcome.participant_index]
    row.status = outcome.updated_participant.status
    row.paid_at = now
    bill.updated_at = now
    return row


# ── Public service functions ───────────────────────────────────────────────

def pay_own_share(
        bill_id: int,
        caller_id: int,
        password: str | None,
        session: Session,
        *,
        require_password: bool = True,
) -> dict:
    """
    Pays the caller's own share of a bill from their balance.

    The settlement rules run first (404 → 403 → 409 → 422); the password is
    confirmed only for a payment that would otherwise go through.

    Raises:
      NotFoundError(BILL_NOT_FOUND / PARTICIPANT_NOT_FOUND, 404)
      AlreadySettledError(ALREADY_SETTLED, 409)
      InsufficientFundsError(INSUFFICIENT_FUNDS, 422)
      AppError(MISSING_FIELD, 400)                      — password required but absent
      AuthorizationError(INVALID_PAYMENT_PASSWORD, 403) — password does not match

    Returns:
      {"message", "new_balance", "amount_paid", "participant_index", "participant_name"}
    """
    bill = _lock_bill(bill_id, session)
    user = _lock_user(caller_id, session)

    outcome = settle(
        bill_state(bill),
        Actor(caller_id),
        current_balance=user.balance,
        require_path=SettlementPath.SELF_PAY,
    )

    if require_password:
        if password is None:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                "Confirm the payment with your password.",
                400,
                field="password",
            )
        if not check_password(user, password):
            raise AuthorizationError(
                ErrorCode.INVALID_PAYMENT_PASSWORD,
                "The password is incorrect.",
                field="password",
            )

    now = datetime.now(timezone.utc)
    row = _apply(bill, outcome, now)
    user.balance = outcome.new_balance
    user.updated_at = now
    session.flush()

    return {
        "message": "Payment successful.",
        "new_balance": user.balance,
        "amount_paid": outcome.amount_paid,
        "participant_index": outcome.participant_index,
        "participant_name": row.external_name,
    }


def mark_participant_paid(
        bill_id: int,
        participant_index: int,
        caller_id: int,
        session: Session,
) -> dict:
    """
    The bill creator marks an external participant as paid.

    Raises:
      NotFoundError(BILL_NOT_FOUND / PARTICIPANT_NOT_FOUND, 404)
      AuthorizationError(WRONG_SETTLEMENT_PATH / NOT_BILL_CREATOR /
                         PARTICIPANT_LINKED_TO_USER, 403)
      AlreadySettledError(ALREADY_SETTLED, 409)

    Returns:
      {"message", "participant_name", "amount_paid"}
    """
    bill = _lock_bill(bill_id, session)

    outcome = settle(
        bill_state(bill),
        Actor(caller_id),
        participant_index,
        require_path=SettlementPath.PROXY,
    )

    row = _apply(bill, outcome, datetime.now(timezone.utc))
    session.flush()

    return {
        "message": f"{row.external_name} marked as paid.",
        "participant_name": row.external_name,
        "amount_paid": outcome.amount_paid,
    }


def add_balance(user_id: int, amount: Decimal, session: Session) -> dict:
    """
    Credits `amount` to the user's balance. AddBalanceSchema guarantees
    0 < amount <= MAX_AMOUNT with at most 2 decimal places.

    Returns: {"message", "new_balance"}

    Raises:
      NotFoundError(USER_NOT_FOUND, 404)
      AppError(BALANCE_LIMIT_EXCEEDED, 422) — the new balance would not fit
                                            the balance column
    """
    user = _lock_user(user_id, session)
    new_balance = user.balance + amount
    if new_balance > MAX_AMOUNT:
        raise AppError(
            ErrorCode.BALANCE_LIMIT_EXCEEDED,
            f"A balance cannot exceed {MAX_AMOUNT}. Current balance: {user.balance}.",
            422,
            field="amount",
        )
    user.balance = new_balance
    user.updated_at = datetime.now(timezone.utc)
    session.flush()

    return {
        "message": "Balance added successfully.",
        "new_balance": user.balance,
    }
