"""
services/settlement_processor.py — Participant settlement rules (pure computation).

Two payment paths:
  SELF_PAY — a registered participant pays their own amount_due from their
             balance. Requires status pending and balance >= amount_due.
             balance_delta = -amount_due.
  PROXY    — the bill creator marks an external (unlinked) participant as
             paid; the money moved out-of-band. balance_delta = 0.

State machine per participant: pending → paid, nothing else. Paying a paid
participant is rejected (AlreadySettledError), never silently accepted.

Check order: resolve target (404) → authorize path (403) → already settled
(409) → funds (422).

Layer rules:
  - No Flask, no SQLAlchemy session. The caller (payment_service.py) loads
    state, calls settle(), then applies the outcome in one transaction.
  - This check is not authoritative on its own: the payment service holds a
    row lock on the payer while applying the outcome.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Sequence

from backend.app.errors import (
    AlreadySettledError,
    AuthorizationError,
    ErrorCode,
    InsufficientFundsError,
    NotFoundError,
)
from backend.app.models.participant import ParticipantStatus
from backend.app.services.bill_builder import ParticipantRef, RegisteredRef, find_participant


class SettlementPath(str, enum.Enum):
    SELF_PAY = "self_pay"
    PROXY    = "proxy"


@dataclass(frozen=True)
class ParticipantState:
    ref: ParticipantRef
    display_name: str
    amount_due: Decimal
    status: ParticipantStatus = ParticipantStatus.PENDING

    @property
    def is_paid(self) -> bool:
        return self.status == ParticipantStatus.PAID


@dataclass(frozen=True)
class BillState:
    bill_id: int | None
    creator_user_id: int
    participants: Sequence[ParticipantState]


@dataclass(frozen=True)
class Actor:
    user_id: int


@dataclass(frozen=True)
class SettlementOutcome:
    participant_index: int
    updated_participant: ParticipantState
    balance_delta: Decimal
    new_balance: Decimal | None
    path: SettlementPath

    @property
    def amount_paid(self) -> Decimal:
        return self.updated_participant.amount_due


def _resolve_target(bill: BillState, actor: Actor, participant_index: int | None) -> int:
    if participant_index is None:
        index = find_participant(bill.participants, RegisteredRef(actor.user_id))
        if index is None:
            raise NotFoundError(
                ErrorCode.PARTICIPANT_NOT_FOUND,
                f"You are not a participant of bill {bill.bill_id}.",
            )
        return index

    if participant_index < 0 or participant_index >= len(bill.participants):
        raise NotFoundError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            f"Bill {bill.bill_id} has no participant at index {participant_index}.",
        )
    return participant_index


def settle(
        bill: BillState,
        actor: Actor,
        participant_index: int | None = None,
        current_balance: Decimal | None = None,
        *,
        require_path: SettlementPath | None = None,
) -> SettlementOutcome:
    """
    Validates a settlement and returns the resulting participant state and
    balance movement. Nothing is mutated.

    Args:
        bill:              Snapshot of the bill and its participants.
        actor:             The authenticated user acting.
        participant_index: Target participant; None means "the actor's own share".
        current_balance:   The actor's balance. Required for SELF_PAY.
        require_path:      When set, any other path is rejected (403).

    Raises:
        NotFoundError          — no participant at the index / actor not a participant
        AuthorizationError     — wrong path, non-creator proxy, or linked target
        AlreadySettledError    — target already paid
        InsufficientFundsError — self-pay with current_balance < amount_due
    """
    index = _resolve_target(bill, actor, participant_index)
    target = bill.participants[index]

    path = (
        SettlementPath.SELF_PAY
        if target.ref == RegisteredRef(actor.user_id)
        else SettlementPath.PROXY
    )

    if require_path is not None and path != require_path:
        if require_path == SettlementPath.PROXY:
            message = "Use the pay endpoint to settle your own share."
        else:
            message = "Only your own share can be paid from your balance."
        raise AuthorizationError(ErrorCode.WRONG_SETTLEMENT_PATH, message)

    if path == SettlementPath.PROXY:
        if actor.user_id != bill.creator_user_id:
            raise AuthorizationError(
                ErrorCode.NOT_BILL_CREATOR,
                "Only the bill creator may mark other participants as paid.",
            )
        if target.ref.is_registered:
            raise AuthorizationError(
                ErrorCode.PARTICIPANT_LINKED_TO_USER,
                f"{target.display_name} is a registered user and must pay their own share.",
            )

    if target.is_paid:
        raise AlreadySettledError(
            ErrorCode.ALREADY_SETTLED,
            f"{target.display_name} has already paid this bill.",
        )

    updated = replace(target, status=ParticipantStatus.PAID)

    if path == SettlementPath.PROXY:
        return SettlementOutcome(
            participant_index=index,
            updated_participant=updated,
            balance_delta=Decimal("0"),
            new_balance=current_balance,
            path=path,
        )

    if current_balance is None:
        raise ValueError("current_balance is required for a self-pay settlement")

    if current_balance < target.amount_due:
        raise InsufficientFundsError(
            ErrorCode.INSUFFICIENT_FUNDS,
            f"Your balance ({current_balance}) does not cover the amount due "
            f"({target.amount_due}).",
        )

    return SettlementOutcome(
        participant_index=index,
        updated_participant=updated,
        balance_delta=-target.amount_due,
        new_balance=current_balance - target.amount_due,
        path=path,
    )
