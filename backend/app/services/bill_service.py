"""
services/bill_service.py — Bill creation, preview, listing and lookup.

The arithmetic lives in bill_builder.py. This module:
  - resolves user_id / username references to registered users
    (PARTICIPANT_USER_NOT_FOUND, 422)
  - turns validated schema dicts into builder inputs
  - persists the computed bill, its items, splits and participants
  - enforces read access (creator or registered participant, else 403)

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility. Only flush here.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.errors import AuthorizationError, BillValidationError, ErrorCode, NotFoundError
from backend.app.models.bill import MAX_QUANTITY, Bill
from backend.app.models.item import BillItem, ItemSplit
from backend.app.models.participant import BillParticipant, ParticipantStatus
from backend.app.models.user import User
from backend.app.services.bill_builder import (
    ComputedBill,
    ExternalRef,
    ItemInput,
    ParticipantInput,
    ParticipantRef,
    RegisteredRef,
    SplitInput,
    build_bill,
)


# ── Private helpers ────────────────────────────────────────────────────────

class _UserLookup:
    """Resolves user_id / username references, one query per distinct key."""

    def __init__(self, session: Session):
        self._session = session
        self._by_id: dict[int, User | None] = {}
        self._by_username: dict[str, User | None] = {}

    def by_id(self, user_id: int) -> User | None:
        if user_id not in self._by_id:
            self._by_id[user_id] = self._session.get(User, user_id)
        return self._by_id[user_id]

    def by_username(self, username: str) -> User | None:
        if username not in self._by_username:
            self._by_username[username] = self._session.execute(
                select(User).where(User.username == username)
            ).scalar_one_or_none()
        return self._by_username[username]


def _resolve_ref(entry: dict, users: _UserLookup, where: str) -> tuple[ParticipantRef, User | None]:
    """
    Maps one {user_id | username | external_name} dict to a ParticipantRef.
    The schema has already guaranteed exactly one identity is present.
    """
    if entry.get("user_id") is not None:
        user = users.by_id(entry["user_id"])
        if user is None:
            raise BillValidationError(
                ErrorCode.PARTICIPANT_USER_NOT_FOUND,
                f"User {entry['user_id']} does not exist.",
                field=where,
            )
        return RegisteredRef(user.id), user

    if entry.get("username") is not None:
        user = users.by_username(entry["username"])
        if user is None:
            raise BillValidationError(
                ErrorCode.PARTICIPANT_USER_NOT_FOUND,
                f"User '{entry['username']}' does not exist.",
                field=where,
            )
        return RegisteredRef(user.id), user

    return ExternalRef(entry["external_name"]), None


def _to_builder_inputs(
        data: dict,
        session: Session,
) -> tuple[list[ParticipantInput], list[ItemInput]]:
    users = _UserLookup(session)

    participants: list[ParticipantInput] = []
    for index, entry in enumerate(data["participants"]):
        ref, user = _resolve_ref(entry, users, f"participants[{index}]")
        label = entry.get("external_name") or (user.username if user is not None else "")
        participants.append(ParticipantInput(ref=ref, display_name=label))

    items: list[ItemInput] = []
    for index, entry in enumerate(data["items"]):
        split = None
        if entry.get("split"):
            split = tuple(
                SplitInput(
                    ref=_resolve_ref(s, users, f"items[{index}].split")[0],
                    quantity=s["quantity"],
                )
                for s in entry["split"]
            )
        items.append(ItemInput(
            name=entry["name"],
            price_per_unit=entry["price_per_unit"],
            quantity=entry["quantity"],
            split=split,
        ))

    return participants, items


def _compute(
        data: dict,
        session: Session,
        quantum: Decimal,
        allow_zero_price: bool,
) -> ComputedBill:
    participants, items = _to_builder_inputs(data, session)
    return build_bill(
        data["bill_name"],
        data["split_method"],
        participants,
        items,
        quantum=quantum,
        allow_zero_price=allow_zero_price,
    )


def _can_view(bill: Bill, caller_id: int) -> bool:
    if bill.created_by_user_id == caller_id:
        return True
    return any(p.user_id == caller_id for p in bill.participants)


# ── Public service functions ───────────────────────────────────────────────

def preview_bill(
        caller_id: int,
        data: dict,
        session: Session,
        *,
        quantum: Decimal = Decimal("1"),
        allow_zero_price: bool = False,
) -> ComputedBill:
    """
    Computes a bill exactly as create_bill would, without writing anything.

    Args:
        caller_id: The authenticated user (from flask.g via the route).
        data:      Validated dict from CreateBillSchema.
    """
    return _compute(data, session, quantum, allow_zero_price)


def create_bill(
        caller_id: int,
        data: dict,
        session: Session,
        *,
        quantum: Decimal = Decimal("1"),
        allow_zero_price: bool = False,
) -> Bill:
    """
    Builds and persists a bill with its items, splits and participants.

    The caller becomes the creator. The caller does not have to be listed as
    a participant.

    Raises:
      BillValidationError (422) — any bill rule, or an unknown user reference

    Returns:
        The flushed Bill with ids and created_at populated.
    """
    computed = _compute(data, session, quantum, allow_zero_price)

    bill = Bill(
        bill_name=computed.name,
        total_amount=computed.total_amount,
        split_method=computed.split_method,
        created_by_user_id=caller_id,
    )

    participant_rows = [
        BillParticipant(
            position=position,
            user_id=p.ref.user_id if isinstance(p.ref, RegisteredRef) else None,
            external_name=p.display_name,
            amount_due=p.amount_due,
            status=ParticipantStatus.PENDING,
        )
        for position, p in enumerate(computed.participants)
    ]
    bill.participants = participant_rows

    for position, item in enumerate(computed.items):
        row = BillItem(
            position=position,
            name=item.name,
            price_per_unit=item.price_per_unit,
            quantity=item.quantity,
        )
        row.splits = [
            ItemSplit(participant=participant_rows[s.participant_index], quantity=s.quantity)
            for s in item.splits
        ]
        bill.items.append(row)

    session.add(bill)
    session.flush()
    session.refresh(bill)

    return bill


def list_bills(caller_id: int, session: Session) -> list[Bill]:
    """
    Returns the bills the caller created or is a registered participant of,
    newest first.
    """
    participating = select(BillParticipant.bill_id).where(
        BillParticipant.user_id == caller_id,
    )
    return list(session.execute(
        select(Bill)
        .where(or_(
            Bill.created_by_user_id == caller_id,
            Bill.id.in_(participating),
        ))
        .order_by(Bill.created_at.desc(), Bill.id.desc())
    ).scalars().all())


def get_bill(bill_id: int, caller_id: int, session: Session) -> Bill:
    """
    Raises:
      NotFoundError(BILL_NOT_FOUND, 404)
      AuthorizationError(FORBIDDEN, 403) — caller is neither the creator nor
                                           a registered participant
    """
    # Ids past the Integer column cannot exist; the driver would overflow on them.
    bill = session.get(Bill, bill_id) if bill_id <= MAX_QUANTITY else None
    if bill is None:
        raise NotFoundError(
            ErrorCode.BILL_NOT_FOUND,
            f"Bill {bill_id} does not exist.",
        )

    if not _can_view(bill, caller_id):
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            f"You do not have access to bill {bill_id}.",
        )

    return bill
