"""
services/bill_builder.py — Bill apportionment (pure computation).

Given a bill name, a split method, participants and priced line items,
computes the bill total and every participant's amount due.

Layer rules:
  - No Flask, no SQLAlchemy session. Plain dataclasses in, plain dataclasses out.
  - Raises BillValidationError for any malformed input, before a bill exists.
  - Pure: identical inputs always produce identical outputs.

Participant identity:
  A participant is either RegisteredRef(user_id) or ExternalRef(name).
  find_participant() is the single lookup used for split references, so a
  bare name can never match a registered participant.

Numeric policy:
  - Arithmetic is exact (Fraction over Decimal inputs); nothing is rounded
    until the final apportionment step.
  - Amounts due are multiples of `quantum` (Decimal("1") for whole Rupiah).
  - Each exact share is rounded DOWN to the quantum. The bill target is
    total / quantum rounded half-up. The leftover units go one each to the
    truncated shares, largest exact share first, ties to the earlier-listed
    participant.
  - Hence sum(amount_due) == total_amount whenever the total is a multiple of
    the quantum, and is within half a quantum otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from fractions import Fraction
from typing import Sequence, Union

from backend.app.errors import AppError, BillValidationError, ErrorCode
from backend.app.models.bill import MAX_AMOUNT, MAX_QUANTITY, SplitMethod
from backend.app.models.participant import ParticipantStatus


# ── Participant identity ───────────────────────────────────────────────────

@dataclass(frozen=True)
class RegisteredRef:
    user_id: int

    @property
    def is_registered(self) -> bool:
        return True


@dataclass(frozen=True)
class ExternalRef:
    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip())

    @property
    def is_registered(self) -> bool:
        return False


ParticipantRef = Union[RegisteredRef, ExternalRef]


def find_participant(participants: Sequence, ref: ParticipantRef) -> int | None:
    """
    Returns the index of the participant whose `.ref` equals `ref`, else None.

    `participants` may hold any objects exposing a `ref` attribute
    (ParticipantInput, ComputedParticipant, ParticipantState).
    """
    for index, participant in enumerate(participants):
        if participant.ref == ref:
            return index
    return None


# ── Inputs ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParticipantInput:
    ref: ParticipantRef
    display_name: str = ""

    @property
    def label(self) -> str:
        if self.display_name.strip():
            return self.display_name.strip()
        if isinstance(self.ref, ExternalRef):
            return self.ref.name
        return ""


@dataclass(frozen=True)
class SplitInput:
    ref: ParticipantRef
    quantity: int


@dataclass(frozen=True)
class ItemInput:
    name: str
    price_per_unit: Decimal
    quantity: int
    split: tuple[SplitInput, ...] | None = None


# ── Outputs ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ComputedSplit:
    participant_index: int
    quantity: int


@dataclass(frozen=True)
class ComputedItem:
    name: str
    price_per_unit: Decimal
    quantity: int
    splits: tuple[ComputedSplit, ...] = ()

    @property
    def line_total(self) -> Decimal:
        return self.price_per_unit * self.quantity


@dataclass(frozen=True)
class ComputedParticipant:
    ref: ParticipantRef
    display_name: str
    amount_due: Decimal
    status: ParticipantStatus = ParticipantStatus.PENDING


@dataclass(frozen=True)
class ComputedBill:
    name: str
    split_method: SplitMethod
    total_amount: Decimal
    items: tuple[ComputedItem, ...]
    participants: tuple[ComputedParticipant, ...]
    quantum: Decimal = field(default=Decimal("1"))

    @property
    def amount_due_sum(self) -> Decimal:
        return sum((p.amount_due for p in self.participants), Decimal("0"))


# ── Validation helpers ─────────────────────────────────────────────────────

def _validate_participants(participants: Sequence[ParticipantInput]) -> None:
    if not participants:
        raise BillValidationError(
            ErrorCode.NO_PARTICIPANTS,
            "A bill needs at least one participant.",
            field="participants",
        )

    seen: set = set()
    for index, participant in enumerate(participants):
        if isinstance(participant.ref, ExternalRef) and not participant.ref.name:
            raise BillValidationError(
                ErrorCode.INVALID_PARTICIPANT,
                f"Participant {index} needs a name.",
                field=f"participants[{index}]",
            )
        if participant.ref in seen:
            raise BillValidationError(
                ErrorCode.DUPLICATE_PARTICIPANT,
                f"Participant {participant.label!r} is listed more than once.",
                field=f"participants[{index}]",
            )
        seen.add(participant.ref)


def _validate_item(index: int, item: ItemInput, allow_zero_price: bool) -> None:
    where = f"items[{index}]"

    if not item.name or not item.name.strip():
        raise BillValidationError(
            ErrorCode.INVALID_ITEM,
            f"Item {index} needs a name.",
            field=f"{where}.name",
        )

    price = item.price_per_unit
    if price < 0 or (price == 0 and not allow_zero_price) or price > MAX_AMOUNT:
        raise BillValidationError(
            ErrorCode.INVALID_ITEM,
            f"Item {item.name!r} must have a positive price of at most {MAX_AMOUNT}.",
            field=f"{where}.price_per_unit",
        )

    quantity = item.quantity
    is_whole = isinstance(quantity, int) and not isinstance(quantity, bool)
    if not is_whole or not 1 <= quantity <= MAX_QUANTITY:
        raise BillValidationError(
            ErrorCode.INVALID_ITEM,
            f"Item {item.name!r} must have a whole quantity between 1 and {MAX_QUANTITY}.",
            field=f"{where}.quantity",
        )


def _resolve_item_split(
        index: int,
        item: ItemInput,
        participants: Sequence[ParticipantInput],
) -> tuple[ComputedSplit, ...]:
    """
    Validates one per_product split list and resolves its references.

    Rejects unknown or repeated participants, out-of-range quantities, a
    single unit split across several entries, and quantities that do not add
    up to the item quantity.
    """
    where = f"items[{index}].split"
    split = item.split or ()

    if item.quantity == 1 and len(split) > 1:
        raise BillValidationError(
            ErrorCode.SINGLE_UNIT_SPLIT,
            f"Item {item.name!r} has quantity 1 and cannot be split between "
            f"multiple participants.",
            field=where,
        )

    resolved: list[ComputedSplit] = []
    used: set[int] = set()
    for entry in split:
        participant_index = find_participant(participants, entry.ref)
        if participant_index is None:
            raise BillValidationError(
                ErrorCode.UNKNOWN_SPLIT_PARTICIPANT,
                f"Item {item.name!r} is split to someone who is not a participant.",
                field=where,
            )
        if participant_index in used:
            raise BillValidationError(
                ErrorCode.DUPLICATE_SPLIT_PARTICIPANT,
                f"Item {item.name!r} lists the same participant twice.",
                field=where,
            )
        if (
                isinstance(entry.quantity, bool)
                or not isinstance(entry.quantity, int)
                or entry.quantity < 0
                or entry.quantity > item.quantity
        ):
            raise BillValidationError(
                ErrorCode.INVALID_SPLIT_QUANTITY,
                f"Split quantities for {item.name!r} must be between 0 and {item.quantity}.",
                field=where,
            )
        used.add(participant_index)
        resolved.append(ComputedSplit(participant_index, entry.quantity))

    allocated = sum(s.quantity for s in resolved)
    if allocated != item.quantity:
        raise BillValidationError(
            ErrorCode.SPLIT_QUANTITY_MISMATCH,
            f"Total split quantity ({allocated}) must equal the quantity of "
            f"{item.name!r} ({item.quantity}).",
            field=where,
        )

    return tuple(resolved)


# ── Apportionment ──────────────────────────────────────────────────────────

def _round_half_up(value: Fraction) -> int:
    """Rounds a non-negative Fraction to the nearest integer, halves up."""
    return math.floor(value + Fraction(1, 2))


def apportion(
        exact_shares: Sequence[Fraction],
        total: Fraction,
        quantum: Decimal = Decimal("1"),
) -> list[Decimal]:
    """
    Converts exact shares into amounts that are multiples of `quantum`.

    Shares are truncated to the quantum; the units still missing from the
    half-up-rounded total are given, one each, to the truncated shares in
    order of exact share (largest first), ties to the lower index.

    Args:
        exact_shares: One non-negative Fraction per participant. Must sum to `total`.
        total:        The exact bill total.
        quantum:      Smallest currency unit, e.g. Decimal("1") or Decimal("0.01").

    Returns:
        One Decimal per participant, in input order.
    """
    q = Fraction(quantum)
    target_units = _round_half_up(total / q)
    units = [math.floor(share / q) for share in exact_shares]

    truncated = [
        i for i, share in enumerate(exact_shares)
        if share / q != units[i]
    ]
    truncated.sort(key=lambda i: (-exact_shares[i], i))

    leftover = target_units - sum(units)
    if leftover < 0 or leftover > len(truncated):
        # Cannot happen when the shares sum to the total; a failure here is a
        # programming error.
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Apportionment of {total} left {leftover} units for "
            f"{len(truncated)} truncated shares. This is a bug; please report it.",
            500,
        )

    for i in truncated[:leftover]:
        units[i] += 1

    return [(quantum * unit).quantize(quantum) for unit in units]


def _equal_shares(total: Fraction, count: int) -> list[Fraction]:
    return [total / count] * count


def _per_product_shares(
        items: Sequence[ComputedItem],
        participant_count: int,
) -> list[Fraction]:
    shares = [Fraction(0)] * participant_count
    for item in items:
        item_total = Fraction(item.line_total)
        if not item.splits:
            # No split entries: the item is shared equally by everyone.
            for i in range(participant_count):
                shares[i] += item_total / participant_count
            continue
        for split in item.splits:
            shares[split.participant_index] += item_total * Fraction(split.quantity, item.quantity)
    return shares


# ── Public entry point ─────────────────────────────────────────────────────

def build_bill(
        name: str,
        split_method: SplitMethod | str,
        participants: Sequence[ParticipantInput],
        items: Sequence[ItemInput],
        *,
        quantum: Decimal = Decimal("1"),
        allow_zero_price: bool = False,
) -> ComputedBill:
    """
    Validates a bill and computes every participant's amount due.

    Args:
        name:             Bill name, non-blank.
        split_method:     SplitMethod.EQUAL or SplitMethod.PER_PRODUCT (or its value).
        participants:     Non-empty, no duplicate identities.
        items:            Non-empty list of priced line items.
        quantum:          Smallest currency unit for amounts due.
        allow_zero_price: Accept items priced at exactly zero.

    Returns:
        A ComputedBill with total_amount and each participant's amount_due
        populated; every participant starts PENDING.

    Raises:
        BillValidationError — on any malformed input (nothing is built).
    """
    if not name or not name.strip():
        raise BillValidationError(
            ErrorCode.MISSING_BILL_NAME,
            "The bill needs a name.",
            field="bill_name",
        )

    try:
        method = SplitMethod(split_method)
    except ValueError:
        raise BillValidationError(
            ErrorCode.INVALID_SPLIT_METHOD,
            "split_method must be 'equal' or 'per_product'.",
            field="split_method",
        )

    _validate_participants(participants)

    if not items:
        raise BillValidationError(
            ErrorCode.NO_ITEMS,
            "A bill needs at least one item.",
            field="items",
        )

    computed_items: list[ComputedItem] = []
    for index, item in enumerate(items):
        _validate_item(index, item, allow_zero_price)

        if method == SplitMethod.EQUAL:
            if item.split:
                raise BillValidationError(
                    ErrorCode.SPLITS_SENT_FOR_EQUAL_METHOD,
                    f"Item {item.name!r} carries a split list but the bill is split equally.",
                    field=f"items[{index}].split",
                )
            splits: tuple[ComputedSplit, ...] = ()
        elif item.split:
            splits = _resolve_item_split(index, item, participants)
        else:
            splits = ()

        computed_items.append(ComputedItem(
            name=item.name.strip(),
            price_per_unit=item.price_per_unit,
            quantity=item.quantity,
            splits=splits,
        ))

    total_amount = sum((i.line_total for i in computed_items), Decimal("0"))
    if total_amount > MAX_AMOUNT:
        raise BillValidationError(
            ErrorCode.INVALID_ITEM,
            f"The bill total {total_amount} exceeds the largest storable amount {MAX_AMOUNT}.",
            field="items",
        )
    exact_total = Fraction(total_amount)

    if method == SplitMethod.EQUAL:
        shares = _equal_shares(exact_total, len(participants))
    else:
        shares = _per_product_shares(computed_items, len(participants))

    amounts = apportion(shares, exact_total, quantum)
    # Rounding the target half-up can lift a share just past the column.
    if any(amount > MAX_AMOUNT for amount in amounts):
        raise BillValidationError(
            ErrorCode.INVALID_ITEM,
            f"A rounded amount due exceeds the largest storable amount {MAX_AMOUNT}.",
            field="items",
        )

    return ComputedBill(
        name=name.strip(),
        split_method=method,
        total_amount=total_amount,
        items=tuple(computed_items),
        participants=tuple(
            ComputedParticipant(
                ref=p.ref,
                display_name=p.label,
                amount_due=amount,
            )
            for p, amount in zip(participants, amounts)
        ),
        quantum=quantum,
    )
