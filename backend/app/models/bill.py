"""
models/bill.py — Bill table definition and the SplitMethod enum.

No business logic. No imports from services or routes.

Key design points:
  - `total_amount` is derived by the bill builder
    (sum of price_per_unit * quantity) and never authored directly.
  - Items and participants are ordered by their `position` column so the
    participant index used by the mark-as-paid endpoint is stable.
  - A bill, its items, splits and participants are written in one
    transaction; items and participants cascade with the bill.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Imported by schemas, services and the pure builder. Do not duplicate these
# as plain string constants anywhere else in the codebase.

class SplitMethod(str, enum.Enum):
    EQUAL       = "equal"
    PER_PRODUCT = "per_product"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g. 'per_product'), not names."""
    return [member.value for member in enum_cls]


# ── Column capacities ──────────────────────────────────────────────────────
# Largest values the money (Numeric(14, 2)) and count (Integer) columns hold.
# Schemas and services reject anything above these before a row is written.

MAX_AMOUNT:   Decimal = Decimal("999999999999.99")
MAX_QUANTITY: int     = 2**31 - 1


# ── Model ──────────────────────────────────────────────────────────────────

class Bill(db.Model):
    __tablename__ = "bills"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),
        CheckConstraint(
            "LENGTH(TRIM(bill_name)) > 0",
            name="ck_bills_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    bill_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    split_method: Mapped[SplitMethod] = mapped_column(
        Enum(
            SplitMethod,
            name="split_method_enum",
            values_callable=enum_values,
        ),
        nullable=False,
    )

    # ON DELETE RESTRICT — cannot delete a user who created bills.
    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set whenever a participant is settled.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="bills_created",
    )

    items: Mapped[list["BillItem"]] = relationship(  # noqa: F821
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.position",
    )

    participants: Mapped[list["BillParticipant"]] = relationship(  # noqa: F821
        "BillParticipant",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillParticipant.position",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Bill id={self.id} "
            f"name={self.bill_name!r} "
            f"total={self.total_amount} "
            f"method={self.split_method.value}>"
        )
