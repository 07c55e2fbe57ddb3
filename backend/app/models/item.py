"""
models/item.py — BillItem and ItemSplit table definitions.

No business logic. No imports from services or routes.

Key design points:
  - `price_per_unit` is Numeric(14, 2), never Float. CHECK(>= 0): zero-priced
    items are a configuration choice (ALLOW_ZERO_PRICE_ITEMS) enforced by the
    bill builder; the column only forbids negative prices.
  - ItemSplit points at a BillParticipant row, never at a bare name. The
    participant identity was resolved once, when the bill was built.
  - UNIQUE(item_id, participant_id): a participant appears at most once in
    an item's split list.
  - sum(split.quantity) == item.quantity is enforced by the bill builder
    before any row is written.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class BillItem(db.Model):
    __tablename__ = "bill_items"

    __table_args__ = (
        CheckConstraint("price_per_unit >= 0", name="ck_bill_items_price_non_negative"),
        CheckConstraint("quantity > 0", name="ck_bill_items_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Order in which the item was authored (0-based).
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    price_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Relationships ──────────────────────────────────────────────────────

    bill: Mapped["Bill"] = relationship(  # noqa: F821
        "Bill",
        back_populates="items",
    )

    splits: Mapped[list["ItemSplit"]] = relationship(
        "ItemSplit",
        back_populates="item",
        cascade="all, delete-orphan",
        order_by="ItemSplit.id",
    )

    @property
    def line_total(self) -> Decimal:
        """price_per_unit * quantity — read-only convenience."""
        return self.price_per_unit * self.quantity

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<BillItem id={self.id} "
            f"name={self.name!r} "
            f"price={self.price_per_unit} "
            f"qty={self.quantity}>"
        )


class ItemSplit(db.Model):
    __tablename__ = "item_splits"

    __table_args__ = (
        UniqueConstraint("item_id", "participant_id", name="uq_item_splits_item_participant"),
        CheckConstraint("quantity >= 0", name="ck_item_splits_quantity_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    item_id: Mapped[int] = mapped_column(
        ForeignKey("bill_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    participant_id: Mapped[int] = mapped_column(
        ForeignKey("bill_participants.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Relationships ──────────────────────────────────────────────────────

    item: Mapped["BillItem"] = relationship(
        "BillItem",
        back_populates="splits",
    )

    participant: Mapped["BillParticipant"] = relationship(  # noqa: F821
        "BillParticipant",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ItemSplit id={self.id} "
            f"item_id={self.item_id} "
            f"participant_id={self.participant_id} "
            f"qty={self.quantity}>"
        )
