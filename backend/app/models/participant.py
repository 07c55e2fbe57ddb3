"""
models/participant.py — BillParticipant table definition and ParticipantStatus.

No business logic. No imports from services or routes.

Identity:
  - user_id NOT NULL  → registered participant (may self-pay)
  - user_id NULL      → external participant, identified by external_name
                        (settled only by the bill creator's mark-as-paid)
  services/bill_builder.py turns these two shapes into the RegisteredRef /
  ExternalRef variants; nothing else matches participants by string.

Status is one-directional: pending → paid. `amount_due` is written once at
bill creation and never recomputed.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.bill import enum_values


class ParticipantStatus(str, enum.Enum):
    PENDING = "pending"
    PAID    = "paid"

    @classmethod
    def _missing_(cls, value):
        # Older clients send 'unpaid' for the initial state.
        if isinstance(value, str) and value.lower() == "unpaid":
            return cls.PENDING
        return None


class BillParticipant(db.Model):
    __tablename__ = "bill_participants"

    __table_args__ = (
        CheckConstraint("amount_due >= 0", name="ck_bill_participants_amount_non_negative"),
        CheckConstraint(
            "LENGTH(TRIM(external_name)) > 0",
            name="ck_bill_participants_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    bill_id: Mapped[int] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # 0-based index exposed by /bills/:id/participants/:index/pay.
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # NULL for external participants.
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Display label. For registered participants defaults to the username.
    external_name: Mapped[str] = mapped_column(String(100), nullable=False)

    amount_due: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        nullable=False,
    )

    status: Mapped[ParticipantStatus] = mapped_column(
        Enum(
            ParticipantStatus,
            name="participant_status_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=ParticipantStatus.PENDING,
        server_default=ParticipantStatus.PENDING.value,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    bill: Mapped["Bill"] = relationship(  # noqa: F821
        "Bill",
        back_populates="participants",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
    )

    @property
    def is_registered(self) -> bool:
        """True if this participant is linked to a registered user."""
        return self.user_id is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<BillParticipant id={self.id} "
            f"bill_id={self.bill_id} "
            f"name={self.external_name!r} "
            f"due={self.amount_due} "
            f"status={self.status.value}>"
        )
