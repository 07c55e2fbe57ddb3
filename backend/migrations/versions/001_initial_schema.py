"""Initial schema: users, refresh tokens, bills with items, splits and participants.

Revision: 001_initial_schema

Creation order follows the foreign keys:
  users → refresh_tokens, bills → bill_items, bill_participants → item_splits

ON DELETE policies:
  refresh_tokens.user_id          → CASCADE
  bills.created_by_user_id        → RESTRICT
  bill_items.bill_id              → CASCADE
  bill_participants.bill_id       → CASCADE
  bill_participants.user_id       → RESTRICT
  item_splits.item_id             → CASCADE
  item_splits.participant_id      → CASCADE

Applied migrations are never edited; schema changes go in a new revision.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


_split_method_enum = sa.Enum("equal", "per_product", name="split_method_enum")
_participant_status_enum = sa.Enum("pending", "paid", name="participant_status_enum")


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("balance", sa.Numeric(14, 2), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint("LENGTH(TRIM(username)) > 0", name="ck_users_username_nonempty"),
        sa.CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
    )

    # ── refresh_tokens ─────────────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )
    op.create_index(
        "ix_refresh_tokens_user_revoked", "refresh_tokens", ["user_id", "revoked"],
    )

    # ── bills ──────────────────────────────────────────────────────────────
    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bill_name", sa.String(255), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("split_method", _split_method_enum, nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_bills_creator"),
            nullable=False,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_bills"),
        sa.CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),
        sa.CheckConstraint("LENGTH(TRIM(bill_name)) > 0", name="ck_bills_name_nonempty"),
    )
    op.create_index("ix_bills_created_by_user_id", "bills", ["created_by_user_id"])

    # ── bill_items ─────────────────────────────────────────────────────────
    op.create_table(
        "bill_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "bill_id",
            sa.Integer(),
            sa.ForeignKey("bills.id", ondelete="CASCADE", name="fk_bill_items_bill"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_per_unit", sa.Numeric(14, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_bill_items"),
        sa.CheckConstraint("price_per_unit >= 0", name="ck_bill_items_price_non_negative"),
        sa.CheckConstraint("quantity > 0", name="ck_bill_items_quantity_positive"),
    )
    op.create_index("ix_bill_items_bill_id", "bill_items", ["bill_id"])

    # ── bill_participants ──────────────────────────────────────────────────
    op.create_table(
        "bill_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "bill_id",
            sa.Integer(),
            sa.ForeignKey("bills.id", ondelete="CASCADE", name="fk_bill_participants_bill"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_bill_participants_user"),
            nullable=True,
        ),
        sa.Column("external_name", sa.String(100), nullable=False),
        sa.Column("amount_due", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "status",
            _participant_status_enum,
            nullable=False,
            server_default="pending",
        ),
        _timestamp("paid_at", nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_bill_participants"),
        sa.CheckConstraint(
            "amount_due >= 0", name="ck_bill_participants_amount_non_negative",
        ),
        sa.CheckConstraint(
            "LENGTH(TRIM(external_name)) > 0", name="ck_bill_participants_name_nonempty",
        ),
    )
    op.create_index("ix_bill_participants_bill_id", "bill_participants", ["bill_id"])
    op.create_index("ix_bill_participants_user_id", "bill_participants", ["user_id"])

    # ── item_splits ────────────────────────────────────────────────────────
    op.create_table(
        "item_splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("bill_items.id", ondelete="CASCADE", name="fk_item_splits_item"),
            nullable=False,
        ),
        sa.Column(
            "participant_id",
            sa.Integer(),
            sa.ForeignKey(
                "bill_participants.id", ondelete="CASCADE", name="fk_item_splits_participant",
            ),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_item_splits"),
        sa.UniqueConstraint(
            "item_id", "participant_id", name="uq_item_splits_item_participant",
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_item_splits_quantity_non_negative"),
    )
    op.create_index("ix_item_splits_item_id", "item_splits", ["item_id"])


def downgrade() -> None:
    """Drop everything upgrade() created. Local resets only."""
    op.drop_index("ix_item_splits_item_id", table_name="item_splits")
    op.drop_index("ix_bill_participants_user_id", table_name="bill_participants")
    op.drop_index("ix_bill_participants_bill_id", table_name="bill_participants")
    op.drop_index("ix_bill_items_bill_id", table_name="bill_items")
    op.drop_index("ix_bills_created_by_user_id", table_name="bills")
    op.drop_index("ix_refresh_tokens_user_revoked", table_name="refresh_tokens")

    op.drop_table("item_splits")
    op.drop_table("bill_participants")
    op.drop_table("bill_items")
    op.drop_table("bills")
    op.drop_table("refresh_tokens")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS participant_status_enum")
    op.execute("DROP TYPE IF EXISTS split_method_enum")
