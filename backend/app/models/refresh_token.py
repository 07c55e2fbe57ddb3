"""
models/refresh_token.py — Server-side record of issued refresh tokens.

Only the SHA-256 digest of a token is stored; the raw value lives with the
client. Rows go away with their user (ON DELETE CASCADE).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    __table_args__ = (
        Index("ix_refresh_tokens_user_revoked", "user_id", "revoked"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # hex digest: always 64 chars
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # flipped by logout; a revoked row is never un-revoked
    revoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User", back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:  # pragma: no cover
        state = "revoked" if self.revoked else "active"
        return f"<RefreshToken #{self.id} for user {self.user_id} ({state})>"
