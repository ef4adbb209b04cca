"""Refresh record model: one row per refresh secret ever issued."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authapi.core.extensions import db

from .base import ReprMixin, UTCDateTime

if TYPE_CHECKING:
    from .user import User


class RefreshToken(ReprMixin, db.Model):
    """
    Durable refresh record.

    Only the SHA-256 digest of the bearer secret is stored. ``revoked_at`` is
    set exactly once; ``superseded_by`` is set only when the record is retired
    by rotation and points at the child that replaced it.

    Fields
    ------
    id : str
        UUID4 string, generated at creation.
    user_id : int
        Owner; rows are deleted with the user.
    secret_digest : str
        Hex digest of the secret, globally unique.
    valid_from / valid_until : datetime
        Immutable validity window (UTC).
    revoked_at : datetime | None
        ``None`` while active.
    superseded_by : str | None
        Self-reference to the replacing record.
    user_agent / ip_address : str | None
        Advisory client origin.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    secret_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    superseded_by: Mapped[str | None] = mapped_column(
        ForeignKey("refresh_tokens.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    user: Mapped[User] = relationship(back_populates="refresh_tokens")

    __table_args__ = (
        UniqueConstraint("secret_digest", name="uq_refresh_tokens_secret_digest"),
        CheckConstraint("valid_until > valid_from", name="valid_window"),
        Index("ix_refresh_tokens_user_id_revoked_at", "user_id", "revoked_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None
