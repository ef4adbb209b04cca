"""Refresh record repository: lookups and conditional bulk transitions."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import delete, select, update

from authapi.models.refresh_token import RefreshToken
from authapi.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`.

    The transition helpers are single conditional ``UPDATE``/``DELETE``
    statements so that "only if still active" is decided by the database,
    not by a read followed by a write.
    """

    model = RefreshToken

    def _filterable_fields(self):
        return {"user_id": RefreshToken.user_id, "secret_digest": RefreshToken.secret_digest}

    # ---------------------------- Lookups ----------------------------

    def get_by_digest(self, digest: str, *, active_only: bool = False) -> RefreshToken | None:
        """Fetch the record holding ``digest``.

        :param digest: Hex digest of the presented secret.
        :param active_only: Ignore revoked records.
        :returns: The record or ``None``.
        """
        stmt = select(RefreshToken).where(RefreshToken.secret_digest == digest)
        if active_only:
            stmt = stmt.where(RefreshToken.revoked_at.is_(None))
        result = self.session.execute(stmt).scalars().first()
        return cast(RefreshToken | None, result)

    def list_for_user(self, user_id: int, *, active_only: bool = False) -> list[RefreshToken]:
        stmt = select(RefreshToken).where(RefreshToken.user_id == user_id)
        if active_only:
            stmt = stmt.where(RefreshToken.revoked_at.is_(None))
        stmt = stmt.order_by(RefreshToken.valid_from.asc(), RefreshToken.id.asc())
        return list(self.session.execute(stmt).scalars().all())

    # ---------------------------- Transitions ----------------------------

    def revoke_if_active(
        self,
        record_id: str,
        *,
        at: datetime,
        superseded_by: str | None = None,
    ) -> int:
        """Compare-and-set revocation of a single record.

        :returns: Number of rows transitioned (0 or 1).
        """
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=at, superseded_by=superseded_by)
            .execution_options(synchronize_session=False)
        )
        return int(self.session.execute(stmt).rowcount or 0)

    def revoke_all_active_for_user(self, user_id: int, *, at: datetime) -> int:
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .values(revoked_at=at)
            .execution_options(synchronize_session=False)
        )
        return int(self.session.execute(stmt).rowcount or 0)

    def delete_expired_before(self, cutoff: datetime) -> int:
        """Delete every record whose window ended before ``cutoff``."""
        stmt = (
            delete(RefreshToken)
            .where(RefreshToken.valid_until < cutoff)
            .execution_options(synchronize_session=False)
        )
        return int(self.session.execute(stmt).rowcount or 0)
