# authapi/infra/sql/sql_refresh_token_store.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError

from authapi.models.refresh_token import RefreshToken
from authapi.services._shared.errors import ConflictError, violates
from authapi.services._shared.ports import (
    NewRefreshRecord,
    RefreshRecordView,
    RefreshTokenStore,
)
from authapi.uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork

_DIGEST_MARKERS = ("uq_refresh_tokens_secret_digest", "refresh_tokens.secret_digest")


class _RotationLost(Exception):
    """Parent was revoked by someone else between classification and rotation."""


def to_view(row: RefreshToken) -> RefreshRecordView:
    """Copy an ORM row into an immutable read-model."""
    return RefreshRecordView(
        id=row.id,
        owner_id=row.user_id,
        secret_digest=row.secret_digest,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        revoked_at=row.revoked_at,
        superseded_by=row.superseded_by,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )


def _to_row(record: NewRefreshRecord) -> RefreshToken:
    return RefreshToken(
        id=record.id,
        user_id=record.owner_id,
        secret_digest=record.secret_digest,
        valid_from=record.valid_from,
        valid_until=record.valid_until,
        user_agent=record.origin.user_agent,
        ip_address=record.origin.ip_address,
    )


@dataclass(slots=True)
class SQLRefreshTokenStore(RefreshTokenStore):
    """
    Relational refresh record store.

    Each public method runs in its own Unit of Work, so every call is one
    committed transaction. Rotation inserts the child, flushes, then revokes
    the parent with ``WHERE revoked_at IS NULL``; zero affected rows rolls the
    whole unit back.

    :param uow_factory: Builds the writer Unit of Work (injectable for tests).
    :param read_uow_factory: Builds the read-only Unit of Work.
    """

    uow_factory: Callable[[], SQLAlchemyUnitOfWork] = field(default=SQLAlchemyUnitOfWork)
    read_uow_factory: Callable[[], SQLAlchemyReadOnlyUnitOfWork] = field(
        default=SQLAlchemyReadOnlyUnitOfWork
    )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    # -------------------------- API ----------------------------

    def insert(self, record: NewRefreshRecord) -> RefreshRecordView:
        try:
            with self.uow_factory() as uow:
                row = uow.refresh_tokens.add(_to_row(record))
                view = to_view(row)
        except IntegrityError as exc:
            if violates(exc, *_DIGEST_MARKERS):
                raise ConflictError("RefreshToken", "secret digest already exists") from exc
            raise
        return view

    def find_active_by_digest(self, digest: str) -> RefreshRecordView | None:
        with self.read_uow_factory() as uow:
            row = uow.refresh_tokens.get_by_digest(digest, active_only=True)
            return to_view(row) if row is not None else None

    def find_any_by_digest(self, digest: str) -> RefreshRecordView | None:
        with self.read_uow_factory() as uow:
            row = uow.refresh_tokens.get_by_digest(digest)
            return to_view(row) if row is not None else None

    def revoke(self, record_id: str, superseded_by: str | None = None) -> bool:
        with self.uow_factory() as uow:
            changed = uow.refresh_tokens.revoke_if_active(
                record_id, at=self._now(), superseded_by=superseded_by
            )
        return changed == 1

    def revoke_all_active_for_owner(self, owner_id: int) -> int:
        with self.uow_factory() as uow:
            return uow.refresh_tokens.revoke_all_active_for_user(owner_id, at=self._now())

    def delete_expired_before(self, cutoff: datetime) -> int:
        with self.uow_factory() as uow:
            return uow.refresh_tokens.delete_expired_before(cutoff)

    def rotate(self, parent_id: str, child: NewRefreshRecord) -> RefreshRecordView | None:
        try:
            with self.uow_factory() as uow:
                row = uow.refresh_tokens.add(_to_row(child))
                view = to_view(row)
                changed = uow.refresh_tokens.revoke_if_active(
                    parent_id, at=child.valid_from, superseded_by=child.id
                )
                if changed != 1:
                    raise _RotationLost(parent_id)
        except _RotationLost:
            return None
        except IntegrityError as exc:
            if violates(exc, *_DIGEST_MARKERS):
                raise ConflictError("RefreshToken", "secret digest already exists") from exc
            raise
        return view

    def list_for_owner(
        self, owner_id: int, *, active_only: bool = False
    ) -> list[RefreshRecordView]:
        with self.read_uow_factory() as uow:
            rows = uow.refresh_tokens.list_for_user(owner_id, active_only=active_only)
            return [to_view(row) for row in rows]
