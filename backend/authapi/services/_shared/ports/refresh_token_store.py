from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Protocol
from uuid import uuid4

from authapi.services._shared.errors import ConflictError


def _new_record_id() -> str:
    return str(uuid4())


@dataclass(frozen=True, slots=True)
class ClientOrigin:
    """Advisory client context captured when a record is created."""

    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True, slots=True)
class NewRefreshRecord:
    """
    Write-model for a refresh record about to be persisted.

    :ivar owner_id: Owner user id.
    :ivar secret_digest: SHA-256 hex digest of the bearer secret.
    :ivar valid_from: Start of the validity window (UTC).
    :ivar valid_until: End of the validity window (UTC).
    :ivar origin: Client context of the request that created it.
    :ivar id: Record identifier, generated client-side so a parent can point
        at its child inside the same unit of work.
    """

    owner_id: int
    secret_digest: str
    valid_from: datetime
    valid_until: datetime
    origin: ClientOrigin = field(default_factory=ClientOrigin)
    id: str = field(default_factory=_new_record_id)


@dataclass(frozen=True, slots=True)
class RefreshRecordView:
    """
    Read-model for a stored refresh record.

    :ivar id: Record identifier (UUID4 string).
    :ivar owner_id: Owner user id.
    :ivar secret_digest: Digest of the bearer secret. Never leaves the service.
    :ivar valid_from: Start of the validity window (UTC).
    :ivar valid_until: End of the validity window (UTC).
    :ivar revoked_at: Revocation instant, ``None`` while active.
    :ivar superseded_by: Id of the record that replaced this one on rotation.
    :ivar user_agent: Advisory client user agent.
    :ivar ip_address: Advisory client address.
    """

    id: str
    owner_id: int
    secret_digest: str
    valid_from: datetime
    valid_until: datetime
    revoked_at: datetime | None = None
    superseded_by: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None

    def is_expired(self, now: datetime) -> bool:
        """Return True once ``now`` is past the end of the validity window."""
        return now > self.valid_until


class RefreshTokenStore(Protocol):
    """
    Durable record of every refresh token ever issued.

    Every method is a single durable unit. The store never classifies tokens;
    it only persists and transitions records.
    """

    def insert(self, record: NewRefreshRecord) -> RefreshRecordView:
        """
        Persist a new active record.

        :raises ConflictError: If the digest already exists.
        """

    def find_active_by_digest(self, digest: str) -> RefreshRecordView | None:
        """Return the non-revoked record with this digest, if any."""

    def find_any_by_digest(self, digest: str) -> RefreshRecordView | None:
        """Return the record with this digest regardless of revocation."""

    def revoke(self, record_id: str, superseded_by: str | None = None) -> bool:
        """
        Revoke a record if it is still active.

        :returns: True if this call transitioned the record.
        """

    def revoke_all_active_for_owner(self, owner_id: int) -> int:
        """Revoke every active record of an owner. :returns: Count revoked."""

    def delete_expired_before(self, cutoff: datetime) -> int:
        """Delete records whose window ended before ``cutoff``. :returns: Count deleted."""

    def rotate(self, parent_id: str, child: NewRefreshRecord) -> RefreshRecordView | None:
        """
        Atomically insert ``child`` and revoke the parent, superseded by the child.

        The parent's ``revoked_at`` equals ``child.valid_from``.

        :returns: The child, or ``None`` if the parent was no longer active;
            in that case nothing is persisted.
        :raises ConflictError: If the child digest already exists.
        """

    def list_for_owner(
        self, owner_id: int, *, active_only: bool = False
    ) -> list[RefreshRecordView]:
        """List an owner's records, oldest first."""


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """
    In-memory refresh record store with atomic rotation behavior.

    .. note::
       Uses a threading lock to make each operation atomic in unit tests.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, RefreshRecordView] = {}
        self._by_digest: dict[str, str] = {}
        self._by_owner: dict[int, list[str]] = {}
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def _insert_locked(self, record: NewRefreshRecord) -> RefreshRecordView:
        if record.secret_digest in self._by_digest:
            raise ConflictError("RefreshToken", "secret digest already exists")
        if record.id in self._by_id:
            raise ConflictError("RefreshToken", "record id already exists")
        view = RefreshRecordView(
            id=record.id,
            owner_id=record.owner_id,
            secret_digest=record.secret_digest,
            valid_from=record.valid_from,
            valid_until=record.valid_until,
            user_agent=record.origin.user_agent,
            ip_address=record.origin.ip_address,
        )
        self._by_id[view.id] = view
        self._by_digest[view.secret_digest] = view.id
        self._by_owner.setdefault(view.owner_id, []).append(view.id)
        return view

    # -------------------------- API ----------------------------

    def insert(self, record: NewRefreshRecord) -> RefreshRecordView:
        with self._lock:
            return self._insert_locked(record)

    def find_active_by_digest(self, digest: str) -> RefreshRecordView | None:
        view = self.find_any_by_digest(digest)
        return view if view is not None and view.is_active else None

    def find_any_by_digest(self, digest: str) -> RefreshRecordView | None:
        with self._lock:
            record_id = self._by_digest.get(digest)
            return self._by_id.get(record_id) if record_id else None

    def revoke(self, record_id: str, superseded_by: str | None = None) -> bool:
        with self._lock:
            view = self._by_id.get(record_id)
            if view is None or not view.is_active:
                return False
            self._by_id[record_id] = replace(
                view, revoked_at=self._now(), superseded_by=superseded_by
            )
            return True

    def revoke_all_active_for_owner(self, owner_id: int) -> int:
        with self._lock:
            now = self._now()
            count = 0
            for record_id in self._by_owner.get(owner_id, []):
                view = self._by_id[record_id]
                if view.is_active:
                    self._by_id[record_id] = replace(view, revoked_at=now)
                    count += 1
            return count

    def delete_expired_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [v for v in self._by_id.values() if v.valid_until < cutoff]
            for view in doomed:
                del self._by_id[view.id]
                del self._by_digest[view.secret_digest]
                self._by_owner[view.owner_id].remove(view.id)
            # mirror ON DELETE SET NULL on the lineage pointer
            gone = {v.id for v in doomed}
            for record_id, view in list(self._by_id.items()):
                if view.superseded_by in gone:
                    self._by_id[record_id] = replace(view, superseded_by=None)
            return len(doomed)

    def rotate(self, parent_id: str, child: NewRefreshRecord) -> RefreshRecordView | None:
        with self._lock:
            parent = self._by_id.get(parent_id)
            if parent is None or not parent.is_active:
                return None
            view = self._insert_locked(child)
            self._by_id[parent_id] = replace(
                parent, revoked_at=child.valid_from, superseded_by=view.id
            )
            return view

    def list_for_owner(
        self, owner_id: int, *, active_only: bool = False
    ) -> list[RefreshRecordView]:
        with self._lock:
            views = [self._by_id[i] for i in self._by_owner.get(owner_id, [])]
        if active_only:
            views = [v for v in views if v.is_active]
        return views
