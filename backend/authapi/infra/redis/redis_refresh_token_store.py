# comments in English; reST docstrings
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import redis  # type: ignore[import-untyped]

from authapi.services._shared.errors import ConflictError
from authapi.services._shared.ports import (
    NewRefreshRecord,
    RefreshRecordView,
    RefreshTokenStore,
)


EXPIRY_INDEX_KEY = "rt:exp"


def _s(value: Any) -> str:
    """Decode a Redis reply to ``str`` regardless of ``decode_responses``."""
    if isinstance(value, bytes | bytearray):
        return value.decode()
    return "" if value is None else str(value)


@dataclass(slots=True)
class RedisRefreshTokenStore(RefreshTokenStore):
    """
    Redis-backed refresh record store with atomic rotation.

    Layout
    ------
    - ``rt:{id}``: hash with the record fields (empty string for ``None``).
    - ``rt:d:{digest}``: record id, the unique digest index.
    - ``rt:u:{owner}``: list of the owner's record ids in creation order.
    - ``rt:u:{owner}:active``: set of the owner's active record ids.
    - ``rt:exp``: sorted set of record ids scored by ``valid_until``.

    Records carry no key TTL: revoked records must outlive their window until
    :meth:`delete_expired_before` sweeps them, so reuse stays detectable.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis

    # -------------------- helpers --------------------

    @staticmethod
    def _k(record_id: str) -> str:
        return f"rt:{record_id}"

    @staticmethod
    def _kd(digest: str) -> str:
        return f"rt:d:{digest}"

    @staticmethod
    def _ku(owner_id: int | str) -> str:
        return f"rt:u:{owner_id}"

    @staticmethod
    def _ka(owner_id: int | str) -> str:
        return f"rt:u:{owner_id}:active"

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    @staticmethod
    def _fields(h: dict[Any, Any]) -> dict[str, str]:
        return {_s(k): _s(v) for k, v in h.items()}

    def _view(self, record_id: str, h: dict[Any, Any]) -> RefreshRecordView:
        fields = self._fields(h)
        revoked_at = fields.get("revoked_at")
        return RefreshRecordView(
            id=record_id,
            owner_id=int(fields["owner_id"]),
            secret_digest=fields["secret_digest"],
            valid_from=datetime.fromisoformat(fields["valid_from"]),
            valid_until=datetime.fromisoformat(fields["valid_until"]),
            revoked_at=datetime.fromisoformat(revoked_at) if revoked_at else None,
            superseded_by=fields.get("superseded_by") or None,
            user_agent=fields.get("user_agent") or None,
            ip_address=fields.get("ip_address") or None,
        )

    def _get(self, record_id: str) -> RefreshRecordView | None:
        h = self.r.hgetall(self._k(record_id))
        return self._view(record_id, h) if h else None

    def _queue_insert(self, p: Any, record: NewRefreshRecord, supersedes: str = "") -> None:
        p.hset(
            self._k(record.id),
            mapping={
                "owner_id": str(record.owner_id),
                "secret_digest": record.secret_digest,
                "valid_from": record.valid_from.isoformat(),
                "valid_until": record.valid_until.isoformat(),
                "revoked_at": "",
                "superseded_by": "",
                "supersedes": supersedes,
                "user_agent": record.origin.user_agent or "",
                "ip_address": record.origin.ip_address or "",
            },
        )
        p.set(self._kd(record.secret_digest), record.id)
        p.rpush(self._ku(record.owner_id), record.id)
        p.sadd(self._ka(record.owner_id), record.id)
        p.zadd(EXPIRY_INDEX_KEY, {record.id: record.valid_until.timestamp()})

    # -------------------- API ------------------------

    def insert(self, record: NewRefreshRecord) -> RefreshRecordView:
        k_digest = self._kd(record.secret_digest)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(k_digest, self._k(record.id))
                    if p.exists(k_digest) or p.exists(self._k(record.id)):
                        p.unwatch()
                        raise ConflictError("RefreshToken", "secret digest already exists")
                    p.multi()
                    self._queue_insert(p, record)
                    p.execute()
                break
            except redis.WatchError:
                # Concurrent modification detected; retry loop
                continue
        return RefreshRecordView(
            id=record.id,
            owner_id=record.owner_id,
            secret_digest=record.secret_digest,
            valid_from=record.valid_from,
            valid_until=record.valid_until,
            user_agent=record.origin.user_agent,
            ip_address=record.origin.ip_address,
        )

    def find_active_by_digest(self, digest: str) -> RefreshRecordView | None:
        view = self.find_any_by_digest(digest)
        return view if view is not None and view.is_active else None

    def find_any_by_digest(self, digest: str) -> RefreshRecordView | None:
        record_id = self.r.get(self._kd(digest))
        if not record_id:
            return None
        return self._get(_s(record_id))

    def revoke(self, record_id: str, superseded_by: str | None = None) -> bool:
        key = self._k(record_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    h = p.hgetall(key)
                    if not h:
                        p.unwatch()
                        return False
                    view = self._view(record_id, h)
                    if not view.is_active:
                        p.unwatch()
                        return False
                    p.multi()
                    p.hset(
                        key,
                        mapping={
                            "revoked_at": self._now().isoformat(),
                            "superseded_by": superseded_by or "",
                        },
                    )
                    p.srem(self._ka(view.owner_id), record_id)
                    p.execute()
                return True
            except redis.WatchError:
                continue

    def revoke_all_active_for_owner(self, owner_id: int) -> int:
        k_active = self._ka(owner_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(k_active)
                    ids = [_s(m) for m in p.smembers(k_active)]
                    if not ids:
                        p.unwatch()
                        return 0
                    now = self._now().isoformat()
                    p.multi()
                    for record_id in ids:
                        p.hset(self._k(record_id), "revoked_at", now)
                    p.delete(k_active)
                    p.execute()
                return len(ids)
            except redis.WatchError:
                continue

    def delete_expired_before(self, cutoff: datetime) -> int:
        upper = f"({cutoff.timestamp()}"
        ids = [_s(m) for m in self.r.zrangebyscore(EXPIRY_INDEX_KEY, "-inf", upper)]
        return sum(1 for record_id in ids if self._delete_record(record_id))

    def _delete_record(self, record_id: str) -> bool:
        """Drop one record and its index entries. False if it was already gone."""
        key = self._k(record_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    h = p.hgetall(key)
                    supersedes = self._fields(h).get("supersedes", "")
                    k_parent = self._k(supersedes) if supersedes else ""
                    if k_parent:
                        p.watch(k_parent)
                    parent_exists = bool(k_parent) and bool(p.exists(k_parent))

                    p.multi()
                    if h:
                        view = self._view(record_id, h)
                        p.delete(key)
                        p.delete(self._kd(view.secret_digest))
                        p.lrem(self._ku(view.owner_id), 0, record_id)
                        p.srem(self._ka(view.owner_id), record_id)
                        # mirror ON DELETE SET NULL on the lineage pointer
                        if parent_exists:
                            p.hset(k_parent, "superseded_by", "")
                    p.zrem(EXPIRY_INDEX_KEY, record_id)
                    p.execute()
                return bool(h)
            except redis.WatchError:
                continue

    def rotate(self, parent_id: str, child: NewRefreshRecord) -> RefreshRecordView | None:
        k_parent = self._k(parent_id)
        k_digest = self._kd(child.secret_digest)
        while True:
            try:
                with self.r.pipeline() as p:
                    # Watch the keys that participate in the invariant
                    p.watch(k_parent, k_digest)
                    h = p.hgetall(k_parent)
                    if not h or not self._view(parent_id, h).is_active:
                        p.unwatch()
                        return None
                    if p.exists(k_digest):
                        p.unwatch()
                        raise ConflictError("RefreshToken", "secret digest already exists")
                    parent = self._view(parent_id, h)

                    p.multi()
                    self._queue_insert(p, child, supersedes=parent_id)
                    p.hset(
                        k_parent,
                        mapping={
                            "revoked_at": child.valid_from.isoformat(),
                            "superseded_by": child.id,
                        },
                    )
                    p.srem(self._ka(parent.owner_id), parent_id)
                    p.execute()
                break
            except redis.WatchError:
                # Concurrent modification detected; retry loop
                continue
        return self._get(child.id)

    def list_for_owner(
        self, owner_id: int, *, active_only: bool = False
    ) -> list[RefreshRecordView]:
        views: list[RefreshRecordView] = []
        for member in self.r.lrange(self._ku(owner_id), 0, -1):
            view = self._get(_s(member))
            if view is None:
                continue
            if active_only and not view.is_active:
                continue
            views.append(view)
        return views
