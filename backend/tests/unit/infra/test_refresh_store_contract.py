"""
Behaviour shared by every refresh record store.

The same cases run against the in-memory store, the SQL store (transactional
SQLite session) and the Redis store (fakeredis), so the rotation engine can
rely on one contract whichever backend is configured.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from authapi.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
from authapi.infra.sql.sql_refresh_token_store import SQLRefreshTokenStore
from authapi.services._shared.errors import ConflictError
from authapi.services._shared.ports import (
    ClientOrigin,
    InMemoryRefreshTokenStore,
    NewRefreshRecord,
    RefreshTokenStore,
)
from tests.factories import SQLAlchemySession
from tests.factories.user import UserFactory
from tests.helpers.utils import new_record

T0 = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


@dataclass
class StoreBackend:
    store: RefreshTokenStore
    new_owner: Callable[[], int]


@pytest.fixture(params=["memory", "redis", "sql"])
def backend(request) -> StoreBackend:
    if request.param == "memory":
        return StoreBackend(InMemoryRefreshTokenStore(), itertools.count(1).__next__)
    if request.param == "redis":
        return StoreBackend(
            RedisRefreshTokenStore(r=request.getfixturevalue("fake_redis")),
            itertools.count(1).__next__,
        )
    SQLAlchemySession.set(request.getfixturevalue("session"))
    return StoreBackend(SQLRefreshTokenStore(), lambda: UserFactory().id)


def _child_of(parent_owner: int, at: datetime, lifetime=timedelta(days=7)) -> NewRefreshRecord:
    return new_record(parent_owner, valid_from=at, lifetime=lifetime)[1]


# ---- insert / lookups --------------------------------------------------------


class TestInsertAndLookup:
    def test_insert_returns_active_view(self, backend):
        owner = backend.new_owner()
        _, record = new_record(
            owner, valid_from=T0, origin=ClientOrigin(user_agent="ua/1", ip_address="10.0.0.1")
        )

        view = backend.store.insert(record)

        assert view.id == record.id
        assert view.owner_id == owner
        assert view.revoked_at is None
        assert view.superseded_by is None
        assert view.valid_from == T0
        assert view.valid_until == T0 + timedelta(days=7)
        assert view.user_agent == "ua/1"
        assert view.ip_address == "10.0.0.1"

    def test_find_by_digest_round_trips_fields(self, backend):
        owner = backend.new_owner()
        _, record = new_record(owner, valid_from=T0)
        backend.store.insert(record)

        found = backend.store.find_any_by_digest(record.secret_digest)

        assert found is not None
        assert found.id == record.id
        assert found.valid_from == T0
        assert found.valid_from.tzinfo is not None
        assert backend.store.find_active_by_digest(record.secret_digest) == found

    def test_unknown_digest_returns_none(self, backend):
        assert backend.store.find_any_by_digest("0" * 64) is None
        assert backend.store.find_active_by_digest("0" * 64) is None

    def test_duplicate_digest_is_a_conflict(self, backend):
        owner = backend.new_owner()
        _, first = new_record(owner, valid_from=T0)
        backend.store.insert(first)
        clash = NewRefreshRecord(
            owner_id=owner,
            secret_digest=first.secret_digest,
            valid_from=T0,
            valid_until=T0 + timedelta(days=1),
        )

        with pytest.raises(ConflictError):
            backend.store.insert(clash)

        assert backend.store.find_any_by_digest(first.secret_digest).id == first.id


# ---- revocation --------------------------------------------------------------


class TestRevoke:
    def test_revoke_transitions_once(self, backend):
        owner = backend.new_owner()
        _, record = new_record(owner, valid_from=T0)
        backend.store.insert(record)

        assert backend.store.revoke(record.id) is True
        assert backend.store.revoke(record.id) is False

        view = backend.store.find_any_by_digest(record.secret_digest)
        assert view.revoked_at is not None
        assert view.superseded_by is None
        assert backend.store.find_active_by_digest(record.secret_digest) is None

    def test_revoke_unknown_id_is_false(self, backend):
        assert backend.store.revoke("5b0c1b43-0000-4000-8000-000000000000") is False

    def test_revoke_all_active_for_owner(self, backend):
        owner, other = backend.new_owner(), backend.new_owner()
        mine = [new_record(owner, valid_from=T0 + timedelta(minutes=i))[1] for i in range(3)]
        theirs = new_record(other, valid_from=T0)[1]
        for record in [*mine, theirs]:
            backend.store.insert(record)
        backend.store.revoke(mine[0].id)

        assert backend.store.revoke_all_active_for_owner(owner) == 2
        assert backend.store.revoke_all_active_for_owner(owner) == 0
        assert backend.store.list_for_owner(owner, active_only=True) == []
        assert [v.id for v in backend.store.list_for_owner(other, active_only=True)] == [theirs.id]


# ---- rotation ----------------------------------------------------------------


class TestRotate:
    def test_rotate_links_parent_to_child(self, backend):
        owner = backend.new_owner()
        _, parent = new_record(owner, valid_from=T0)
        backend.store.insert(parent)
        child = _child_of(owner, T0 + timedelta(hours=1))

        view = backend.store.rotate(parent.id, child)

        assert view is not None
        assert view.id == child.id
        assert view.is_active
        old = backend.store.find_any_by_digest(parent.secret_digest)
        assert old.revoked_at == child.valid_from
        assert old.superseded_by == child.id

    def test_rotate_of_revoked_parent_persists_nothing(self, backend):
        owner = backend.new_owner()
        _, parent = new_record(owner, valid_from=T0)
        backend.store.insert(parent)
        backend.store.revoke(parent.id)
        child = _child_of(owner, T0 + timedelta(hours=1))

        assert backend.store.rotate(parent.id, child) is None

        assert backend.store.find_any_by_digest(child.secret_digest) is None
        old = backend.store.find_any_by_digest(parent.secret_digest)
        assert old.superseded_by is None
        assert [v.id for v in backend.store.list_for_owner(owner)] == [parent.id]

    def test_rotate_conflict_leaves_parent_active(self, backend):
        owner = backend.new_owner()
        _, parent = new_record(owner, valid_from=T0)
        _, other = new_record(owner, valid_from=T0)
        backend.store.insert(parent)
        backend.store.insert(other)
        clash = NewRefreshRecord(
            owner_id=owner,
            secret_digest=other.secret_digest,
            valid_from=T0 + timedelta(hours=1),
            valid_until=T0 + timedelta(days=2),
        )

        with pytest.raises(ConflictError):
            backend.store.rotate(parent.id, clash)

        assert backend.store.find_active_by_digest(parent.secret_digest) is not None

    def test_chain_of_rotations(self, backend):
        owner = backend.new_owner()
        _, root = new_record(owner, valid_from=T0)
        backend.store.insert(root)
        ids = [root.id]
        for step in range(1, 5):
            child = _child_of(owner, T0 + timedelta(hours=step))
            backend.store.rotate(ids[-1], child)
            ids.append(child.id)

        views = {v.id: v for v in backend.store.list_for_owner(owner)}

        for current, following in zip(ids, ids[1:]):
            assert views[current].superseded_by == following
            assert not views[current].is_active
        assert views[ids[-1]].is_active
        assert [v.id for v in backend.store.list_for_owner(owner, active_only=True)] == [ids[-1]]


# ---- housekeeping ------------------------------------------------------------


class TestDeleteExpired:
    def test_deletes_only_windows_ended_before_cutoff(self, backend):
        owner = backend.new_owner()
        _, stale = new_record(owner, valid_from=T0, lifetime=timedelta(hours=1))
        _, boundary = new_record(owner, valid_from=T0, lifetime=timedelta(hours=2))
        _, fresh = new_record(owner, valid_from=T0, lifetime=timedelta(days=1))
        for record in (stale, boundary, fresh):
            backend.store.insert(record)

        deleted = backend.store.delete_expired_before(T0 + timedelta(hours=2))

        assert deleted == 1
        assert backend.store.find_any_by_digest(stale.secret_digest) is None
        assert backend.store.find_any_by_digest(boundary.secret_digest) is not None
        assert {v.id for v in backend.store.list_for_owner(owner)} == {boundary.id, fresh.id}

    def test_deleting_a_child_clears_the_parent_pointer(self, backend):
        owner = backend.new_owner()
        _, parent = new_record(owner, valid_from=T0, lifetime=timedelta(days=7))
        backend.store.insert(parent)
        child = _child_of(owner, T0 + timedelta(days=1), lifetime=timedelta(hours=1))
        backend.store.rotate(parent.id, child)

        assert backend.store.delete_expired_before(T0 + timedelta(days=2)) == 1

        old = backend.store.find_any_by_digest(parent.secret_digest)
        assert old is not None
        assert old.superseded_by is None
        assert old.revoked_at is not None

    def test_nothing_to_delete(self, backend):
        owner = backend.new_owner()
        backend.store.insert(new_record(owner, valid_from=T0)[1])
        assert backend.store.delete_expired_before(T0) == 0
