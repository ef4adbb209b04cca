"""
Unit tests for the refresh-token state machine.

Runs entirely on the in-memory ports (no Flask app, no database): the stub
codec, :class:`InMemoryRefreshTokenStore` and :class:`InMemoryUserDirectory`.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum

import pytest
from freezegun import freeze_time

from authapi.services._shared.errors import (
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    RefreshTokenReusedError,
)
from authapi.services._shared.ports import (
    ClientOrigin,
    InMemoryRefreshTokenStore,
    RefreshRecordView,
)
from authapi.services.auth import rotation
from authapi.services.auth.dto import AuthTokenConfig
from authapi.services.auth.issuance import RefreshIssuer
from authapi.services.auth.rotation import PresentedState, RotationEngine

ORIGIN = ClientOrigin(user_agent="pytest/1.0", ip_address="192.0.2.10")
CFG = AuthTokenConfig(access_expires=timedelta(minutes=15), refresh_expires=timedelta(days=7))


def _engine(codec, store, directory) -> RotationEngine:
    issuer = RefreshIssuer(codec=codec, store=store, cfg=CFG)
    return RotationEngine(codec=codec, store=store, users=directory, issuer=issuer)


# ---- Fixtures ----------------------------------------------------------------


@pytest.fixture
def engine(codec, memory_store, directory) -> RotationEngine:
    return _engine(codec, memory_store, directory)


@pytest.fixture
def alice(directory):
    return directory.add("alice@example.com", "correct horse", role="user", full_name="Alice")


# ---- Classification ----------------------------------------------------------


class TestClassify:
    NOW = datetime(2026, 4, 1, 12, 0, tzinfo=UTC)

    def _view(self, **overrides) -> RefreshRecordView:
        fields = {
            "id": "r-1",
            "owner_id": 1,
            "secret_digest": "d" * 64,
            "valid_from": self.NOW - timedelta(days=1),
            "valid_until": self.NOW + timedelta(days=1),
        }
        fields.update(overrides)
        return RefreshRecordView(**fields)

    def test_missing_record_is_unknown(self):
        assert RotationEngine.classify(None, self.NOW) is PresentedState.UNKNOWN

    def test_revoked_record_is_reused(self):
        view = self._view(revoked_at=self.NOW - timedelta(hours=1))
        assert RotationEngine.classify(view, self.NOW) is PresentedState.REUSED

    def test_reuse_is_checked_before_expiry(self):
        view = self._view(
            valid_until=self.NOW - timedelta(hours=1),
            revoked_at=self.NOW - timedelta(hours=2),
        )
        assert RotationEngine.classify(view, self.NOW) is PresentedState.REUSED

    def test_active_past_window_is_expired(self):
        view = self._view(valid_until=self.NOW - timedelta(seconds=1))
        assert RotationEngine.classify(view, self.NOW) is PresentedState.EXPIRED

    def test_window_end_is_still_valid(self):
        view = self._view(valid_until=self.NOW)
        assert RotationEngine.classify(view, self.NOW) is PresentedState.VALID


class TestHandlerTable:
    def test_every_record_bearing_state_has_a_handler(self, engine):
        assert set(engine._handlers) == set(PresentedState) - {PresentedState.UNKNOWN}

    def test_unknown_secret_never_reaches_the_table(self, engine, memory_store):
        engine._handlers.clear()

        with pytest.raises(RefreshTokenNotFoundError):
            engine.rotate("never-issued", ClientOrigin())

        assert memory_store._by_id == {}

    def test_missing_handler_fails_at_construction(self, codec, memory_store, directory, monkeypatch):
        extended = Enum("PresentedState", ["UNKNOWN", "REUSED", "EXPIRED", "VALID", "LOCKED"])
        monkeypatch.setattr(rotation, "PresentedState", extended)

        with pytest.raises(RuntimeError, match="LOCKED"):
            _engine(codec, memory_store, directory)


# ---- Login -------------------------------------------------------------------


class TestStartLineage:
    def test_login_yields_an_active_root(self, engine, memory_store, alice, codec):
        outcome = engine.start_lineage(alice, ORIGIN)

        record = outcome.record
        assert record.revoked_at is None
        assert record.superseded_by is None
        assert record.owner_id == alice.id
        assert record.valid_until - record.valid_from == CFG.refresh_expires
        assert record.user_agent == ORIGIN.user_agent
        assert record.ip_address == ORIGIN.ip_address
        assert record.secret_digest == codec.digest(outcome.refresh_token)
        assert codec.verify_access_credential(outcome.access_token).subject == alice.id
        assert memory_store.list_for_owner(alice.id, active_only=True) == [record]

    def test_each_login_starts_a_new_lineage(self, engine, memory_store, alice):
        engine.start_lineage(alice, ORIGIN)
        engine.start_lineage(alice, ORIGIN)

        assert len(memory_store.list_for_owner(alice.id, active_only=True)) == 2

    def test_secret_is_not_in_repr(self, engine, alice):
        outcome = engine.start_lineage(alice, ORIGIN)
        assert outcome.refresh_token not in repr(outcome)


# ---- Rotation ----------------------------------------------------------------


class TestRotate:
    def test_fresh_secret_refreshes_exactly_once(self, engine, memory_store, alice):
        secret = engine.start_lineage(alice, ORIGIN).refresh_token

        rotated = engine.rotate(secret, ORIGIN)
        assert rotated.refresh_token != secret

        with pytest.raises(RefreshTokenReusedError) as exc_info:
            engine.rotate(secret, ORIGIN)

        assert exc_info.value.cascade_performed is True
        assert exc_info.value.owner_id == alice.id
        assert memory_store.list_for_owner(alice.id, active_only=True) == []

    def test_sequential_rotations_form_a_chain(self, engine, memory_store, alice):
        outcome = engine.start_lineage(alice, ORIGIN)
        ids = [outcome.record.id]
        for _ in range(5):
            outcome = engine.rotate(outcome.refresh_token, ORIGIN)
            ids.append(outcome.record.id)

        by_id = {v.id: v for v in memory_store.list_for_owner(alice.id)}
        for current, following in zip(ids, ids[1:]):
            assert by_id[current].superseded_by == following
            assert by_id[current].revoked_at == by_id[following].valid_from
        assert by_id[ids[-1]].superseded_by is None
        assert [v.id for v in memory_store.list_for_owner(alice.id, active_only=True)] == [ids[-1]]

    def test_lineage_is_acyclic(self, engine, memory_store, alice):
        outcome = engine.start_lineage(alice, ORIGIN)
        for _ in range(4):
            outcome = engine.rotate(outcome.refresh_token, ORIGIN)

        by_id = {v.id: v for v in memory_store.list_for_owner(alice.id)}
        for start in by_id:
            seen, node = set(), start
            while node is not None:
                assert node not in seen
                seen.add(node)
                node = by_id[node].superseded_by

    def test_replaying_the_original_revokes_the_child(self, engine, memory_store, alice):
        login = engine.start_lineage(alice, ORIGIN)
        child = engine.rotate(login.refresh_token, ORIGIN)

        with pytest.raises(RefreshTokenReusedError):
            engine.rotate(login.refresh_token, ORIGIN)

        assert memory_store.find_active_by_digest(child.record.secret_digest) is None
        assert memory_store.list_for_owner(alice.id, active_only=True) == []
        with pytest.raises(RefreshTokenReusedError):
            engine.rotate(child.refresh_token, ORIGIN)

    def test_reuse_cascade_reaches_other_devices(self, engine, memory_store, alice, directory):
        laptop = engine.start_lineage(alice, ORIGIN)
        phone = engine.start_lineage(alice, ClientOrigin(user_agent="phone"))
        bob = directory.add("bob@example.com", "pw")
        bobs = engine.start_lineage(bob, ORIGIN)
        engine.rotate(laptop.refresh_token, ORIGIN)

        with pytest.raises(RefreshTokenReusedError) as exc_info:
            engine.rotate(laptop.refresh_token, ORIGIN)

        assert exc_info.value.revoked_count == 2
        assert memory_store.find_active_by_digest(phone.record.secret_digest) is None
        assert memory_store.find_active_by_digest(bobs.record.secret_digest) is not None

    def test_unknown_secret_is_not_found_without_mutation(self, engine, memory_store, alice):
        login = engine.start_lineage(alice, ORIGIN)
        before = memory_store.list_for_owner(alice.id)

        with pytest.raises(RefreshTokenNotFoundError):
            engine.rotate("never-issued", ORIGIN)

        assert memory_store.list_for_owner(alice.id) == before
        assert memory_store.find_active_by_digest(login.record.secret_digest) is not None

    def test_expired_secret_leaves_other_records_alone(self, engine, memory_store, alice):
        with freeze_time("2026-06-01 08:00:00") as frozen:
            old = engine.start_lineage(alice, ORIGIN)
            frozen.tick(timedelta(days=6))
            recent = engine.start_lineage(alice, ORIGIN)
            frozen.tick(timedelta(days=1, seconds=1))

            with pytest.raises(RefreshTokenExpiredError):
                engine.rotate(old.refresh_token, ORIGIN)

        assert memory_store.find_active_by_digest(old.record.secret_digest) is not None
        assert memory_store.find_active_by_digest(recent.record.secret_digest) is not None

    def test_rotated_then_expired_secret_is_still_reuse(self, engine, memory_store, alice):
        with freeze_time("2026-06-01 08:00:00") as frozen:
            login = engine.start_lineage(alice, ORIGIN)
            engine.rotate(login.refresh_token, ORIGIN)
            frozen.tick(timedelta(days=8))

            with pytest.raises(RefreshTokenReusedError):
                engine.rotate(login.refresh_token, ORIGIN)

        assert memory_store.list_for_owner(alice.id, active_only=True) == []

    def test_role_is_reread_on_rotation(self, engine, alice, directory, codec):
        login = engine.start_lineage(alice, ORIGIN)
        directory.set_role(alice.id, "admin")

        rotated = engine.rotate(login.refresh_token, ORIGIN)

        assert rotated.user.role == "admin"
        assert codec.verify_access_credential(rotated.access_token).role == "admin"

    def test_child_records_the_new_origin(self, engine, alice):
        login = engine.start_lineage(alice, ORIGIN)
        moved = ClientOrigin(user_agent="other-agent", ip_address="198.51.100.7")

        child = engine.rotate(login.refresh_token, moved).record

        assert child.user_agent == "other-agent"
        assert child.ip_address == "198.51.100.7"

    def test_deleted_owner_is_not_found(self, engine, memory_store, alice, directory):
        login = engine.start_lineage(alice, ORIGIN)
        directory.remove(alice.id)

        with pytest.raises(RefreshTokenNotFoundError):
            engine.rotate(login.refresh_token, ORIGIN)

        assert memory_store.find_active_by_digest(login.record.secret_digest) is not None

    def test_lost_race_skips_the_cascade(self, codec, directory, alice):
        class _AlwaysLoses(InMemoryRefreshTokenStore):
            def rotate(self, parent_id, child):
                return None

        store = _AlwaysLoses()
        engine = _engine(codec, store, directory)
        login = engine.start_lineage(alice, ORIGIN)
        other = engine.start_lineage(alice, ORIGIN)

        with pytest.raises(RefreshTokenReusedError) as exc_info:
            engine.rotate(login.refresh_token, ORIGIN)

        assert exc_info.value.cascade_performed is False
        assert store.find_active_by_digest(other.record.secret_digest) is not None


# ---- Logout ------------------------------------------------------------------


class TestEndSession:
    def test_logout_revokes_the_record(self, engine, memory_store, alice):
        login = engine.start_lineage(alice, ORIGIN)

        assert engine.end_session(login.refresh_token) is True

        view = memory_store.find_any_by_digest(login.record.secret_digest)
        assert view.revoked_at is not None
        assert view.superseded_by is None

    def test_logout_of_unknown_or_revoked_is_a_noop(self, engine, memory_store, alice):
        login = engine.start_lineage(alice, ORIGIN)
        engine.end_session(login.refresh_token)
        before = memory_store.list_for_owner(alice.id)

        assert engine.end_session(login.refresh_token) is False
        assert engine.end_session("never-issued") is False
        assert memory_store.list_for_owner(alice.id) == before

    def test_logged_out_secret_then_triggers_reuse(self, engine, alice):
        login = engine.start_lineage(alice, ORIGIN)
        engine.end_session(login.refresh_token)

        with pytest.raises(RefreshTokenReusedError):
            engine.rotate(login.refresh_token, ORIGIN)
