# authapi/services/auth/rotation.py
"""
Refresh-token state machine.

A presented secret is classified into exactly one :class:`PresentedState`,
checked in declaration order, and dispatched to the single handler for that
state. ``UNKNOWN`` has no record to hand over and is answered directly; the
other states go through a handler table keyed by state:

1. ``UNKNOWN``: no record has this digest.
2. ``REUSED``: the record is revoked. Every active record of the owner is
   revoked before the error is raised.
3. ``EXPIRED``: the record is active but past ``valid_until``.
4. ``VALID``: the record is rotated; a child replaces it in one atomic unit.

Reuse is checked before expiry, so an expired secret that was already
rotated still triggers the cascade.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum, auto
from typing import NoReturn

from authapi.services._shared.errors import (
    RefreshTokenExpiredError,
    RefreshTokenNotFoundError,
    RefreshTokenReusedError,
)
from authapi.services._shared.ports import (
    ClientOrigin,
    RefreshRecordView,
    RefreshTokenStore,
    TokenCodec,
    UserDirectory,
    UserIdentity,
)
from authapi.services.auth.issuance import RefreshIssuer

log = logging.getLogger(__name__)


class PresentedState(Enum):
    """Classification of a presented refresh secret."""

    UNKNOWN = auto()
    REUSED = auto()
    EXPIRED = auto()
    VALID = auto()


@dataclass(frozen=True, slots=True)
class RotationOutcome:
    """
    Fresh credentials minted by a successful rotation or login.

    :ivar access_token: Signed access credential.
    :ivar refresh_token: Opaque refresh secret (returned once, never logged).
    :ivar record: The refresh record now backing ``refresh_token``.
    :ivar user: Current identity of the owner.
    """

    access_token: str
    refresh_token: str
    record: RefreshRecordView
    user: UserIdentity

    def __repr__(self) -> str:
        return f"RotationOutcome(record_id={self.record.id}, user_id={self.user.id})"


Handler = Callable[[RefreshRecordView, ClientOrigin, datetime], RotationOutcome]


class RotationEngine:
    """
    Classify presented refresh secrets and act on the result.

    :param codec: Token codec (access credentials, secrets, digests).
    :param store: Refresh record store.
    :param users: User directory, consulted for the current role.
    :param issuer: Refresh issuer sharing ``codec`` and ``store``.
    :raises RuntimeError: If a record-bearing :class:`PresentedState` member
        has no handler.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        store: RefreshTokenStore,
        users: UserDirectory,
        issuer: RefreshIssuer,
    ) -> None:
        self.codec = codec
        self.store = store
        self.users = users
        self.issuer = issuer
        self._handlers: dict[PresentedState, Handler] = {
            PresentedState.REUSED: self._on_reused,
            PresentedState.EXPIRED: self._on_expired,
            PresentedState.VALID: self._on_valid,
        }
        missing = set(PresentedState) - set(self._handlers) - {PresentedState.UNKNOWN}
        if missing:
            names = ", ".join(sorted(state.name for state in missing))
            raise RuntimeError(f"RotationEngine has no handler for: {names}")

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    # ------------------------------------------------------------------ #
    # Classification
    # ------------------------------------------------------------------ #

    @staticmethod
    def classify(record: RefreshRecordView | None, now: datetime) -> PresentedState:
        """Map a looked-up record to its state. Pure; no side effects."""
        if record is None:
            return PresentedState.UNKNOWN
        if not record.is_active:
            return PresentedState.REUSED
        if record.is_expired(now):
            return PresentedState.EXPIRED
        return PresentedState.VALID

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    def start_lineage(self, user: UserIdentity, origin: ClientOrigin) -> RotationOutcome:
        """
        Issue a brand-new lineage root for an authenticated user (login).

        Never classifies: login always starts a fresh chain.
        """
        now = self._now()
        secret, record = self.issuer.issue_root(user.id, origin, now)
        access = self.codec.issue_access_credential(user.id, user.role)
        log.info("auth.lineage.started", extra={"user_id": user.id, "record_id": record.id})
        return RotationOutcome(access_token=access, refresh_token=secret, record=record, user=user)

    def rotate(self, secret: str, origin: ClientOrigin) -> RotationOutcome:
        """
        Accept or reject a presented refresh secret.

        :raises RefreshTokenNotFoundError: Unknown secret.
        :raises RefreshTokenReusedError: Revoked secret, or a concurrent
            rotation of the same secret won.
        :raises RefreshTokenExpiredError: Active but expired secret.
        """
        now = self._now()
        record = self.store.find_any_by_digest(self.codec.digest(secret))
        if record is None:
            self._on_unknown()
        return self._handlers[self.classify(record, now)](record, origin, now)

    def end_session(self, secret: str) -> bool:
        """
        Revoke the record behind ``secret`` if it is still active (logout).

        Unknown or already revoked secrets are a silent no-op.

        :returns: True if a record was revoked.
        """
        record = self.store.find_active_by_digest(self.codec.digest(secret))
        if record is None:
            return False
        revoked = self.store.revoke(record.id)
        if revoked:
            log.info(
                "auth.logout.revoked",
                extra={"user_id": record.owner_id, "record_id": record.id},
            )
        return revoked

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _on_unknown() -> NoReturn:
        raise RefreshTokenNotFoundError()

    def _on_reused(
        self, record: RefreshRecordView, origin: ClientOrigin, now: datetime
    ) -> NoReturn:
        count = self.store.revoke_all_active_for_owner(record.owner_id)
        log.warning(
            "auth.refresh.reuse_detected",
            extra={"user_id": record.owner_id, "record_id": record.id, "revoked": count},
        )
        raise RefreshTokenReusedError(owner_id=record.owner_id, revoked_count=count)

    def _on_expired(
        self, record: RefreshRecordView, origin: ClientOrigin, now: datetime
    ) -> NoReturn:
        log.info("auth.refresh.expired", extra={"user_id": record.owner_id, "record_id": record.id})
        raise RefreshTokenExpiredError()

    def _on_valid(
        self, record: RefreshRecordView, origin: ClientOrigin, now: datetime
    ) -> RotationOutcome:
        # Role is re-read on every rotation.
        user = self.users.lookup_user_by_id(record.owner_id)
        if user is None:
            log.info("auth.refresh.owner_missing", extra={"record_id": record.id})
            raise RefreshTokenNotFoundError()

        secret, child = self.issuer.issue_child(record, origin, now)
        if child is None:
            log.warning(
                "auth.refresh.rotation_lost",
                extra={"user_id": record.owner_id, "parent_id": record.id},
            )
            raise RefreshTokenReusedError(owner_id=record.owner_id, cascade_performed=False)

        access = self.codec.issue_access_credential(user.id, user.role)
        log.info(
            "auth.refresh.rotated",
            extra={"user_id": user.id, "record_id": child.id, "parent_id": record.id},
        )
        return RotationOutcome(access_token=access, refresh_token=secret, record=child, user=user)
