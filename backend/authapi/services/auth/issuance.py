# authapi/services/auth/issuance.py
from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from authapi.services._shared.errors import ConflictError
from authapi.services._shared.ports import (
    ClientOrigin,
    NewRefreshRecord,
    RefreshRecordView,
    RefreshTokenStore,
    TokenCodec,
)
from authapi.services.auth.dto import AuthTokenConfig

log = logging.getLogger(__name__)

T = TypeVar("T")

#: A digest collision is retried once with a fresh secret, then treated as fatal.
MAX_MINT_ATTEMPTS = 2


class RefreshIssuer:
    """
    Mint refresh secrets and persist their records.

    The raw secret is returned to the caller exactly once and never stored;
    only its digest reaches the store.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        store: RefreshTokenStore,
        cfg: AuthTokenConfig,
    ) -> None:
        self.codec = codec
        self.store = store
        self.cfg = cfg

    def draft(
        self, owner_id: int, origin: ClientOrigin, now: datetime
    ) -> tuple[str, NewRefreshRecord]:
        """
        Generate a secret and the record that would represent it.

        :returns: ``(secret, record)``; nothing is persisted.
        """
        secret = self.codec.generate_opaque_secret()
        record = NewRefreshRecord(
            owner_id=owner_id,
            secret_digest=self.codec.digest(secret),
            valid_from=now,
            valid_until=now + self.cfg.refresh_expires,
            origin=origin,
        )
        return secret, record

    def issue_root(
        self, owner_id: int, origin: ClientOrigin, now: datetime
    ) -> tuple[str, RefreshRecordView]:
        """Persist a new lineage root (login)."""

        def attempt() -> tuple[str, RefreshRecordView]:
            secret, record = self.draft(owner_id, origin, now)
            return secret, self.store.insert(record)

        return self._with_collision_retry(attempt)

    def issue_child(
        self, parent: RefreshRecordView, origin: ClientOrigin, now: datetime
    ) -> tuple[str, RefreshRecordView | None]:
        """
        Atomically replace ``parent`` with a fresh child.

        :returns: ``(secret, child)``; ``child`` is ``None`` when the parent
            was revoked concurrently and nothing was persisted.
        """

        def attempt() -> tuple[str, RefreshRecordView | None]:
            secret, record = self.draft(parent.owner_id, origin, now)
            return secret, self.store.rotate(parent.id, record)

        return self._with_collision_retry(attempt)

    @staticmethod
    def _with_collision_retry(fn: Callable[[], T]) -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except ConflictError as exc:
                log.warning("auth.refresh.digest_collision", extra={"error_code": "conflict"})
                if attempt >= MAX_MINT_ATTEMPTS:
                    raise RuntimeError("Could not mint a unique refresh secret.") from exc
                attempt += 1
