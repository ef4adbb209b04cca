# authapi/services/auth/service.py
from __future__ import annotations

import logging
from datetime import datetime

from authapi.services._shared.base import BaseService, ServiceContext
from authapi.services._shared.errors import (
    InvalidCredentialsError,
    NotFoundError,
    RefreshTokenNotFoundError,
)
from authapi.services._shared.ports import (
    RefreshTokenStore,
    TokenCodec,
    UserDirectory,
    UserIdentity,
)
from authapi.services.auth.dto import (
    ActiveSessionOut,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    SessionOut,
)
from authapi.services.auth.issuance import RefreshIssuer
from authapi.services.auth.rotation import RotationEngine, RotationOutcome

log = logging.getLogger(__name__)


class SessionService(BaseService):
    """
    Session lifecycle service (login / refresh / logout).

    Composes the token codec, the refresh record store and the user
    directory. Typed failures from the rotation engine propagate unchanged;
    the API layer maps them through :meth:`BaseService.translate_exceptions`.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        store: RefreshTokenStore,
        users: UserDirectory,
        token_cfg: AuthTokenConfig | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param codec: Adapter for access credentials, secrets and digests.
        :param store: Durable refresh record store (atomic rotation).
        :param users: User lookup and credential checks.
        :param token_cfg: Access/Refresh lifetime configuration.
        :param ctx: Request-scoped context carrying the client origin.
        """
        super().__init__(ctx=ctx)
        self.codec = codec
        self.store = store
        self.users = users
        self.cfg = token_cfg or AuthTokenConfig()
        self.issuer = RefreshIssuer(codec=codec, store=store, cfg=self.cfg)
        self.engine = RotationEngine(codec=codec, store=store, users=users, issuer=self.issuer)

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, dto: LoginIn) -> SessionOut:
        """
        Authenticate credentials and start a new refresh lineage.

        :raises InvalidCredentialsError: If the email/password pair is wrong.
        """
        user = self.users.lookup_credentials(dto.email, dto.password)
        if user is None:
            log.info("auth.login.failed", extra={"error_code": InvalidCredentialsError.code})
            raise InvalidCredentialsError()

        outcome = self.engine.start_lineage(user, self.ctx.origin)
        log.info("auth.login.ok", extra={"user_id": user.id, "record_id": outcome.record.id})
        return self._to_session(outcome)

    # ------------------------------------------------------------------ #
    # Refresh with atomic rotation
    # ------------------------------------------------------------------ #

    def refresh(self, dto: RefreshIn) -> SessionOut:
        """
        Rotate a refresh secret and emit a new token pair.

        Security
        --------
        - Revoked secrets trigger revocation of every active record of the
          owner (theft response) before the error is raised.
        - Concurrent presentations of one secret yield exactly one child.
        """
        if not dto.refresh_token:
            raise RefreshTokenNotFoundError()
        return self._to_session(self.engine.rotate(dto.refresh_token, self.ctx.origin))

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self, dto: LogoutIn) -> bool:
        """
        Revoke the presented refresh secret. Always succeeds.

        :returns: True if an active record was revoked.
        """
        if not dto.refresh_token:
            return False
        return self.engine.end_session(dto.refresh_token)

    def logout_all(self, user_id: int) -> int:
        """Revoke every active refresh record of ``user_id``."""
        count = self.store.revoke_all_active_for_owner(user_id)
        log.info("auth.logout_all", extra={"user_id": user_id, "revoked": count})
        return count

    # ------------------------------------------------------------------ #
    # Queries & housekeeping
    # ------------------------------------------------------------------ #

    def current_identity(self, user_id: int) -> UserIdentity:
        user = self.users.lookup_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def list_sessions(
        self, user_id: int, *, current_refresh_token: str | None = None
    ) -> list[ActiveSessionOut]:
        """
        List the caller's active, unexpired refresh records.

        :param current_refresh_token: Secret from the caller's cookie, used
            only to flag which entry is the current device.
        """
        now = self.now_utc()
        current_id: str | None = None
        if current_refresh_token:
            current = self.store.find_active_by_digest(self.codec.digest(current_refresh_token))
            if current is not None and current.owner_id == user_id:
                current_id = current.id
        return [
            ActiveSessionOut.from_view(view, current_id=current_id)
            for view in self.store.list_for_owner(user_id, active_only=True)
            if not view.is_expired(now)
        ]

    def purge_expired(self, before: datetime | None = None) -> int:
        """Delete every record whose validity window ended before ``before`` (default: now)."""
        cutoff = before or self.now_utc()
        deleted = self.store.delete_expired_before(cutoff)
        log.info("auth.tokens.purged", extra={"deleted": deleted})
        return deleted

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    def _to_session(self, outcome: RotationOutcome) -> SessionOut:
        return SessionOut(
            access_token=outcome.access_token,
            refresh_token=outcome.refresh_token,
            user=outcome.user,
            record_id=outcome.record.id,
            access_expires_in=self.cfg.access_expires,
            refresh_expires_in=self.cfg.refresh_expires,
        )
