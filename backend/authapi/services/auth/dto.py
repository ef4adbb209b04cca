# authapi/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from authapi.services._shared.ports import RefreshRecordView, UserIdentity

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for login.

    :param email: User email (normalized).
    :type email: str
    :param password: Raw password (to be verified).
    :type password: str
    """

    email: str
    password: str


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param refresh_token: Opaque refresh secret from the cookie.
    :type refresh_token: str
    """

    refresh_token: str


@dataclass(frozen=True, slots=True)
class LogoutIn:
    """
    Input DTO for logout.

    :param refresh_token: Opaque refresh secret, possibly absent.
    :type refresh_token: str | None
    """

    refresh_token: str | None = None


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class SessionOut:
    """
    Result of a successful login or refresh.

    :param access_token: Signed access credential.
    :param refresh_token: Opaque refresh secret. Never logged.
    :param user: Identity payload.
    :param record_id: Id of the refresh record backing ``refresh_token``.
    :param access_expires_in: Access lifetime, for the cookie ``Max-Age``.
    :param refresh_expires_in: Refresh lifetime, for the cookie ``Max-Age``.
    """

    access_token: str
    refresh_token: str
    user: UserIdentity
    record_id: str
    access_expires_in: timedelta
    refresh_expires_in: timedelta

    def __repr__(self) -> str:
        return f"SessionOut(user_id={self.user.id}, record_id={self.record_id})"


@dataclass(frozen=True, slots=True)
class ActiveSessionOut:
    """Public view of an active refresh record (no digest)."""

    id: str
    valid_from: datetime
    valid_until: datetime
    user_agent: str | None
    ip_address: str | None
    current: bool = False

    @classmethod
    def from_view(cls, view: RefreshRecordView, *, current_id: str | None = None) -> ActiveSessionOut:
        return cls(
            id=view.id,
            valid_from=view.valid_from,
            valid_until=view.valid_until,
            user_agent=view.user_agent,
            ip_address=view.ip_address,
            current=view.id == current_id,
        )


# ------------------------------ Config DTO -------------------------------- #


@dataclass(frozen=True, slots=True)
class AuthTokenConfig:
    """
    Token emission configuration.

    :param access_expires: Access token lifetime.
    :type access_expires: timedelta
    :param refresh_expires: Refresh token lifetime.
    :type refresh_expires: timedelta
    """

    access_expires: timedelta = timedelta(minutes=15)
    refresh_expires: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        if self.access_expires <= timedelta(0) or self.refresh_expires <= timedelta(0):
            raise ValueError("Token lifetimes must be positive.")
        if self.refresh_expires <= self.access_expires:
            raise ValueError("Refresh lifetime must exceed the access lifetime.")
