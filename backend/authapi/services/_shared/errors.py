"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP. They serve as stable contracts between the token store
adapters, the rotation engine and the session façade.

Every authentication failure carries a stable machine-readable ``code`` and a
human message. The translation to HTTP responses (RFC 7807) is handled by
``authapi/core/errors.py`` via ``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, *markers: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    PostgreSQL reports the constraint name; SQLite only reports the
    ``table.column`` pair, so callers pass both.

    :param exc: The exception raised by SQLAlchemy during flush/commit.
    :param markers: Constraint names or ``table.column`` strings to look for.
    :returns: True if any marker appears in the driver message.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return any(marker.lower() in message for marker in markers)


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from adapters or domain logic.
    - The API layer translates them through ``BaseService.translate_exceptions``.
    """

    pass


# --------------------------------------------------------------------------- #
# Persistence errors
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found.

    :param entity: Entity name (e.g., "User").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint is violated.

    For refresh tokens this is the digest collision case: statistically
    negligible, retried once with a fresh secret by the issuer.

    :param entity: Entity name (e.g., "RefreshToken").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        return f"Conflict on {self.entity}: {self.detail}"


# --------------------------------------------------------------------------- #
# Authentication errors
# --------------------------------------------------------------------------- #


class AuthenticationError(ServiceError):
    """
    Base for expected, caller-recoverable authentication failures.

    :cvar code: Stable machine-readable identifier.
    :cvar message: Default human-readable message.
    """

    code = "AUTH_FAILED"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentialsError(AuthenticationError):
    """Email/password pair did not match a user."""

    code = "AUTH_INVALID_CREDENTIALS"
    message = "Invalid credentials."


class InvalidAccessCredentialError(AuthenticationError):
    """Access credential has a bad signature, wrong structure or is expired."""

    code = "AUTH_INVALID_ACCESS_TOKEN"
    message = "Access token is invalid or expired."


class RefreshTokenError(AuthenticationError):
    """Common parent of every refresh rejection (uniform at the HTTP edge)."""

    code = "AUTH_REFRESH_TOKEN_INVALID"
    message = "Refresh token is no longer valid. Please sign in."


class RefreshTokenNotFoundError(RefreshTokenError):
    """No record, active or revoked, matches the presented secret."""

    code = "AUTH_REFRESH_TOKEN_NOT_FOUND"
    message = "Refresh token not found."


class RefreshTokenExpiredError(RefreshTokenError):
    """The record is active but its validity window has lapsed."""

    code = "AUTH_REFRESH_TOKEN_EXPIRED"
    message = "Refresh token expired."


class RefreshTokenReusedError(RefreshTokenError):
    """
    An already-revoked refresh secret was presented again.

    The owner's active records have already been revoked by the time this is
    raised; callers must not repeat the cascade.

    :param owner_id: Owner of the reused record.
    :param revoked_count: Number of records revoked by the cascade.
    :param cascade_performed: ``False`` only for a lost concurrent rotation,
        where the sibling rotation's child is legitimate and stays active.
    """

    code = "AUTH_REFRESH_TOKEN_REVOKED"
    message = "Refresh token reuse detected. Please sign in again."

    def __init__(
        self,
        *,
        owner_id: int | str,
        revoked_count: int = 0,
        cascade_performed: bool = True,
    ) -> None:
        super().__init__()
        self.owner_id = owner_id
        self.revoked_count = revoked_count
        self.cascade_performed = cascade_performed

