from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from authapi.services._shared.errors import InvalidAccessCredentialError

#: Raw entropy of an opaque refresh secret, in bytes (256 bits).
OPAQUE_SECRET_BYTES = 32


def generate_opaque_secret() -> str:
    """Return a fresh URL-safe refresh secret backed by the OS CSPRNG."""
    return secrets.token_urlsafe(OPAQUE_SECRET_BYTES)


def digest_secret(secret: str) -> str:
    """Return the SHA-256 hex digest used to store and look up a secret."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """
    Verified content of an access credential.

    :ivar subject: User id the credential was issued to.
    :ivar role: Role tag snapshot at issuance.
    :ivar issued_at: Issuance instant (UTC).
    :ivar expires_at: Expiry instant (UTC).
    """

    subject: int
    role: str
    issued_at: datetime
    expires_at: datetime


class TokenCodec(Protocol):
    """Port for minting and verifying both token kinds."""

    def issue_access_credential(self, subject: int, role: str) -> str: ...

    def verify_access_credential(self, token: str) -> AccessClaims: ...

    def generate_opaque_secret(self) -> str: ...

    def digest(self, secret: str) -> str: ...


class StubTokenCodec(TokenCodec):
    """
    Deterministic access credentials for unit tests (no Flask app needed).

    Opaque secrets and digests are the real ones: the rotation engine's
    behaviour depends on them being unpredictable and collision-free.
    """

    def __init__(self, access_expires: timedelta = timedelta(minutes=15)) -> None:
        self.access_expires = access_expires
        self._seq = 0
        self._issued: dict[str, AccessClaims] = {}

    def issue_access_credential(self, subject: int, role: str) -> str:
        self._seq += 1
        now = datetime.now(UTC)
        claims = AccessClaims(
            subject=int(subject),
            role=role,
            issued_at=now,
            expires_at=now + self.access_expires,
        )
        raw = f"access.{subject}.{role}.{self._seq}".encode()
        token = base64.urlsafe_b64encode(raw).decode("ascii")
        self._issued[token] = claims
        return token

    def verify_access_credential(self, token: str) -> AccessClaims:
        claims = self._issued.get(token)
        if claims is None or claims.expires_at <= datetime.now(UTC):
            raise InvalidAccessCredentialError()
        return claims

    def generate_opaque_secret(self) -> str:
        return generate_opaque_secret()

    def digest(self, secret: str) -> str:
        return digest_secret(secret)
