# authapi/infra/jwt/flask_jwt_token_codec.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from jwt.exceptions import PyJWTError

from authapi.services._shared.errors import InvalidAccessCredentialError
from authapi.services._shared.ports import (
    AccessClaims,
    TokenCodec,
    digest_secret,
    generate_opaque_secret,
)


def claims_from_payload(payload: dict[str, Any]) -> AccessClaims:
    """
    Build :class:`AccessClaims` from an already verified JWT payload.

    :raises InvalidAccessCredentialError: If the token is not an access token
        or lacks ``sub``, ``role``, ``iat`` or ``exp``.
    """
    if payload.get("type") != "access":
        raise InvalidAccessCredentialError()
    try:
        return AccessClaims(
            subject=int(payload["sub"]),
            role=str(payload["role"]),
            issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=UTC),
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=UTC),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidAccessCredentialError() from exc


@dataclass(slots=True)
class JWTTokenCodec(TokenCodec):
    """
    Adapter for Flask-JWT-Extended.

    Access credentials are HS256 JWTs carrying ``sub``, ``role``, ``iat`` and
    ``exp``. Refresh secrets are opaque and never JWTs.

    .. note::
       Requires an active Flask app context with ``JWT_SECRET_KEY`` set.

    :param access_expires: Lifetime of an access credential.
    """

    access_expires: timedelta

    def issue_access_credential(self, subject: int, role: str) -> str:
        from flask_jwt_extended import create_access_token as _create_access

        # flask-jwt-extended requires a string subject
        return cast(
            str,
            _create_access(
                identity=str(subject),
                additional_claims={"role": role},
                expires_delta=self.access_expires,
            ),
        )

    def verify_access_credential(self, token: str) -> AccessClaims:
        from flask_jwt_extended import decode_token as _decode
        from flask_jwt_extended.exceptions import JWTExtendedException

        try:
            payload = cast(dict[str, Any], _decode(token))
        except (PyJWTError, JWTExtendedException) as exc:
            raise InvalidAccessCredentialError() from exc

        return claims_from_payload(payload)

    def generate_opaque_secret(self) -> str:
        return generate_opaque_secret()

    def digest(self, secret: str) -> str:
        return digest_secret(secret)
