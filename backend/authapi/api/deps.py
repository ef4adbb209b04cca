"""Shared API helpers for service wiring, authentication and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Flask, Response, current_app, g, jsonify, request
from flask_jwt_extended import get_jwt, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException, NoAuthorizationError
from jwt.exceptions import PyJWTError

from authapi.core.extensions import get_redis
from authapi.core.logger import ensure_request_id
from authapi.infra.jwt.flask_jwt_token_codec import JWTTokenCodec, claims_from_payload
from authapi.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
from authapi.infra.sql.sql_refresh_token_store import SQLRefreshTokenStore
from authapi.infra.sql.sql_user_directory import SQLUserDirectory
from authapi.services import AuthTokenConfig, ServiceContext, SessionService
from authapi.services._shared.errors import InvalidAccessCredentialError
from authapi.services._shared.ports import AccessClaims, RefreshTokenStore

F = TypeVar("F", bound=Callable[..., Any])

USER_AGENT_MAX = 500


# --------------------------------------------------------------------------- #
# Service wiring
# --------------------------------------------------------------------------- #


def token_config(app: Flask | None = None) -> AuthTokenConfig:
    """Build the lifetime configuration from ``app.config``."""
    cfg = (app or current_app).config
    return AuthTokenConfig(
        access_expires=cfg["JWT_ACCESS_TOKEN_EXPIRES"],
        refresh_expires=cfg["REFRESH_TOKEN_EXPIRES"],
    )


def build_token_codec(app: Flask | None = None) -> JWTTokenCodec:
    return JWTTokenCodec(access_expires=token_config(app).access_expires)


def build_refresh_store(app: Flask | None = None) -> RefreshTokenStore:
    """Return the refresh record store selected by ``TOKEN_STORE_BACKEND``."""
    backend = (app or current_app).config.get("TOKEN_STORE_BACKEND", "sql")
    if backend == "redis":
        return RedisRefreshTokenStore(get_redis())
    if backend == "sql":
        return SQLRefreshTokenStore()
    raise RuntimeError(f"Unknown TOKEN_STORE_BACKEND: {backend!r}")


def service_context() -> ServiceContext:
    """Capture the correlation id and the client origin of the current request."""
    user_agent = request.headers.get("User-Agent", "")
    return ServiceContext(
        request_id=ensure_request_id(),
        user_agent=user_agent[:USER_AGENT_MAX] or None,
        ip_address=request.remote_addr,
    )


def get_session_service() -> SessionService:
    """Return a request-scoped :class:`SessionService`."""
    return SessionService(
        codec=build_token_codec(),
        store=build_refresh_store(),
        users=SQLUserDirectory(),
        token_cfg=token_config(),
        ctx=service_context(),
    )


# --------------------------------------------------------------------------- #
# Authentication
# --------------------------------------------------------------------------- #


def current_claims() -> AccessClaims:
    """Return the claims verified by :func:`require_auth` for this request."""
    return g.claims


def require_auth(func: F) -> F:
    """Ensure the request carries a valid access credential.

    Lookup order and cookie name come from ``JWT_TOKEN_LOCATION`` and
    ``JWT_ACCESS_COOKIE_NAME``. Verified claims are exposed as ``g.claims``.
    Every failure surfaces as :class:`InvalidAccessCredentialError`.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            verify_jwt_in_request()
        except NoAuthorizationError as exc:
            raise InvalidAccessCredentialError("Missing access token.") from exc
        except (JWTExtendedException, PyJWTError) as exc:
            raise InvalidAccessCredentialError() from exc
        g.claims = claims_from_payload(get_jwt())
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


# --------------------------------------------------------------------------- #
# Responses
# --------------------------------------------------------------------------- #


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
