# authapi/services/_shared/base.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from authapi.core import errors as api_errors
from authapi.services._shared.errors import (
    AuthenticationError,
    ConflictError,
    InvalidAccessCredentialError,
    InvalidCredentialsError,
    NotFoundError,
    RefreshTokenError,
    ServiceError,
)
from authapi.services._shared.ports import ClientOrigin

log = logging.getLogger(__name__)

#: Single message for every refresh rejection; internal codes stay in the logs.
REFRESH_REJECTED_MESSAGE = RefreshTokenError.message


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param request_id: Correlation id for logging/tracing.
    :param user_agent: Client user agent of the current request.
    :param ip_address: Client address of the current request.
    """

    request_id: str | None = None
    user_agent: str | None = None
    ip_address: str | None = None

    @property
    def origin(self) -> ClientOrigin:
        return ClientOrigin(user_agent=self.user_agent, ip_address=self.ip_address)


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Hold the request-scoped :class:`ServiceContext`.
    * Centralize error translation and the service clock.
    * Keep services thin, orchestration-only, no web/ORM leakage.
    """

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        """
        Initialize the base service.

        :param ctx: Optional request-scoped context (tracing, client origin).
        :type ctx: ServiceContext | None
        """
        self.ctx = ctx or ServiceContext()

    @staticmethod
    def now_utc() -> datetime:
        """Return the current instant as an aware UTC datetime."""
        return datetime.now(UTC)

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map domain/service-level errors to API-level (HTTP) errors.

        Refresh failures collapse into one uniform 401 so clients cannot tell
        an unknown secret from a reused or expired one.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        if isinstance(exc, RefreshTokenError):
            log.info(
                "auth.refresh.rejected",
                extra={"error_code": exc.code},
            )
            return api_errors.Unauthorized(REFRESH_REJECTED_MESSAGE, code="invalid_refresh_token")

        if isinstance(exc, InvalidCredentialsError):
            return api_errors.Unauthorized(exc.message, code="invalid_credentials")

        if isinstance(exc, InvalidAccessCredentialError):
            return api_errors.Unauthorized(exc.message, code="invalid_access_token")

        if isinstance(exc, AuthenticationError):
            return api_errors.Unauthorized(exc.message)

        if isinstance(exc, NotFoundError):
            # → 404 Not Found
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            # → 409 Conflict
            return api_errors.Conflict(str(exc))

        # Any other ServiceError subclass → 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(message=str(exc), status_code=400, code="bad_request")

        # Fallback: return untouched (will bubble up to Flask handler)
        return exc
