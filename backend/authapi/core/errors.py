"""RFC 7807 ``application/problem+json`` rendering for every error path."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from authapi.core.logger import ensure_request_id
from authapi.services._shared.errors import ServiceError

log = logging.getLogger(__name__)

PROBLEM_MIMETYPE = "application/problem+json"


def status_code_name(status: int) -> str:
    """Return the snake_case error code for an HTTP status (``405`` -> ``method_not_allowed``)."""
    try:
        return HTTPStatus(status).name.lower()
    except ValueError:
        return "error"


def problem(
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a Problem Details body.

    :param status: HTTP status code.
    :param code: Stable machine-readable code (``invalid_refresh_token``, ...).
    :param message: Client-safe summary; never carries internals.
    :param details: Optional structured payload, e.g. field errors.
    :returns: Problem dictionary including the correlation id.
    """
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if request else None,
        "code": code,
        "request_id": ensure_request_id(),
    }
    if details:
        body["details"] = details
    return body


def problem_response(
    body: dict[str, Any], headers: dict[str, str] | None = None
) -> tuple[Response, int]:
    resp = jsonify(body)
    resp.mimetype = PROBLEM_MIMETYPE
    resp.headers.update(headers or {})
    return resp, body["status"]


class APIError(Exception):
    """
    Error that maps one-to-one to an HTTP problem response.

    :ivar message: Client-facing summary.
    :ivar status_code: HTTP status.
    :ivar code: Stable snake_case identifier.
    :ivar details: Optional structured context.
    :ivar headers: Extra response headers.
    """

    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.BAD_REQUEST,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}
        self.headers = headers or {}

    def to_problem(self) -> dict[str, Any]:
        return problem(self.status_code, self.code, self.message, self.details or None)


class NotFound(APIError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, status_code=HTTPStatus.CONFLICT, code="conflict")


class Unauthorized(APIError):
    """401 for any authentication failure. Responses are never cached."""

    def __init__(self, message: str = "Unauthorized", code: str = "unauthorized") -> None:
        super().__init__(
            message,
            status_code=HTTPStatus.UNAUTHORIZED,
            code=code,
            headers={"WWW-Authenticate": "Bearer", "Cache-Control": "no-store"},
        )


def init_app(app: Flask) -> None:
    """
    Register the problem+json error handlers.

    Service errors go through ``BaseService.translate_exceptions`` first.
    4xx are logged as warnings, 5xx as errors with ``exc_info``.
    """

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        body = err.to_problem()
        level = logging.ERROR if err.status_code >= 500 else logging.WARNING
        log.log(
            level,
            "api.error code=%s status=%s",
            err.code,
            err.status_code,
            extra={"error_code": err.code},
        )
        return problem_response(body, err.headers)

    @app.errorhandler(ServiceError)
    def handle_service_error(err: ServiceError):
        from authapi.services._shared.base import BaseService

        translated = BaseService().translate_exceptions(err)
        if isinstance(translated, APIError):
            return handle_api_error(translated)
        return handle_unexpected_error(err)  # pragma: no cover - every ServiceError maps

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        code = status_code_name(status)
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        else:
            message = (err.description or HTTPStatus(status).phrase).strip()
        log.warning("http.error code=%s status=%s", code, status, extra={"error_code": code})
        return problem_response(problem(status, code, message))

    @app.errorhandler(MarshmallowValidationError)
    def handle_validation_error(err: MarshmallowValidationError):
        log.warning("api.validation_failed", extra={"error_code": "validation_error"})
        return problem_response(
            problem(
                HTTPStatus.UNPROCESSABLE_ENTITY,
                "validation_error",
                "Validation failed",
                {"errors": err.normalized_messages()},
            )
        )

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        log.error("db.integrity_error", exc_info=err)
        return problem_response(problem(HTTPStatus.CONFLICT, "conflict", "Resource conflict"))

    @app.errorhandler(OperationalError)
    def handle_operational_error(err: OperationalError):
        log.error("db.operational_error", exc_info=err)
        return problem_response(
            problem(
                HTTPStatus.SERVICE_UNAVAILABLE,
                "service_unavailable",
                "Service temporarily unavailable",
            )
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        log.error("api.unhandled_exception", exc_info=err)
        return problem_response(
            problem(HTTPStatus.INTERNAL_SERVER_ERROR, "internal_server_error", "Unexpected error")
        )
