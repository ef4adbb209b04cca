"""Tiny helpers shared across test modules."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

from authapi.services._shared.ports import (
    ClientOrigin,
    NewRefreshRecord,
    digest_secret,
    generate_opaque_secret,
)

LOGIN_URL = "/api/v1/auth/login"
REFRESH_URL = "/api/v1/auth/refresh"
LOGOUT_URL = "/api/v1/auth/logout"
LOGOUT_ALL_URL = "/api/v1/auth/logout-all"
ME_URL = "/api/v1/auth/me"
SESSIONS_URL = "/api/v1/auth/sessions"


@contextmanager
def not_raises(exception: type[BaseException]):
    """Context manager asserting that an exception is *not* raised.

    Parameters
    ----------
    exception: type[BaseException]
        Exception type that should not be raised within the context.

    Yields
    ------
    None
        Control enters the managed block when the exception is absent.
    """
    try:
        yield
    except exception as exc:  # pragma: no cover
        raise AssertionError(f"Did raise {exception}: {exc}") from exc


def new_record(
    owner_id: int,
    *,
    valid_from: datetime | None = None,
    lifetime: timedelta = timedelta(days=7),
    origin: ClientOrigin | None = None,
) -> tuple[str, NewRefreshRecord]:
    """Build an unsaved refresh record together with its raw secret.

    Returns
    -------
    tuple[str, NewRefreshRecord]
        ``(secret, record)``; ``record.secret_digest`` is the digest of
        ``secret``.
    """
    start = valid_from or datetime.now(UTC)
    secret = generate_opaque_secret()
    record = NewRefreshRecord(
        owner_id=owner_id,
        secret_digest=digest_secret(secret),
        valid_from=start,
        valid_until=start + lifetime,
        origin=origin or ClientOrigin(),
    )
    return secret, record


def cookie(client, name: str) -> str | None:
    """Return the value of a cookie held by the Flask test client."""
    found = client.get_cookie(name)
    return found.value if found is not None else None


def login(client, email: str, password: str):
    """POST the login form and return the response."""
    return client.post(LOGIN_URL, json={"email": email, "password": password})
