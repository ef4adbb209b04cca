"""Cookie transport for the access credential and the refresh secret."""

from __future__ import annotations

from flask import Response, current_app

from authapi.services import SessionOut


def _cookie_kwargs() -> dict[str, object]:
    cfg = current_app.config
    return {
        "httponly": True,
        "secure": bool(cfg["AUTH_COOKIE_SECURE"]),
        "samesite": cfg["AUTH_COOKIE_SAMESITE"],
        "path": cfg["AUTH_COOKIE_PATH"],
    }


def set_session_cookies(response: Response, session: SessionOut) -> Response:
    """Attach both cookies; ``Max-Age`` matches each token's lifetime."""
    cfg = current_app.config
    response.set_cookie(
        cfg["ACCESS_COOKIE_NAME"],
        session.access_token,
        max_age=int(session.access_expires_in.total_seconds()),
        **_cookie_kwargs(),
    )
    response.set_cookie(
        cfg["REFRESH_COOKIE_NAME"],
        session.refresh_token,
        max_age=int(session.refresh_expires_in.total_seconds()),
        **_cookie_kwargs(),
    )
    return response


def clear_session_cookies(response: Response) -> Response:
    cfg = current_app.config
    for name in (cfg["ACCESS_COOKIE_NAME"], cfg["REFRESH_COOKIE_NAME"]):
        response.delete_cookie(
            name,
            path=cfg["AUTH_COOKIE_PATH"],
            secure=bool(cfg["AUTH_COOKIE_SECURE"]),
            httponly=True,
            samesite=cfg["AUTH_COOKIE_SAMESITE"],
        )
    return response
