"""Authentication endpoints using the service layer.

Both bearer secrets travel as ``HttpOnly`` cookies; response bodies only
carry the identity payload.
"""

from __future__ import annotations

from flask import Blueprint, current_app, request

from authapi.api.cookies import clear_session_cookies, set_session_cookies
from authapi.api.deps import (
    current_claims,
    get_session_service,
    json_response,
    require_auth,
    timing,
)
from authapi.schemas import AccessClaimsSchema, ActiveSessionSchema, LoginSchema, UserSchema
from authapi.services import LoginIn, LogoutIn, RefreshIn

bp = Blueprint("auth", __name__, url_prefix="/auth")

login_schema = LoginSchema()
user_schema = UserSchema()
claims_schema = AccessClaimsSchema()
sessions_schema = ActiveSessionSchema(many=True)


def _refresh_cookie() -> str | None:
    return request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])


@bp.post("/login")
@timing
def login():
    """Authenticate credentials and set a fresh cookie pair."""

    data = login_schema.load(request.get_json(silent=True) or {})
    service = get_session_service()
    session = service.login(LoginIn(email=data["email"], password=data["password"]))
    response = json_response({"data": {"user": user_schema.dump(session.user)}})
    return set_session_cookies(response, session)


@bp.post("/refresh")
@timing
def refresh():
    """Rotate the refresh cookie and set a new cookie pair."""

    service = get_session_service()
    session = service.refresh(RefreshIn(refresh_token=_refresh_cookie() or ""))
    response = json_response({"data": {"user": user_schema.dump(session.user)}})
    return set_session_cookies(response, session)


@bp.post("/logout")
@timing
def logout():
    """Revoke the refresh cookie (if any) and clear both cookies. Always 200."""

    service = get_session_service()
    service.logout(LogoutIn(refresh_token=_refresh_cookie()))
    return clear_session_cookies(json_response({"data": {"logged_out": True}}))


@bp.post("/logout-all")
@require_auth
@timing
def logout_all():
    """Revoke every active refresh record of the caller."""

    service = get_session_service()
    revoked = service.logout_all(current_claims().subject)
    return clear_session_cookies(json_response({"data": {"revoked": revoked}}))


@bp.get("/me")
@require_auth
@timing
def me():
    """Return the verified claims and the caller's current identity."""

    claims = current_claims()
    user = get_session_service().current_identity(claims.subject)
    return json_response(
        {"data": {"user": user_schema.dump(user), "claims": claims_schema.dump(claims)}}
    )


@bp.get("/sessions")
@require_auth
@timing
def sessions():
    """List the caller's active refresh records."""

    service = get_session_service()
    items = service.list_sessions(
        current_claims().subject, current_refresh_token=_refresh_cookie()
    )
    return json_response({"data": sessions_schema.dump(items)})
