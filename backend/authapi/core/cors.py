"""CORS configuration for the cookie-authenticated API."""

from __future__ import annotations

import logging

from flask import Flask
from flask_cors import CORS

from authapi.core.logger import REQUEST_ID_HEADER

log = logging.getLogger(__name__)


def init_app(app: Flask) -> None:
    """Configure CORS for API endpoints based on application config.

    Parameters
    ----------
    app: flask.Flask
        Application whose ``CORS_ORIGINS`` and ``CORS_MAX_AGE`` settings are
        consulted.

    Notes
    -----
    Browsers only send the session cookies cross-origin when credentials
    are allowed, which in turn requires an explicit origin list. A blank or
    ``"*"`` setting therefore allows any origin without credentials, which
    leaves the cookie flow usable from the same origin only.
    """
    raw_origins = app.config.get("CORS_ORIGINS", "")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    wildcard = len(origins) == 0 or origins == ["*"]
    if wildcard:
        log.warning("cors.wildcard_origins: credentialed cross-origin requests are disabled")

    CORS(
        app,
        resources={r"/api/*": {"origins": "*" if wildcard else origins}},
        supports_credentials=not wildcard,
        expose_headers=[REQUEST_ID_HEADER],
        max_age=app.config.get("CORS_MAX_AGE", 600),
    )
