"""WSGI proxy middleware configuration helper."""

from __future__ import annotations

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix


def init_app(app: Flask) -> None:
    """Apply :class:`werkzeug.middleware.proxy_fix.ProxyFix` when enabled.

    ``request.remote_addr`` is recorded as the client origin of every refresh
    record, so behind a reverse proxy it must come from ``X-Forwarded-For``.

    Notes
    -----
    Controlled by ``USE_PROXYFIX`` (default ``True``). ``PROXYFIX_HOPS``
    sets how many proxies are trusted (default ``1``).
    """
    if app.config.get("USE_PROXYFIX", True):
        hops = int(app.config.get("PROXYFIX_HOPS", 1))
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops)
