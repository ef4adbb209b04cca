"""HTTP layer: versioned blueprints mounted under ``API_BASE_PREFIX``."""

from __future__ import annotations

from collections.abc import Iterable

from flask import Blueprint, Flask


def mount(app: Flask, prefix: str, entries: Iterable[tuple[Blueprint, str]]) -> None:
    """
    Register ``(blueprint, relative_prefix)`` pairs beneath ``prefix``.

    An empty relative prefix mounts the blueprint at ``prefix`` itself, so
    ``(health_bp, "")`` under ``/api/v1`` serves ``/api/v1/health``.
    """
    base = "/" + prefix.strip("/")
    for bp, rel_prefix in entries:
        rel = rel_prefix.strip("/")
        app.register_blueprint(bp, url_prefix=f"{base}/{rel}" if rel else base)


def init_app(app: Flask) -> None:
    from authapi.api.v1 import API_VERSION, REGISTRY

    api_base = app.config.get("API_BASE_PREFIX", "/api")
    mount(app, f"{api_base.rstrip('/')}/{API_VERSION}", REGISTRY)


__all__ = ["init_app", "mount"]
