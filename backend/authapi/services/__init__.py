"""Service layer public API.

This package exposes the essential building blocks for the service layer so that
callers can import from :mod:`authapi.services` without knowing internal structure.

Re-exports
----------
- Base primitives (from ``authapi.services._shared.base``)
    * :class:`BaseService`
    * :class:`ServiceContext`

- Session service (from ``authapi.services.auth``)
    * :class:`SessionService`
    * DTOs: :class:`LoginIn`, :class:`RefreshIn`, :class:`LogoutIn`,
      :class:`SessionOut`, :class:`ActiveSessionOut`, :class:`AuthTokenConfig`
"""

from authapi.services._shared.base import BaseService, ServiceContext
from authapi.services.auth import (
    ActiveSessionOut,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    SessionOut,
    SessionService,
)

__all__ = [
    "ActiveSessionOut",
    "AuthTokenConfig",
    "BaseService",
    "LoginIn",
    "LogoutIn",
    "RefreshIn",
    "ServiceContext",
    "SessionOut",
    "SessionService",
]
