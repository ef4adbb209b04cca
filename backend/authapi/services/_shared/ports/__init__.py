"""
authapi.services._shared.ports
==============================

Collection of *ports* (hexagonal interfaces) that define the contracts
between the session service and its infrastructure.

Modules
-------
- :mod:`token_codec`:
    Defines :class:`~.TokenCodec`: access-credential signing and verification,
    plus opaque refresh secrets and their digest.

- :mod:`refresh_token_store`:
    Defines :class:`~.RefreshTokenStore`, :class:`~.NewRefreshRecord` and
    :class:`~.RefreshRecordView`: durable refresh records and atomic rotation.

- :mod:`user_directory`:
    Defines :class:`~.UserDirectory` and :class:`~.UserIdentity`: user lookup
    and credential checks.

Design Notes
------------
Concrete adapters (SQL, Redis, Flask-JWT-Extended) live under
``authapi.infra``. Each port ships an in-memory implementation used by the
unit tests.
"""

from __future__ import annotations

from .refresh_token_store import (
    ClientOrigin,
    InMemoryRefreshTokenStore,
    NewRefreshRecord,
    RefreshRecordView,
    RefreshTokenStore,
)
from .token_codec import (
    AccessClaims,
    StubTokenCodec,
    TokenCodec,
    digest_secret,
    generate_opaque_secret,
)
from .user_directory import InMemoryUserDirectory, UserDirectory, UserIdentity

__all__ = [
    "AccessClaims",
    "ClientOrigin",
    "InMemoryRefreshTokenStore",
    "InMemoryUserDirectory",
    "NewRefreshRecord",
    "RefreshRecordView",
    "RefreshTokenStore",
    "StubTokenCodec",
    "TokenCodec",
    "UserDirectory",
    "UserIdentity",
    "digest_secret",
    "generate_opaque_secret",
]
