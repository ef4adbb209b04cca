"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    AccessClaimsSchema,
    ActiveSessionSchema,
    LoginSchema,
    UserCreateSchema,
    UserSchema,
)

__all__ = [
    "AccessClaimsSchema",
    "ActiveSessionSchema",
    "LoginSchema",
    "UserCreateSchema",
    "UserSchema",
]
