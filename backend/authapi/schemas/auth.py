"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class UserSchema(Schema):
    """Identity payload returned by login and refresh."""

    id = fields.Integer(required=True)
    email = fields.Email(required=True)
    role = fields.String(required=True)
    full_name = fields.String(allow_none=True)


class UserCreateSchema(Schema):
    """Payload for provisioning an account from the CLI."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=8, max=128))
    role = fields.String(load_default="user", validate=validate.Length(min=1, max=32))
    full_name = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=100))


class AccessClaimsSchema(Schema):
    """Verified access-credential claims."""

    subject = fields.Integer(required=True)
    role = fields.String(required=True)
    issued_at = fields.AwareDateTime(required=True)
    expires_at = fields.AwareDateTime(required=True)


class ActiveSessionSchema(Schema):
    """One active refresh record as shown to its owner. Never carries the digest."""

    id = fields.String(required=True)
    valid_from = fields.AwareDateTime(required=True)
    valid_until = fields.AwareDateTime(required=True)
    user_agent = fields.String(allow_none=True)
    ip_address = fields.String(allow_none=True)
    current = fields.Boolean(required=True)
