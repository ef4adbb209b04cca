"""Flask CLI commands for provisioning accounts."""

from __future__ import annotations

import logging

import click
from flask.cli import with_appcontext
from marshmallow import ValidationError

from authapi.models.user import User
from authapi.schemas import UserCreateSchema
from authapi.uow import SQLAlchemyUnitOfWork

LOGGER = logging.getLogger(__name__)


@click.group("users")
def users_cli() -> None:
    """Account provisioning commands."""


@users_cli.command("create")
@click.option("--email", required=True, help="Login email.")
@click.option("--password", required=True, help="Initial password (min. 8 characters).")
@click.option("--role", default="user", show_default=True, help="Role tag.")
@click.option("--full-name", "full_name", default=None, help="Optional display name.")
@with_appcontext
def create_user_command(email: str, password: str, role: str, full_name: str | None) -> None:
    """Create a user that can sign in."""
    try:
        data = UserCreateSchema().load(
            {"email": email, "password": password, "role": role, "full_name": full_name}
        )
    except ValidationError as exc:
        raise click.ClickException(f"Invalid user: {exc.normalized_messages()}") from exc

    with SQLAlchemyUnitOfWork() as uow:
        if uow.users.exists_by_email(data["email"]):
            raise click.ClickException(f"A user with email {data['email']} already exists.")
        user = User(email=data["email"], role=data["role"], full_name=data["full_name"])
        user.password = data["password"]
        uow.users.add(user)
        user_id = user.id

    LOGGER.info("users.created", extra={"user_id": user_id})
    click.echo(f"Created user {user_id} <{data['email']}>.")
