"""Flask CLI commands for refresh-token housekeeping."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import click
from flask.cli import with_appcontext

from authapi.api.deps import build_refresh_store, build_token_codec, token_config
from authapi.infra.sql.sql_user_directory import SQLUserDirectory
from authapi.services import SessionService

LOGGER = logging.getLogger(__name__)


def _parse_cutoff(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if raw is None:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise click.BadParameter(f"not an ISO-8601 timestamp: {raw!r}", param_hint="--before") from exc
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


@click.group("tokens")
def tokens_cli() -> None:
    """Refresh-token maintenance commands."""


@tokens_cli.command("purge-expired")
@click.option(
    "--before",
    "before",
    default=None,
    help="Delete records whose validity ended before this ISO-8601 instant (default: now).",
)
@with_appcontext
def purge_expired_command(before: str | None) -> None:
    """Delete refresh records whose validity window has lapsed."""
    cutoff = _parse_cutoff(before)
    service = SessionService(
        codec=build_token_codec(),
        store=build_refresh_store(),
        users=SQLUserDirectory(),
        token_cfg=token_config(),
    )
    deleted = service.purge_expired(cutoff)
    LOGGER.info("tokens.purge_expired", extra={"deleted": deleted})
    click.echo(f"Deleted {deleted} expired refresh token(s).")
