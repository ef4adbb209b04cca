"""Engine-level hooks shared by every SQLAlchemy engine the app creates.

SQLite ships with foreign-key enforcement disabled per connection. The
``refresh_tokens.user_id`` cascade and the ``superseded_by`` self-reference
rely on it, so it is switched on whenever a SQLite DBAPI connection opens.
"""

from __future__ import annotations

import sqlite3

from sqlalchemy import event
from sqlalchemy.engine import Engine

_installed = False


def _enable_fk(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver glue
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def enable_sqlite_foreign_keys() -> None:
    """Register the ``connect`` listener once per process."""
    global _installed
    if _installed:
        return
    event.listen(Engine, "connect", _enable_fk)
    _installed = True
