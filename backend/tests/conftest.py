"""Pytest fixtures configuring an isolated transactional database layer.

Each test runs inside an outer transaction on a single in-memory SQLite
connection. The application session joins it through SAVEPOINTs, so Unit of
Work commits and rollbacks behave normally while nothing leaks between cases.
"""

from __future__ import annotations

import os

import fakeredis
import pytest
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker

from authapi.core.config import TestingConfig
from authapi.core.extensions import db as _db  # Flask-SQLAlchemy instance
from authapi.factory import create_app  # application factory under test
from authapi.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
from authapi.services._shared.ports import (
    InMemoryRefreshTokenStore,
    InMemoryUserDirectory,
    StubTokenCodec,
)


class TestConfig(TestingConfig):
    """Testing configuration for creating the Flask app.

    Notes
    -----
    - Uses an in-memory SQLite database for speed.
    - Never talks to a real Redis; the Redis store is tested with fakeredis.
    - Keeps CORS and proxy handling out of the way.
    """

    REDIS_URL = None
    TOKEN_STORE_BACKEND = "sql"
    LOG_LEVEL = "WARNING"


def _install_sqlite_savepoint_support(engine) -> None:
    """Let pysqlite emit SAVEPOINTs inside the outer test transaction.

    pysqlite manages BEGIN on its own and breaks nested transactions; this is
    the workaround documented by SQLAlchemy.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # pragma: no cover
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):  # pragma: no cover
        conn.exec_driver_sql("BEGIN")


def _install_sqlite_immediate_begin(engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # pragma: no cover
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):  # pragma: no cover
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---- Application -------------------------------------------------------------


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing.

    Returns
    -------
    flask.Flask
        Application instance with :class:`TestConfig` applied and its tables
        created.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    app = create_app(TestConfig)
    app.logger.setLevel("WARNING")

    with app.app_context():
        if _db.engine.url.get_backend_name() == "sqlite":
            _install_sqlite_savepoint_support(_db.engine)
        _db.create_all()

    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(app):
    """Keep a dedicated DBAPI connection open for the whole session.

    Yields
    ------
    sqlalchemy.engine.Connection
        Connection reused by the outer transaction of each test.
    """
    with app.app_context():
        conn = _db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def db(app):
    """Return the Flask-SQLAlchemy extension bound to the testing app."""
    return _db


@pytest.fixture
def session(app, connection):
    """Provide a SQLAlchemy session wrapped in an outer transaction.

    Yields
    ------
    sqlalchemy.orm.scoping.scoped_session
        Scoped session bound to the shared connection. ``commit()`` only
        releases a SAVEPOINT; the outer transaction is rolled back after the
        test.

    Notes
    -----
    A fresh application context is pushed per test so ``flask.g`` never
    carries state from one case to the next.
    """
    ctx = app.app_context()
    ctx.push()

    outer = connection.begin()
    factory = sessionmaker(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    scoped = scoped_session(factory)

    # Monkey-patch db.session so app code uses this scoped session
    original_session = _db.session
    _db.session = scoped

    try:
        yield scoped
    finally:
        scoped.remove()
        _db.session = original_session
        outer.rollback()
        ctx.pop()


@pytest.fixture
def file_app(tmp_path):
    """Application on a file-backed SQLite database, for multi-threaded tests.

    The in-memory database behind :func:`app` lives on one connection and
    cannot be shared across threads. Transactions here take the write lock at
    ``BEGIN IMMEDIATE``, so concurrent writers queue instead of failing.
    """
    config = type(
        "FileDatabaseConfig",
        (TestConfig,),
        {
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'authapi.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 15},
            },
        },
    )
    file_app = create_app(config)

    with file_app.app_context():
        _install_sqlite_immediate_begin(_db.engine)
        _db.create_all()

    yield file_app

    with file_app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


@pytest.fixture
def client(app, session):
    """Flask test client sharing the transactional session."""
    return app.test_client()


@pytest.fixture
def runner(app, session):
    """Click runner for the ``flask`` CLI commands."""
    return app.test_cli_runner()


# ---- In-memory ports ---------------------------------------------------------


@pytest.fixture
def codec():
    """Token codec that needs no Flask app."""
    return StubTokenCodec()


@pytest.fixture
def memory_store():
    return InMemoryRefreshTokenStore()


@pytest.fixture
def directory():
    return InMemoryUserDirectory()


# ---- Redis -------------------------------------------------------------------


@pytest.fixture
def fake_redis():
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis()
    r.flushall()
    return r


@pytest.fixture
def redis_store(fake_redis):
    """Provide a RedisRefreshTokenStore backed by FakeRedis."""
    return RedisRefreshTokenStore(r=fake_redis)


# ---- Data --------------------------------------------------------------------


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


# -- Hook up Factory Boy to pytest SQLAlchemy session --------------------------
@pytest.fixture(autouse=True)
def _factories_session(request):
    """Wire Factory Boy's session helper to the transactional session fixture.

    Only tests that already depend on ``session`` are wired; pure unit tests
    stay free of the database.
    """
    from tests.factories import SQLAlchemySession

    if "session" in request.fixturenames:
        SQLAlchemySession.set(request.getfixturevalue("session"))
    yield
    SQLAlchemySession.set(None)
