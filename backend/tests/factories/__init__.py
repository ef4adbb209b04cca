"""Factory Boy base classes bound to the per-test SQLAlchemy session."""

from __future__ import annotations

import factory


class SQLAlchemySession:
    """Holder for the session the ``session`` fixture hands out.

    The autouse fixture in ``conftest.py`` sets it before a database test and
    resets it to ``None`` afterwards.
    """

    _session = None

    @classmethod
    def set(cls, session) -> None:
        cls._session = session

    @classmethod
    def get(cls):
        if cls._session is None:
            raise RuntimeError(
                "No factory session registered; request the 'session' fixture in this test."
            )
        return cls._session


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session_factory = SQLAlchemySession.get
        # Inside a test "commit" only releases the SAVEPOINT.
        sqlalchemy_session_persistence = "commit"
