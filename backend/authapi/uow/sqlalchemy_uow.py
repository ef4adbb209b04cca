"""Unit of Work over the Flask-scoped SQLAlchemy session."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, scoped_session

from authapi.core.extensions import db
from authapi.repositories import RefreshTokenRepository, UserRepository
from authapi.uow.base import UnitOfWork


class _Repositories:
    """``users`` and ``refresh_tokens`` bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=session)
        self.refresh_tokens = RefreshTokenRepository(session=session)

    def _current_session(self) -> Session:
        """Resolve the scoped registry to the Session it currently holds."""
        if isinstance(self.session, scoped_session):
            return self.session()
        return self.session


class SQLAlchemyUnitOfWork(_Repositories, UnitOfWork):
    """
    Writer scope: commits on a clean exit, rolls back on any exception.

    A failing commit is rolled back before the error propagates, so the
    session is always usable afterwards.
    """

    def __init__(self) -> None:
        super().__init__(db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
            return
        try:
            self.commit()
        except Exception:
            self.rollback()
            raise

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLAlchemyReadOnlyUnitOfWork(_Repositories, UnitOfWork):
    """
    Reader scope for lookups.

    Any flush carrying pending ORM changes raises ``RuntimeError``. On exit the
    transaction is rolled back only if this scope started it, so a reader
    nested in a writer leaves the writer's work alone. Copy results into plain
    views before leaving: the rollback expires loaded instances.
    """

    def __init__(self) -> None:
        super().__init__(db.session)
        self._started_transaction = False
        self._guarded: Session | None = None

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        # scoped_session does not proxy in_transaction() or event targets
        self._guarded = self._current_session()
        self._started_transaction = not self._guarded.in_transaction()
        event.listen(self._guarded, "before_flush", _refuse_writes)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._started_transaction:
                self.rollback()
        finally:
            if self._guarded is not None:
                event.remove(self._guarded, "before_flush", _refuse_writes)
                self._guarded = None

    def commit(self) -> None:
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()


def _refuse_writes(session: Session, flush_context, instances) -> None:
    if session.new or session.dirty or session.deleted:
        raise RuntimeError("Read-only UnitOfWork: ORM flush blocked (pending changes).")
