# authapi/infra/sql/sql_user_directory.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from authapi.models.user import User
from authapi.services._shared.ports import UserDirectory, UserIdentity
from authapi.uow import SQLAlchemyReadOnlyUnitOfWork


def to_identity(user: User) -> UserIdentity:
    return UserIdentity(id=user.id, email=user.email, role=user.role, full_name=user.full_name)


@dataclass(slots=True)
class SQLUserDirectory(UserDirectory):
    """User lookups against the ``users`` table through a read-only Unit of Work."""

    read_uow_factory: Callable[[], SQLAlchemyReadOnlyUnitOfWork] = field(
        default=SQLAlchemyReadOnlyUnitOfWork
    )

    def lookup_credentials(self, email: str, password: str) -> UserIdentity | None:
        with self.read_uow_factory() as uow:
            user = uow.users.authenticate(email, password)
            return to_identity(user) if user is not None else None

    def lookup_user_by_id(self, user_id: int) -> UserIdentity | None:
        with self.read_uow_factory() as uow:
            user = uow.users.get(user_id)
            return to_identity(user) if user is not None else None
