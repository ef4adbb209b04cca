from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

from werkzeug.security import check_password_hash, generate_password_hash


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """
    Identity payload handed back to the client on login and refresh.

    :ivar id: User id.
    :ivar email: Login email.
    :ivar role: Current role tag.
    :ivar full_name: Display name, if any.
    """

    id: int
    email: str
    role: str
    full_name: str | None = None


class UserDirectory(Protocol):
    """Port for user lookup and credential checks."""

    def lookup_credentials(self, email: str, password: str) -> UserIdentity | None:
        """Return the identity when the email/password pair matches, else ``None``."""

    def lookup_user_by_id(self, user_id: int) -> UserIdentity | None:
        """Return the current identity of a user, or ``None`` if it no longer exists."""


class InMemoryUserDirectory(UserDirectory):
    """Dictionary-backed directory for unit tests."""

    def __init__(self) -> None:
        self._users: dict[int, tuple[UserIdentity, str]] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def add(
        self,
        email: str,
        password: str,
        *,
        role: str = "user",
        full_name: str | None = None,
    ) -> UserIdentity:
        with self._lock:
            self._seq += 1
            identity = UserIdentity(
                id=self._seq, email=email.strip().lower(), role=role, full_name=full_name
            )
            self._users[identity.id] = (identity, generate_password_hash(password))
            return identity

    def set_role(self, user_id: int, role: str) -> None:
        with self._lock:
            identity, pw_hash = self._users[user_id]
            self._users[user_id] = (
                UserIdentity(identity.id, identity.email, role, identity.full_name),
                pw_hash,
            )

    def remove(self, user_id: int) -> None:
        with self._lock:
            self._users.pop(user_id, None)

    def lookup_credentials(self, email: str, password: str) -> UserIdentity | None:
        needle = email.strip().lower()
        with self._lock:
            for identity, pw_hash in self._users.values():
                if identity.email == needle:
                    return identity if check_password_hash(pw_hash, password) else None
        return None

    def lookup_user_by_id(self, user_id: int) -> UserIdentity | None:
        with self._lock:
            entry = self._users.get(user_id)
        return entry[0] if entry else None
