"""User directory: resolves a user id to a user record."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import User


if TYPE_CHECKING:
    from cassandra.cluster import Session


class UserDirectory(Protocol):
    """Lookup interface for the external user service."""

    async def get_user_by_id(self, user_id: UUID) -> User | None: ...


class CassandraUserDirectory:
    """User lookups against the shared ``users`` table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        rows = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = rows.one()
        return User.from_row(row) if row else None


class InMemoryUserDirectory:
    """Dictionary-backed directory for local development and tests."""

    def __init__(self, users: list[User] | None = None):
        self._users: dict[UUID, User] = {u.id: u for u in users or []}

    def add(self, user: User) -> User:
        self._users[user.id] = user
        return user

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        return self._users.get(user_id)
