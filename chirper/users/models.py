"""User records as seen by the comment subsystem.

Users are owned by the user service; this module only reads them. The table
definition mirrors the columns the comment subsystem relies on.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID


USERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    username TEXT,
    first_name TEXT,
    last_name TEXT,
    avatar TEXT,
    verified BOOLEAN
)
"""

USERS_TABLES_CQL = [USERS_TABLE_CQL]


@dataclass(frozen=True)
class User:
    """User entity (read-only projection)."""

    id: UUID
    username: str
    first_name: str
    last_name: str = ""
    avatar: str | None = None
    verified: bool = False

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User from Cassandra row."""
        return cls(
            id=row.id,
            username=row.username,
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            avatar=row.avatar,
            verified=bool(row.verified),
        )
