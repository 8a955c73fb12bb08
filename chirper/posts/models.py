"""Post records as seen by the comment subsystem.

Posts are owned by the post service. Comments only need to know that a post
exists and who wrote it, so the projection carries the author's username
denormalized, the same way comments carry theirs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


POSTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.posts (
    id UUID PRIMARY KEY,
    author_id UUID,
    author_username TEXT,
    content TEXT,
    created_at TIMESTAMP
)
"""

POSTS_TABLES_CQL = [POSTS_TABLE_CQL]


@dataclass(frozen=True)
class Post:
    """Post entity (read-only projection)."""

    id: UUID
    author_id: UUID
    author_username: str
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Post":
        """Create Post from Cassandra row."""
        return cls(
            id=row.id,
            author_id=row.author_id,
            author_username=row.author_username or "",
            created_at=row.created_at,
        )
