"""Post directory: resolves a post id to a post record."""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from .models import Post


if TYPE_CHECKING:
    from cassandra.cluster import Session


class PostDirectory(Protocol):
    """Lookup interface for the external post service."""

    async def get_post_by_id(self, post_id: UUID) -> Post | None: ...


class CassandraPostDirectory:
    """Post lookups against the shared ``posts`` table."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._get_post_by_id = self.session.prepare(
            f"SELECT id, author_id, author_username, created_at "
            f"FROM {self.keyspace}.posts WHERE id = ?"
        )

    async def get_post_by_id(self, post_id: UUID) -> Post | None:
        """Find post by ID."""
        rows = await self.session.aexecute(self._get_post_by_id, [post_id])
        row = rows.one()
        return Post.from_row(row) if row else None


class InMemoryPostDirectory:
    """Dictionary-backed directory for local development and tests."""

    def __init__(self, posts: list[Post] | None = None):
        self._posts: dict[UUID, Post] = {p.id: p for p in posts or []}

    def add(self, post: Post) -> Post:
        self._posts[post.id] = post
        return post

    async def get_post_by_id(self, post_id: UUID) -> Post | None:
        return self._posts.get(post_id)
