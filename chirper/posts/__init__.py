"""Post directory (read-only access to the post service's records)."""

from .models import POSTS_TABLES_CQL, Post
from .service import CassandraPostDirectory, InMemoryPostDirectory, PostDirectory


__all__ = [
    "POSTS_TABLES_CQL",
    "CassandraPostDirectory",
    "InMemoryPostDirectory",
    "Post",
    "PostDirectory",
]
