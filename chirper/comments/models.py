"""Database models for the threaded comment system.

Cassandra table definitions for:
- Comments by id: one row per comment, including its like set
- Comments by parent: list index for "comments under a post/comment"
- Comment images: one row per attached image

Architecture: a comment hangs off exactly one parent, either a post or another
comment. The parent is a tagged union (``PostParent | CommentParent``) rather
than two nullable ids, so "exactly one parent kind" holds by construction.
Author and parent-author names are denormalized at creation for read-heavy
workloads.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4


class ParentKind(str, Enum):
    """Kind of entity a comment is attached under."""

    POST = "post"
    COMMENT = "comment"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Main table - O(1) lookup by id
# likes is a CQL set so likes can be added/removed atomically
COMMENTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_id (
    comment_id UUID PRIMARY KEY,
    parent_kind TEXT,
    parent_id UUID,
    parent_author_username TEXT,
    author_id UUID,
    author_username TEXT,
    author_first_name TEXT,
    author_avatar TEXT,
    author_verified BOOLEAN,
    content TEXT,
    likes SET<UUID>,
    created_at TIMESTAMP
)
"""

# Comments by parent - backs both "comments under post" and "replies"
# Partition by (parent_kind, parent_id), oldest first
COMMENTS_BY_PARENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_parent (
    parent_kind TEXT,
    parent_id UUID,
    created_at TIMESTAMP,
    comment_id UUID,
    PRIMARY KEY ((parent_kind, parent_id), created_at, comment_id)
) WITH CLUSTERING ORDER BY (created_at ASC, comment_id ASC)
"""

# Images - one independent row per attachment
COMMENT_IMAGES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_images (
    comment_id UUID,
    created_at TIMESTAMP,
    image_id UUID,
    image_url TEXT,
    PRIMARY KEY ((comment_id), created_at, image_id)
) WITH CLUSTERING ORDER BY (created_at ASC, image_id ASC)
"""

COMMENTS_TABLES_CQL = [
    COMMENTS_BY_ID_TABLE_CQL,
    COMMENTS_BY_PARENT_TABLE_CQL,
    COMMENT_IMAGES_TABLE_CQL,
]


# ==============================================================================
# Parent Reference
# ==============================================================================


@dataclass(frozen=True)
class PostParent:
    """Comment attached directly under a post."""

    post_id: UUID
    kind: ClassVar[ParentKind] = ParentKind.POST

    @property
    def id(self) -> UUID:
        return self.post_id


@dataclass(frozen=True)
class CommentParent:
    """Reply attached under another comment."""

    comment_id: UUID
    kind: ClassVar[ParentKind] = ParentKind.COMMENT

    @property
    def id(self) -> UUID:
        return self.comment_id


ParentRef = PostParent | CommentParent


def parent_from_columns(kind: str, parent_id: UUID) -> ParentRef:
    """Rebuild a parent reference from its stored (kind, id) pair."""
    if ParentKind(kind) is ParentKind.POST:
        return PostParent(parent_id)
    return CommentParent(parent_id)


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class AuthorSummary:
    """Author information captured when the comment is written."""

    id: UUID
    username: str
    first_name: str
    avatar: str | None = None
    verified: bool = False


@dataclass
class CommentImage:
    """Image attached to a comment once its upload succeeded."""

    image_id: UUID
    comment_id: UUID
    image_url: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "CommentImage":
        """Create CommentImage from Cassandra row."""
        return cls(
            image_id=row.image_id,
            comment_id=row.comment_id,
            image_url=row.image_url,
            created_at=row.created_at,
        )


@dataclass
class Comment:
    """Comment entity with its immediate relations."""

    comment_id: UUID
    content: str
    author: AuthorSummary
    parent: ParentRef
    parent_author_username: str | None
    created_at: datetime
    images: list[CommentImage] = field(default_factory=list)
    likes: set[UUID] = field(default_factory=set)
    children: list[UUID] = field(default_factory=list)

    @classmethod
    def from_row(
        cls,
        row: Any,
        images: list[CommentImage] | None = None,
        children: list[UUID] | None = None,
    ) -> "Comment":
        """Create Comment from a ``comments_by_id`` row plus its relations."""
        return cls(
            comment_id=row.comment_id,
            content=row.content,
            author=AuthorSummary(
                id=row.author_id,
                username=row.author_username,
                first_name=row.author_first_name or "",
                avatar=row.author_avatar,
                verified=bool(row.author_verified),
            ),
            parent=parent_from_columns(row.parent_kind, row.parent_id),
            parent_author_username=row.parent_author_username,
            created_at=row.created_at,
            images=images or [],
            likes=set(row.likes or ()),
            children=children or [],
        )

    @property
    def like_count(self) -> int:
        return len(self.likes)

    def is_liked_by(self, user_id: UUID) -> bool:
        return user_id in self.likes


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    content: str,
    author: AuthorSummary,
    parent: ParentRef,
    parent_author_username: str | None = None,
) -> Comment:
    """Create a new comment: fresh id, no likes, no images, no replies."""
    return Comment(
        comment_id=uuid4(),
        content=content,
        author=author,
        parent=parent,
        parent_author_username=parent_author_username,
        created_at=datetime.now(UTC),
    )


def create_image(comment_id: UUID, image_url: str) -> CommentImage:
    """Create an image record for an upload that just succeeded."""
    return CommentImage(
        image_id=uuid4(),
        comment_id=comment_id,
        image_url=image_url,
        created_at=datetime.now(UTC),
    )
