"""Comment persistence.

``CommentStore`` is the only component that mutates comment, image and like
state. Two backends implement it:

- ``CassandraCommentStore``: prepared CQL statements run with
  ``session.aexecute`` (cassandra-asyncio-driver)
- ``InMemoryCommentStore``: dictionaries, for local development and tests

Image attachment is an independent insert per image and likes are changed with
set add/remove primitives, so concurrent writers never overwrite each other's
changes.
"""

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

from .models import (
    Comment,
    CommentImage,
    ParentKind,
    create_image,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)


class CommentStore(Protocol):
    """Storage interface used by the comment service."""

    async def get(self, comment_id: UUID) -> Comment | None: ...

    async def list_by_post(self, post_id: UUID) -> list[Comment]: ...

    async def list_by_parent_comment(self, comment_id: UUID) -> list[Comment]: ...

    async def create(self, comment: Comment) -> Comment: ...

    async def attach_image(self, comment_id: UUID, image_url: str) -> CommentImage: ...

    async def delete(self, comment_id: UUID) -> None: ...

    async def set_likes(self, comment_id: UUID, likes: set[UUID]) -> Comment | None: ...

    async def add_like(self, comment_id: UUID, user_id: UUID) -> Comment | None: ...

    async def remove_like(self, comment_id: UUID, user_id: UUID) -> Comment | None: ...


# ==============================================================================
# Cassandra
# ==============================================================================


class CassandraCommentStore:
    """Comment store backed by Cassandra."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        # Comment CRUD
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments_by_id
            (comment_id, parent_kind, parent_id, parent_author_username,
             author_id, author_username, author_first_name, author_avatar,
             author_verified, content, likes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_comment_by_parent = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments_by_parent
            (parent_kind, parent_id, created_at, comment_id)
            VALUES (?, ?, ?, ?)
        """)

        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments_by_id
            WHERE comment_id = ?
        """)

        self._get_comment_ids_by_parent = self.session.prepare(f"""
            SELECT comment_id FROM {self.keyspace}.comments_by_parent
            WHERE parent_kind = ? AND parent_id = ?
        """)

        self._delete_comment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments_by_id
            WHERE comment_id = ?
        """)

        self._delete_comment_by_parent = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments_by_parent
            WHERE parent_kind = ? AND parent_id = ? AND created_at = ? AND comment_id = ?
        """)

        self._delete_replies_index = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments_by_parent
            WHERE parent_kind = ? AND parent_id = ?
        """)

        # Images
        self._insert_image = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_images
            (comment_id, created_at, image_id, image_url)
            VALUES (?, ?, ?, ?)
        """)

        self._get_images = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_images
            WHERE comment_id = ?
        """)

        self._delete_images = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comment_images
            WHERE comment_id = ?
        """)

        # Likes (IF EXISTS keeps a concurrent delete from being undone)
        self._set_likes = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_id
            SET likes = ?
            WHERE comment_id = ?
            IF EXISTS
        """)

        self._add_like = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_id
            SET likes = likes + ?
            WHERE comment_id = ?
            IF EXISTS
        """)

        self._remove_like = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments_by_id
            SET likes = likes - ?
            WHERE comment_id = ?
            IF EXISTS
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def _child_ids(self, kind: ParentKind, parent_id: UUID) -> list[UUID]:
        rows = await self.session.aexecute(
            self._get_comment_ids_by_parent, [kind.value, parent_id]
        )
        return [row.comment_id for row in rows]

    async def _images(self, comment_id: UUID) -> list[CommentImage]:
        rows = await self.session.aexecute(self._get_images, [comment_id])
        return [CommentImage.from_row(row) for row in rows]

    async def get(self, comment_id: UUID) -> Comment | None:
        """Fetch one comment with its images, likes and reply ids.

        Returns None if the comment does not exist.
        """
        rows, images, children = await asyncio.gather(
            self.session.aexecute(self._get_comment, [comment_id]),
            self._images(comment_id),
            self._child_ids(ParentKind.COMMENT, comment_id),
        )
        row = rows.one()
        if not row:
            return None
        return Comment.from_row(row, images=images, children=children)

    async def _list(self, kind: ParentKind, parent_id: UUID) -> list[Comment]:
        ids = await self._child_ids(kind, parent_id)
        comments = await asyncio.gather(*(self.get(cid) for cid in ids))
        # The index may briefly point at a comment that is being deleted
        return [c for c in comments if c is not None]

    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        """Top-level comments under a post, oldest first."""
        return await self._list(ParentKind.POST, post_id)

    async def list_by_parent_comment(self, comment_id: UUID) -> list[Comment]:
        """Direct replies to a comment, oldest first."""
        return await self._list(ParentKind.COMMENT, comment_id)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def create(self, comment: Comment) -> Comment:
        """Persist a new comment and index it under its parent."""
        await self.session.aexecute(
            self._insert_comment,
            [
                comment.comment_id,
                comment.parent.kind.value,
                comment.parent.id,
                comment.parent_author_username,
                comment.author.id,
                comment.author.username,
                comment.author.first_name,
                comment.author.avatar,
                comment.author.verified,
                comment.content,
                comment.likes,
                comment.created_at,
            ],
        )
        await self.session.aexecute(
            self._insert_comment_by_parent,
            [
                comment.parent.kind.value,
                comment.parent.id,
                comment.created_at,
                comment.comment_id,
            ],
        )
        return comment

    async def attach_image(self, comment_id: UUID, image_url: str) -> CommentImage:
        """Insert one image row for the comment."""
        image = create_image(comment_id, image_url)
        await self.session.aexecute(
            self._insert_image,
            [image.comment_id, image.created_at, image.image_id, image.image_url],
        )
        return image

    async def delete(self, comment_id: UUID) -> None:
        """Delete a comment, its images, its likes and all of its replies."""
        rows = await self.session.aexecute(self._get_comment, [comment_id])
        row = rows.one()
        if not row:
            return

        for child_id in await self._child_ids(ParentKind.COMMENT, comment_id):
            await self.delete(child_id)

        await self.session.aexecute(
            self._delete_replies_index, [ParentKind.COMMENT.value, comment_id]
        )
        await self.session.aexecute(self._delete_images, [comment_id])
        await self.session.aexecute(
            self._delete_comment_by_parent,
            [row.parent_kind, row.parent_id, row.created_at, comment_id],
        )
        await self.session.aexecute(self._delete_comment, [comment_id])
        logger.debug("comment_rows_deleted", comment_id=str(comment_id))

    async def _update_likes(self, statement, params: list) -> bool:
        result = await self.session.aexecute(statement, params)
        return bool(result.was_applied)

    async def set_likes(self, comment_id: UUID, likes: set[UUID]) -> Comment | None:
        """Replace the whole like set."""
        if not await self._update_likes(self._set_likes, [likes, comment_id]):
            return None
        return await self.get(comment_id)

    async def add_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        """Atomically add one user to the like set."""
        if not await self._update_likes(self._add_like, [{user_id}, comment_id]):
            return None
        return await self.get(comment_id)

    async def remove_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        """Atomically remove one user from the like set."""
        if not await self._update_likes(self._remove_like, [{user_id}, comment_id]):
            return None
        return await self.get(comment_id)


# ==============================================================================
# In-memory
# ==============================================================================


class InMemoryCommentStore:
    """Comment store kept in process memory.

    Every mutation completes without awaiting, so on a single event loop each
    one is atomic. Reads return copies; callers never share state with the
    store.
    """

    def __init__(self) -> None:
        self._comments: dict[UUID, Comment] = {}
        self._images: dict[UUID, list[CommentImage]] = {}
        self._by_parent: dict[tuple[ParentKind, UUID], list[UUID]] = {}

    def _snapshot(self, comment: Comment) -> Comment:
        return replace(
            comment,
            images=list(self._images.get(comment.comment_id, [])),
            likes=set(comment.likes),
            children=list(self._by_parent.get((ParentKind.COMMENT, comment.comment_id), [])),
        )

    async def get(self, comment_id: UUID) -> Comment | None:
        comment = self._comments.get(comment_id)
        return self._snapshot(comment) if comment else None

    def _list(self, kind: ParentKind, parent_id: UUID) -> list[Comment]:
        ids = self._by_parent.get((kind, parent_id), [])
        return [self._snapshot(self._comments[cid]) for cid in ids if cid in self._comments]

    async def list_by_post(self, post_id: UUID) -> list[Comment]:
        return self._list(ParentKind.POST, post_id)

    async def list_by_parent_comment(self, comment_id: UUID) -> list[Comment]:
        return self._list(ParentKind.COMMENT, comment_id)

    async def create(self, comment: Comment) -> Comment:
        stored = replace(comment, images=[], likes=set(comment.likes), children=[])
        self._comments[comment.comment_id] = stored
        self._by_parent.setdefault((comment.parent.kind, comment.parent.id), []).append(
            comment.comment_id
        )
        return self._snapshot(stored)

    async def attach_image(self, comment_id: UUID, image_url: str) -> CommentImage:
        image = create_image(comment_id, image_url)
        self._images.setdefault(comment_id, []).append(image)
        return image

    async def delete(self, comment_id: UUID) -> None:
        comment = self._comments.pop(comment_id, None)
        if comment is None:
            return
        for child_id in self._by_parent.pop((ParentKind.COMMENT, comment_id), []):
            await self.delete(child_id)
        self._images.pop(comment_id, None)
        siblings = self._by_parent.get((comment.parent.kind, comment.parent.id), [])
        if comment_id in siblings:
            siblings.remove(comment_id)

    async def set_likes(self, comment_id: UUID, likes: set[UUID]) -> Comment | None:
        comment = self._comments.get(comment_id)
        if comment is None:
            return None
        comment.likes = set(likes)
        return self._snapshot(comment)

    async def add_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        comment = self._comments.get(comment_id)
        if comment is None:
            return None
        comment.likes.add(user_id)
        return self._snapshot(comment)

    async def remove_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        comment = self._comments.get(comment_id)
        if comment is None:
            return None
        comment.likes.discard(user_id)
        return self._snapshot(comment)
