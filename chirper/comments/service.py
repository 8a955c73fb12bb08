"""Comment system service layer.

Business logic for:
- Reading comments and their threads
- Creating comments under a post or another comment, with image uploads
  attached in the background
- Author-only deletion (cascades to replies)
- Per-user like toggling
"""

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

import structlog
from redis.exceptions import LockError

from chirper.core.background import BackgroundTasks
from chirper.posts.service import PostDirectory
from chirper.storage.service import ImageStore
from chirper.users.models import User
from chirper.users.service import UserDirectory

from .locks import CommentLocks
from .models import (
    AuthorSummary,
    Comment,
    CommentParent,
    ParentRef,
    PostParent,
    create_comment,
)
from .store import CommentStore


logger = structlog.get_logger(__name__)

MAX_CONTENT_LENGTH = 10000
DELETED_MESSAGE = "Comment has been deleted"


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CommentError(Exception):
    """Base comment error."""

    def __init__(self, message: str, code: str = "comment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CommentNotFoundError(CommentError):
    """Comment not found."""

    def __init__(self, message: str = "Comment not found"):
        super().__init__(message, "comment_not_found")


class PostNotFoundError(CommentError):
    """Post not found."""

    def __init__(self, message: str = "Post not found"):
        super().__init__(message, "post_not_found")


class UserNotFoundError(CommentError):
    """User not found."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message, "user_not_found")


class PermissionDeniedError(CommentError):
    """Permission denied for operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class InvalidContentError(CommentError):
    """Comment content is empty or too long."""

    def __init__(self, message: str = "Comment content must not be empty"):
        super().__init__(message, "invalid_content")


class CommentBusyError(CommentError):
    """Like lock could not be acquired in time."""

    def __init__(self, message: str = "Comment is busy, try again"):
        super().__init__(message, "comment_busy")


@dataclass(frozen=True)
class ImageUpload:
    """Image file received with a create request, already read into memory."""

    content: bytes
    content_type: str
    filename: str | None = None


def author_summary(user: User) -> AuthorSummary:
    return AuthorSummary(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        avatar=user.avatar,
        verified=user.verified,
    )


# ==============================================================================
# Service
# ==============================================================================


class CommentService:
    """Orchestrates the directories, the comment store and the image store."""

    def __init__(
        self,
        store: CommentStore,
        users: UserDirectory,
        posts: PostDirectory,
        images: ImageStore,
        background: BackgroundTasks,
        locks: CommentLocks | None = None,
    ):
        self.store = store
        self.users = users
        self.posts = posts
        self.images = images
        self.background = background
        self.locks = locks or CommentLocks()

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _require_user(self, user_id: UUID) -> User:
        user = await self.users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError
        return user

    async def _require_comment(self, comment_id: UUID) -> Comment:
        comment = await self.store.get(comment_id)
        if comment is None:
            raise CommentNotFoundError
        return comment

    async def _resolve_parent(
        self, post_id: UUID | None, comment_id: UUID | None
    ) -> tuple[ParentRef, str]:
        """Resolve the parent of a new comment.

        ``post_id`` wins when both are given. With neither, the comment
        lookup fails, so an orphan is never created.
        """
        if post_id is not None:
            post = await self.posts.get_post_by_id(post_id)
            if post is None:
                raise PostNotFoundError
            return PostParent(post.id), post.author_username

        if comment_id is None:
            raise CommentNotFoundError("Parent comment not found")
        parent = await self.store.get(comment_id)
        if parent is None:
            raise CommentNotFoundError("Parent comment not found")
        return CommentParent(parent.comment_id), parent.author.username

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_comment(self, comment_id: UUID) -> Comment:
        """Fetch a single comment."""
        return await self._require_comment(comment_id)

    async def list_post_comments(self, post_id: UUID) -> list[Comment]:
        """Top-level comments under a post, oldest first."""
        post = await self.posts.get_post_by_id(post_id)
        if post is None:
            raise PostNotFoundError
        return await self.store.list_by_post(post.id)

    async def list_replies(self, comment_id: UUID) -> list[Comment]:
        """Direct replies to a comment, oldest first."""
        comment = await self._require_comment(comment_id)
        return await self.store.list_by_parent_comment(comment.comment_id)

    # ==========================================================================
    # Create
    # ==========================================================================

    async def create_comment(
        self,
        author_id: UUID,
        content: str,
        post_id: UUID | None = None,
        comment_id: UUID | None = None,
        images: Sequence[ImageUpload] = (),
    ) -> Comment:
        """Create a new comment.

        Performs:
        - Author lookup
        - Parent resolution (post first, then comment)
        - Persist
        - One background upload per image; each attaches on success

        The returned comment never includes the images still uploading.
        """
        text = content.strip()
        if not text:
            raise InvalidContentError
        if len(text) > MAX_CONTENT_LENGTH:
            raise InvalidContentError(
                f"Comment content must be at most {MAX_CONTENT_LENGTH} characters"
            )

        author = await self._require_user(author_id)
        parent, parent_author_username = await self._resolve_parent(post_id, comment_id)

        comment = await self.store.create(
            create_comment(
                content=text,
                author=author_summary(author),
                parent=parent,
                parent_author_username=parent_author_username,
            )
        )

        logger.info(
            "comment_created",
            comment_id=str(comment.comment_id),
            author_id=str(author.id),
            parent_kind=parent.kind.value,
            parent_id=str(parent.id),
            image_count=len(images),
        )

        for index, upload in enumerate(images):
            self.background.fire_and_forget(
                self._upload_and_attach(comment.comment_id, upload),
                name=f"comment-image-{comment.comment_id}-{index}",
            )

        return comment

    async def _upload_and_attach(self, comment_id: UUID, upload: ImageUpload) -> None:
        """Upload one image and attach it to the comment.

        Runs detached from the request. Failures are logged and dropped:
        the comment simply ends up without this image.
        """
        try:
            url = await self.images.upload(
                upload.content, upload.content_type, upload.filename
            )
            image = await self.store.attach_image(comment_id, url)
        except Exception as e:
            logger.warning(
                "comment_image_upload_failed",
                comment_id=str(comment_id),
                filename=upload.filename,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        logger.info(
            "comment_image_attached",
            comment_id=str(comment_id),
            image_id=str(image.image_id),
        )

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def delete_comment(self, comment_id: UUID, user_id: UUID) -> str:
        """Delete a comment written by ``user_id``.

        Images, likes and replies go with it.
        """
        user = await self._require_user(user_id)
        comment = await self._require_comment(comment_id)

        if comment.author.id != user.id:
            raise PermissionDeniedError("You can only delete your own comments")

        await self.store.delete(comment.comment_id)

        logger.info(
            "comment_deleted",
            comment_id=str(comment.comment_id),
            author_id=str(user.id),
        )
        return DELETED_MESSAGE

    # ==========================================================================
    # Likes
    # ==========================================================================

    async def toggle_like(self, user_id: UUID, comment_id: UUID) -> Comment:
        """Like the comment if ``user_id`` hasn't yet, otherwise unlike it."""
        user = await self._require_user(user_id)
        await self._require_comment(comment_id)

        try:
            async with self.locks.hold(comment_id):
                # Re-read under the lock; a toggle that just finished may have
                # changed the set
                current = await self._require_comment(comment_id)
                liked = current.is_liked_by(user.id)
                if liked:
                    updated = await self.store.remove_like(comment_id, user.id)
                else:
                    updated = await self.store.add_like(comment_id, user.id)
        except LockError as e:
            # Acquisition only; hold() logs and drops release failures
            logger.warning(
                "comment_like_lock_timeout",
                comment_id=str(comment_id),
                user_id=str(user.id),
                error=str(e),
            )
            raise CommentBusyError from e

        if updated is None:
            # Deleted while we were toggling
            raise CommentNotFoundError

        logger.info(
            "comment_like_toggled",
            comment_id=str(comment_id),
            user_id=str(user.id),
            liked=not liked,
            like_count=updated.like_count,
        )
        return updated
