"""Tests for CommentService.

Covers:
- get/list lookups and their not-found cases
- create: parent resolution, background image attachment
- delete: author check and cascade
- toggle_like: idempotent flip, concurrency
"""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from redis.exceptions import LockNotOwnedError

from chirper.comments.locks import CommentLocks
from chirper.comments.models import Comment, CommentParent, PostParent
from chirper.comments.service import (
    DELETED_MESSAGE,
    CommentBusyError,
    CommentNotFoundError,
    CommentService,
    ImageUpload,
    InvalidContentError,
    PermissionDeniedError,
    PostNotFoundError,
    UserNotFoundError,
)
from chirper.comments.store import InMemoryCommentStore
from chirper.core.background import BackgroundTasks
from chirper.posts.models import Post
from chirper.posts.service import InMemoryPostDirectory
from chirper.storage.service import InMemoryImageStore, StorageUploadError
from chirper.users.models import User
from chirper.users.service import InMemoryUserDirectory


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 56
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 60


def _png(name: str = "a.png") -> ImageUpload:
    return ImageUpload(content=PNG_BYTES, content_type="image/png", filename=name)


class YieldingCommentStore(InMemoryCommentStore):
    """Like updates that read, yield to the loop, then write the whole set."""

    async def get(self, comment_id: UUID) -> Comment | None:
        comment = await super().get(comment_id)
        await asyncio.sleep(0)
        return comment

    async def add_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        comment = await self.get(comment_id)
        if comment is None:
            return None
        return await self.set_likes(comment_id, comment.likes | {user_id})

    async def remove_like(self, comment_id: UUID, user_id: UUID) -> Comment | None:
        comment = await self.get(comment_id)
        if comment is None:
            return None
        return await self.set_likes(comment_id, comment.likes - {user_id})


class _NoLocks:
    @asynccontextmanager
    async def hold(self, comment_id: UUID):
        yield


@pytest.fixture
def yielding_service(
    users: InMemoryUserDirectory,
    posts: InMemoryPostDirectory,
    image_store: InMemoryImageStore,
    background: BackgroundTasks,
) -> CommentService:
    return CommentService(
        store=YieldingCommentStore(),
        users=users,
        posts=posts,
        images=image_store,
        background=background,
        locks=CommentLocks(),
    )


class TestCreateComment:
    """Tests for create_comment."""

    @pytest.mark.asyncio
    async def test_comment_on_post(self, comment_service: CommentService, alice: User, post: Post):
        """u1 comments "hello" on p1 with no images."""
        comment = await comment_service.create_comment(alice.id, "hello", post_id=post.id)

        assert comment.content == "hello"
        assert comment.parent == PostParent(post.id)
        assert comment.parent_author_username == post.author_username
        assert comment.author.id == alice.id
        assert comment.author.username == "alice"
        assert comment.author.verified is True
        assert comment.images == []
        assert comment.likes == set()

    @pytest.mark.asyncio
    async def test_reply_to_comment(
        self, comment_service: CommentService, alice: User, bob: User, post: Post
    ):
        """A reply is listed under its parent comment."""
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        c2 = await comment_service.create_comment(bob.id, "hi back", comment_id=c1.comment_id)

        assert c2.parent == CommentParent(c1.comment_id)
        assert c2.parent_author_username == "alice"

        replies = await comment_service.list_replies(c1.comment_id)
        assert [r.comment_id for r in replies] == [c2.comment_id]

        # Replies are not top-level comments of the post
        top_level = await comment_service.list_post_comments(post.id)
        assert [c.comment_id for c in top_level] == [c1.comment_id]

    @pytest.mark.asyncio
    async def test_post_id_takes_precedence(
        self, comment_service: CommentService, alice: User, post: Post
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)

        both = await comment_service.create_comment(
            alice.id, "both", post_id=post.id, comment_id=c1.comment_id
        )

        assert both.parent == PostParent(post.id)

    @pytest.mark.asyncio
    async def test_no_parent_is_not_found(self, comment_service: CommentService, alice: User):
        with pytest.raises(CommentNotFoundError):
            await comment_service.create_comment(alice.id, "orphan")

    @pytest.mark.asyncio
    async def test_missing_post(self, comment_service: CommentService, alice: User):
        with pytest.raises(PostNotFoundError):
            await comment_service.create_comment(alice.id, "hello", post_id=uuid4())

    @pytest.mark.asyncio
    async def test_missing_parent_comment(self, comment_service: CommentService, alice: User):
        with pytest.raises(CommentNotFoundError):
            await comment_service.create_comment(alice.id, "hello", comment_id=uuid4())

    @pytest.mark.asyncio
    async def test_missing_author(self, comment_service: CommentService, post: Post):
        with pytest.raises(UserNotFoundError):
            await comment_service.create_comment(uuid4(), "hello", post_id=post.id)

    @pytest.mark.asyncio
    async def test_failed_create_persists_nothing(
        self, comment_service: CommentService, store: InMemoryCommentStore, alice: User, post: Post
    ):
        with pytest.raises(PostNotFoundError):
            await comment_service.create_comment(alice.id, "hello", post_id=uuid4())
        assert await store.list_by_post(post.id) == []

    @pytest.mark.asyncio
    async def test_blank_content_rejected(
        self, comment_service: CommentService, alice: User, post: Post
    ):
        with pytest.raises(InvalidContentError):
            await comment_service.create_comment(alice.id, "   ", post_id=post.id)

    @pytest.mark.asyncio
    async def test_content_is_trimmed(
        self, comment_service: CommentService, alice: User, post: Post
    ):
        comment = await comment_service.create_comment(alice.id, "  hi  ", post_id=post.id)
        assert comment.content == "hi"


class TestImageAttachment:
    """Images upload in the background and attach when done."""

    @pytest.mark.asyncio
    async def test_images_attach_after_response(
        self,
        comment_service: CommentService,
        background: BackgroundTasks,
        alice: User,
        post: Post,
    ):
        comment = await comment_service.create_comment(
            alice.id,
            "with pictures",
            post_id=post.id,
            images=[_png("a.png"), ImageUpload(JPEG_BYTES, "image/jpeg", "b.jpg")],
        )

        # The immediate response never lists in-flight uploads
        assert comment.images == []

        await background.drain()

        fetched = await comment_service.get_comment(comment.comment_id)
        assert len(fetched.images) == 2
        assert all(image.image_url.startswith("memory://") for image in fetched.images)

    @pytest.mark.asyncio
    async def test_many_concurrent_uploads_all_land(
        self,
        comment_service: CommentService,
        background: BackgroundTasks,
        alice: User,
        post: Post,
    ):
        comment = await comment_service.create_comment(
            alice.id,
            "gallery",
            post_id=post.id,
            images=[_png(f"{i}.png") for i in range(10)],
        )

        await background.drain()

        fetched = await comment_service.get_comment(comment.comment_id)
        assert len(fetched.images) == 10

    @pytest.mark.asyncio
    async def test_invalid_image_is_dropped(
        self,
        comment_service: CommentService,
        background: BackgroundTasks,
        alice: User,
        post: Post,
    ):
        """A file that is not an image never attaches; the valid one does."""
        comment = await comment_service.create_comment(
            alice.id,
            "mixed",
            post_id=post.id,
            images=[
                ImageUpload(b"MZ\x90\x00 not an image", "image/png", "evil.png"),
                _png("ok.png"),
            ],
        )

        await background.drain()

        fetched = await comment_service.get_comment(comment.comment_id)
        assert len(fetched.images) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_is_not_raised(
        self,
        comment_service: CommentService,
        background: BackgroundTasks,
        alice: User,
        post: Post,
    ):
        comment_service.images.upload = AsyncMock(side_effect=StorageUploadError("boom"))

        comment = await comment_service.create_comment(
            alice.id, "hello", post_id=post.id, images=[_png()]
        )
        await background.drain()
        await asyncio.sleep(0)

        fetched = await comment_service.get_comment(comment.comment_id)
        assert fetched.images == []
        # Swallowed inside the task, so the registry sees no failure
        assert background.get_stats()["failed"] == 0


class TestReads:
    """Tests for get_comment and list operations."""

    @pytest.mark.asyncio
    async def test_get_missing(self, comment_service: CommentService):
        with pytest.raises(CommentNotFoundError):
            await comment_service.get_comment(uuid4())

    @pytest.mark.asyncio
    async def test_list_for_missing_post(self, comment_service: CommentService):
        with pytest.raises(PostNotFoundError):
            await comment_service.list_post_comments(uuid4())

    @pytest.mark.asyncio
    async def test_list_for_post_without_comments(
        self, comment_service: CommentService, post: Post
    ):
        assert await comment_service.list_post_comments(post.id) == []

    @pytest.mark.asyncio
    async def test_list_replies_for_missing_comment(self, comment_service: CommentService):
        with pytest.raises(CommentNotFoundError):
            await comment_service.list_replies(uuid4())


class TestDeleteComment:
    """Tests for delete_comment."""

    @pytest.mark.asyncio
    async def test_only_author_can_delete(
        self, comment_service: CommentService, alice: User, bob: User, post: Post
    ):
        """u2 cannot delete u1's comment; u1 can."""
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)

        with pytest.raises(PermissionDeniedError):
            await comment_service.delete_comment(c1.comment_id, bob.id)

        # Still there after the refused delete
        assert (await comment_service.get_comment(c1.comment_id)).comment_id == c1.comment_id

        message = await comment_service.delete_comment(c1.comment_id, alice.id)
        assert message == DELETED_MESSAGE

        with pytest.raises(CommentNotFoundError):
            await comment_service.get_comment(c1.comment_id)

    @pytest.mark.asyncio
    async def test_delete_cascades_to_replies(
        self, comment_service: CommentService, alice: User, bob: User, post: Post
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        c2 = await comment_service.create_comment(bob.id, "reply", comment_id=c1.comment_id)

        await comment_service.delete_comment(c1.comment_id, alice.id)

        with pytest.raises(CommentNotFoundError):
            await comment_service.get_comment(c2.comment_id)

    @pytest.mark.asyncio
    async def test_delete_missing_comment(self, comment_service: CommentService, alice: User):
        with pytest.raises(CommentNotFoundError):
            await comment_service.delete_comment(uuid4(), alice.id)

    @pytest.mark.asyncio
    async def test_delete_by_unknown_user(
        self, comment_service: CommentService, alice: User, post: Post
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        with pytest.raises(UserNotFoundError):
            await comment_service.delete_comment(c1.comment_id, uuid4())


class TestToggleLike:
    """Tests for toggle_like."""

    @pytest.mark.asyncio
    async def test_toggle_twice_restores(
        self, comment_service: CommentService, alice: User, bob: User, post: Post
    ):
        """u2 likes c1, then unlikes it."""
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)

        liked = await comment_service.toggle_like(bob.id, c1.comment_id)
        assert bob.id in liked.likes
        assert liked.like_count == 1

        unliked = await comment_service.toggle_like(bob.id, c1.comment_id)
        assert bob.id not in unliked.likes
        assert unliked.likes == c1.likes

    @pytest.mark.asyncio
    async def test_other_likes_untouched(
        self, comment_service: CommentService, alice: User, bob: User, post: Post
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        await comment_service.toggle_like(alice.id, c1.comment_id)

        updated = await comment_service.toggle_like(bob.id, c1.comment_id)
        assert updated.likes == {alice.id, bob.id}

        updated = await comment_service.toggle_like(bob.id, c1.comment_id)
        assert updated.likes == {alice.id}

    @pytest.mark.asyncio
    async def test_concurrent_toggles_by_different_users(
        self,
        yielding_service: CommentService,
        users: InMemoryUserDirectory,
        alice: User,
        post: Post,
    ):
        """No like is lost when many users toggle at once."""
        c1 = await yielding_service.create_comment(alice.id, "hello", post_id=post.id)
        likers = [users.add(User(id=uuid4(), username=f"u{i}", first_name="U")) for i in range(25)]

        await asyncio.gather(
            *(yielding_service.toggle_like(user.id, c1.comment_id) for user in likers)
        )

        fetched = await yielding_service.get_comment(c1.comment_id)
        assert fetched.likes == {user.id for user in likers}

    @pytest.mark.asyncio
    async def test_interleaved_toggles_lose_likes_without_lock(
        self,
        yielding_service: CommentService,
        users: InMemoryUserDirectory,
        alice: User,
        post: Post,
    ):
        """The yielding store does race, so the lock is what keeps likes."""
        c1 = await yielding_service.create_comment(alice.id, "hello", post_id=post.id)
        likers = [users.add(User(id=uuid4(), username=f"u{i}", first_name="U")) for i in range(5)]
        yielding_service.locks = _NoLocks()

        await asyncio.gather(
            *(yielding_service.toggle_like(user.id, c1.comment_id) for user in likers)
        )

        fetched = await yielding_service.get_comment(c1.comment_id)
        assert len(fetched.likes) < len(likers)

    @pytest.mark.asyncio
    async def test_concurrent_double_toggle_by_same_user(
        self, yielding_service: CommentService, alice: User, bob: User, post: Post
    ):
        """Two simultaneous toggles by one user cancel out."""
        c1 = await yielding_service.create_comment(alice.id, "hello", post_id=post.id)

        await asyncio.gather(
            yielding_service.toggle_like(bob.id, c1.comment_id),
            yielding_service.toggle_like(bob.id, c1.comment_id),
        )

        fetched = await yielding_service.get_comment(c1.comment_id)
        assert bob.id not in fetched.likes

    @pytest.mark.asyncio
    async def test_lock_timeout_is_busy_and_writes_nothing(
        self,
        comment_service: CommentService,
        redis_lock_client,
        alice: User,
        bob: User,
        post: Post,
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        comment_service.locks = CommentLocks(redis_client=redis_lock_client(acquired=False))

        with pytest.raises(CommentBusyError):
            await comment_service.toggle_like(bob.id, c1.comment_id)

        fetched = await comment_service.get_comment(c1.comment_id)
        assert fetched.likes == set()

    @pytest.mark.asyncio
    async def test_lock_expired_before_release_keeps_toggle(
        self,
        comment_service: CommentService,
        redis_lock_client,
        alice: User,
        bob: User,
        post: Post,
    ):
        """The write landed, so the toggle succeeds even if the lock expired."""
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        comment_service.locks = CommentLocks(
            redis_client=redis_lock_client(release_error=LockNotOwnedError("expired"))
        )

        updated = await comment_service.toggle_like(bob.id, c1.comment_id)

        assert updated.likes == {bob.id}
        fetched = await comment_service.get_comment(c1.comment_id)
        assert fetched.likes == {bob.id}

    @pytest.mark.asyncio
    async def test_toggle_missing_comment(self, comment_service: CommentService, bob: User):
        with pytest.raises(CommentNotFoundError):
            await comment_service.toggle_like(bob.id, uuid4())

    @pytest.mark.asyncio
    async def test_toggle_unknown_user(
        self, comment_service: CommentService, alice: User, post: Post
    ):
        c1 = await comment_service.create_comment(alice.id, "hello", post_id=post.id)
        with pytest.raises(UserNotFoundError):
            await comment_service.toggle_like(uuid4(), c1.comment_id)
