"""Shared fixtures.

The environment is switched to in-memory backends before ``chirper.main`` is
imported, so the app never reaches for Cassandra, Redis or Firebase.
"""

import os
import tempfile


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("COMMENT_STORE_BACKEND", "memory")
os.environ.setdefault("DIRECTORY_BACKEND", "memory")
os.environ.setdefault("IMAGE_STORE_BACKEND", "memory")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="chirper-logs-"))

from collections.abc import Callable, Iterator  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from chirper.auth.security import create_access_token  # noqa: E402
from chirper.comments.locks import CommentLocks  # noqa: E402
from chirper.comments.service import CommentService  # noqa: E402
from chirper.comments.store import InMemoryCommentStore  # noqa: E402
from chirper.config import get_settings  # noqa: E402
from chirper.core.background import BackgroundTasks  # noqa: E402
from chirper.posts.models import Post  # noqa: E402
from chirper.posts.service import InMemoryPostDirectory  # noqa: E402
from chirper.storage.service import InMemoryImageStore  # noqa: E402
from chirper.users.models import User  # noqa: E402
from chirper.users.service import InMemoryUserDirectory  # noqa: E402


@pytest.fixture
def alice() -> User:
    """Author of the post and of the first comment (``u1``)."""
    return User(id=uuid4(), username="alice", first_name="Alice", verified=True)


@pytest.fixture
def bob() -> User:
    """Second user (``u2``)."""
    return User(id=uuid4(), username="bob", first_name="Bob", avatar="https://img/bob.png")


@pytest.fixture
def post(alice: User) -> Post:
    """Post ``p1`` written by alice."""
    return Post(id=uuid4(), author_id=alice.id, author_username=alice.username)


@pytest.fixture
def store() -> InMemoryCommentStore:
    return InMemoryCommentStore()


@pytest.fixture
def users(alice: User, bob: User) -> InMemoryUserDirectory:
    return InMemoryUserDirectory([alice, bob])


@pytest.fixture
def posts(post: Post) -> InMemoryPostDirectory:
    return InMemoryPostDirectory([post])


@pytest.fixture
def image_store() -> InMemoryImageStore:
    return InMemoryImageStore(get_settings())


@pytest.fixture
def background() -> BackgroundTasks:
    return BackgroundTasks()


@pytest.fixture
def comment_service(
    store: InMemoryCommentStore,
    users: InMemoryUserDirectory,
    posts: InMemoryPostDirectory,
    image_store: InMemoryImageStore,
    background: BackgroundTasks,
) -> CommentService:
    """CommentService wired to in-memory backends."""
    return CommentService(
        store=store,
        users=users,
        posts=posts,
        images=image_store,
        background=background,
        locks=CommentLocks(),
    )


@pytest.fixture
def client(comment_service: CommentService) -> Iterator[TestClient]:
    """Test client with the in-memory comment service injected."""
    from chirper.main import app  # noqa: PLC0415

    app.state.comment_service = comment_service
    yield TestClient(app)
    app.state.comment_service = None


@pytest.fixture
def auth_headers() -> Callable[[UUID], dict[str, str]]:
    """Build an Authorization header for a user id."""

    def _headers(user_id: UUID) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture
def redis_lock_client() -> Callable[..., MagicMock]:
    """Build a Redis client double whose lock acquires and releases as told."""

    def _client(acquired: bool = True, release_error: Exception | None = None) -> MagicMock:
        lock = MagicMock()
        lock.acquire = AsyncMock(return_value=acquired)
        lock.release = AsyncMock(side_effect=release_error)
        client = MagicMock()
        client.lock.return_value = lock
        return client

    return _client
