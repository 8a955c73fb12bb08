"""Per-comment serialization of like toggles.

A toggle reads the like set, decides add or remove, then writes. Two toggles
by the same user on the same comment must not interleave, or both would see
"not liked" and the second click would be lost. ``CommentLocks.hold`` runs the
critical section under:

- an in-process ``asyncio.Lock`` keyed by comment id
- a Redis lock on ``locks:comment_likes:{id}`` when Redis is available, so
  several API workers serialize too
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

import redis.asyncio as redis
import structlog
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from chirper.core.redis import comment_like_lock_name


logger = structlog.get_logger(__name__)


class CommentLocks:
    """Single-flight locks keyed by comment id."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        timeout: float = 5.0,
        blocking_timeout: float = 5.0,
    ):
        self._redis = redis_client
        self._timeout = timeout
        self._blocking_timeout = blocking_timeout
        self._local: dict[UUID, asyncio.Lock] = {}
        self._holders: dict[UUID, int] = {}

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    def active(self) -> int:
        """Number of comment ids with a lock currently held or awaited."""
        return len(self._local)

    @asynccontextmanager
    async def hold(self, comment_id: UUID) -> AsyncIterator[None]:
        """Hold the lock for ``comment_id`` for the duration of the block.

        A Redis lock that expired before release is logged and ignored; the
        block's writes have already happened.

        Raises:
            redis.exceptions.LockError: Redis lock not acquired in time
        """
        lock = self._local.setdefault(comment_id, asyncio.Lock())
        self._holders[comment_id] = self._holders.get(comment_id, 0) + 1
        try:
            async with lock:
                if self._redis is None:
                    yield
                    return

                redis_lock = self._redis.lock(
                    comment_like_lock_name(str(comment_id)),
                    timeout=self._timeout,
                    blocking_timeout=self._blocking_timeout,
                )
                if not await redis_lock.acquire():
                    raise LockError("Unable to acquire lock within the time specified")
                try:
                    yield
                finally:
                    await self._release(redis_lock, comment_id)
        finally:
            self._holders[comment_id] -= 1
            if self._holders[comment_id] == 0:
                del self._holders[comment_id]
                del self._local[comment_id]

    async def _release(self, redis_lock: Lock, comment_id: UUID) -> None:
        try:
            await redis_lock.release()
        except LockError as e:
            logger.warning(
                "comment_like_lock_release_failed",
                comment_id=str(comment_id),
                error=str(e),
            )
