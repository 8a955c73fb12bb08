"""Comment system module.

Provides the threaded comment system:
- Comments under posts and replies under comments
- Background image attachment
- Per-user like toggling

Note: Router is not exported here to avoid circular imports.
Import directly from chirper.comments.router when needed.
"""

from .locks import CommentLocks
from .models import (
    COMMENTS_TABLES_CQL,
    AuthorSummary,
    Comment,
    CommentImage,
    CommentParent,
    ParentKind,
    ParentRef,
    PostParent,
)
from .service import (
    CommentBusyError,
    CommentError,
    CommentNotFoundError,
    CommentService,
    ImageUpload,
    InvalidContentError,
    PermissionDeniedError,
    PostNotFoundError,
    UserNotFoundError,
)
from .store import CassandraCommentStore, CommentStore, InMemoryCommentStore


__all__ = [
    "COMMENTS_TABLES_CQL",
    "AuthorSummary",
    "CassandraCommentStore",
    "Comment",
    "CommentBusyError",
    "CommentError",
    "CommentImage",
    "CommentLocks",
    "CommentNotFoundError",
    "CommentParent",
    "CommentService",
    "CommentStore",
    "ImageUpload",
    "InMemoryCommentStore",
    "InvalidContentError",
    "ParentKind",
    "ParentRef",
    "PermissionDeniedError",
    "PostNotFoundError",
    "PostParent",
    "UserNotFoundError",
]
