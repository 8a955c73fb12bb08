"""Pydantic schemas for comment system.

Response envelopes wrap their payload in a named key: ``{"comment": ...}``,
``{"comments": [...]}`` or ``{"message": ...}``.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Comment, CommentParent, PostParent


# ==============================================================================
# Request Schemas
# ==============================================================================


class LikeCommentRequest(BaseModel):
    """Request to toggle the caller's like on a comment."""

    model_config = ConfigDict(populate_by_name=True)

    comment_id: UUID = Field(..., alias="commentId")


# ==============================================================================
# Response Schemas
# ==============================================================================


class AuthorResponse(BaseModel):
    """Comment author info."""

    id: UUID
    username: str
    first_name: str
    avatar: str | None = None
    verified: bool = False


class ParentResponse(BaseModel):
    """Summary of the post or comment a comment hangs under."""

    id: UUID
    author_username: str | None = None


class ImageResponse(BaseModel):
    """Attached image."""

    id: UUID
    image_url: str


class CommentResponse(BaseModel):
    """Response for a single comment."""

    id: UUID
    content: str
    author: AuthorResponse
    post: ParentResponse | None = None
    comment: ParentResponse | None = None
    images: list[ImageResponse] = Field(default_factory=list)
    likes: list[UUID] = Field(default_factory=list)
    like_count: int = 0
    comments: list[UUID] = Field(default_factory=list, description="Reply ids")
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentResponse":
        """Create response from Comment entity."""
        parent = ParentResponse(
            id=comment.parent.id,
            author_username=comment.parent_author_username,
        )
        return cls(
            id=comment.comment_id,
            content=comment.content,
            author=AuthorResponse(
                id=comment.author.id,
                username=comment.author.username,
                first_name=comment.author.first_name,
                avatar=comment.author.avatar,
                verified=comment.author.verified,
            ),
            post=parent if isinstance(comment.parent, PostParent) else None,
            comment=parent if isinstance(comment.parent, CommentParent) else None,
            images=[
                ImageResponse(id=image.image_id, image_url=image.image_url)
                for image in comment.images
            ],
            likes=sorted(comment.likes, key=str),
            like_count=comment.like_count,
            comments=list(comment.children),
            created_at=comment.created_at,
        )


class CommentEnvelope(BaseModel):
    """``{"comment": ...}``"""

    comment: CommentResponse

    @classmethod
    def of(cls, comment: Comment) -> "CommentEnvelope":
        return cls(comment=CommentResponse.from_comment(comment))


class CommentListResponse(BaseModel):
    """``{"comments": [...]}``"""

    comments: list[CommentResponse]

    @classmethod
    def of(cls, comments: list[Comment]) -> "CommentListResponse":
        return cls(comments=[CommentResponse.from_comment(c) for c in comments])


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
