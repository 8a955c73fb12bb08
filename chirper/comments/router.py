"""Comment system API endpoints.

Provides routes for:
- Reading a comment, the comments under a post and the replies to a comment
- Creating a comment (multipart, with optional images)
- Deleting your own comment
- Toggling your like on a comment
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, UploadFile, status

from chirper.auth.dependencies import CurrentUser

from .dependencies import CommentServiceDep, handle_comment_error
from .schemas import (
    CommentEnvelope,
    CommentListResponse,
    LikeCommentRequest,
    MessageResponse,
)
from .service import CommentError, ImageUpload


router = APIRouter(prefix="/comments", tags=["comments"])


@router.post(
    "",
    response_model=CommentEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
)
async def create_comment(
    comment_service: CommentServiceDep,
    user: CurrentUser,
    content: Annotated[str, Form(min_length=1, max_length=10000)],
    post_id: Annotated[UUID | None, Form(alias="postId")] = None,
    comment_id: Annotated[UUID | None, Form(alias="commentId")] = None,
    images: Annotated[list[UploadFile] | None, File()] = None,
) -> CommentEnvelope:
    """Create a comment under a post (``postId``) or a comment (``commentId``).

    Images upload in the background; the response never lists them.
    """
    # Read the files now: the request body is gone once the response is sent
    uploads = [
        ImageUpload(
            content=await image.read(),
            content_type=image.content_type or "application/octet-stream",
            filename=image.filename,
        )
        for image in images or []
    ]

    try:
        comment = await comment_service.create_comment(
            author_id=user.id,
            content=content,
            post_id=post_id,
            comment_id=comment_id,
            images=uploads,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return CommentEnvelope.of(comment)


@router.post(
    "/like",
    response_model=CommentEnvelope,
    summary="Toggle like",
)
async def toggle_like(
    data: LikeCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> CommentEnvelope:
    """Like the comment, or remove the like if the caller already liked it."""
    try:
        comment = await comment_service.toggle_like(user.id, data.comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return CommentEnvelope.of(comment)


@router.get(
    "/post/{post_id}",
    response_model=CommentListResponse,
    summary="List comments under a post",
)
async def list_post_comments(
    post_id: UUID,
    comment_service: CommentServiceDep,
) -> CommentListResponse:
    try:
        comments = await comment_service.list_post_comments(post_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return CommentListResponse.of(comments)


@router.get(
    "/comment/{comment_id}",
    response_model=CommentListResponse,
    summary="List replies to a comment",
)
async def list_replies(
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> CommentListResponse:
    try:
        comments = await comment_service.list_replies(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return CommentListResponse.of(comments)


@router.get(
    "/{comment_id}",
    response_model=CommentEnvelope,
    summary="Get comment",
)
async def get_comment(
    comment_id: UUID,
    comment_service: CommentServiceDep,
) -> CommentEnvelope:
    try:
        comment = await comment_service.get_comment(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return CommentEnvelope.of(comment)


@router.delete(
    "/{comment_id}",
    response_model=MessageResponse,
    summary="Delete comment",
)
async def delete_comment(
    comment_id: UUID,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> MessageResponse:
    """Delete a comment you wrote, together with its images and replies."""
    try:
        message = await comment_service.delete_comment(comment_id, user.id)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return MessageResponse(message=message)
