"""FastAPI dependencies for comment system.

Provides dependency injection for:
- Comment service
- Error mapping from service errors to HTTP
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import (
    CommentError,
    CommentService,
)


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state.

    Args:
        request: FastAPI request

    Returns:
        CommentService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "comment_service") or not app_state.comment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return app_state.comment_service


# Type aliases for dependency injection
CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]


def handle_comment_error(error: CommentError) -> HTTPException:
    """Convert comment errors to HTTP exceptions.

    Args:
        error: Comment error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "comment_not_found": status.HTTP_404_NOT_FOUND,
        "post_not_found": status.HTTP_404_NOT_FOUND,
        "user_not_found": status.HTTP_404_NOT_FOUND,
        "permission_denied": status.HTTP_403_FORBIDDEN,
        "invalid_content": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "comment_busy": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
