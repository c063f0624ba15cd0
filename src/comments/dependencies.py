"""FastAPI dependencies for the comment system.

Provides dependency injection for:
- Comment service
- Error translation
- Permission checks
"""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from src.auth import permissions

from .service import CommentError, CommentService


async def get_comment_service(request: Request) -> CommentService:
    """Get comment service from app state.

    Raises:
        HTTPException 503: When the service was not initialised (no database).
    """
    app_state = request.app.state
    if not hasattr(app_state, "comment_service") or not app_state.comment_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service unavailable",
        )
    return app_state.comment_service


CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]


ERROR_STATUS_MAP = {
    "invalid_identifier": status.HTTP_400_BAD_REQUEST,
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "invalid_transition": status.HTTP_400_BAD_REQUEST,
    "permission_denied": status.HTTP_403_FORBIDDEN,
    "comment_not_found": status.HTTP_404_NOT_FOUND,
    "report_not_found": status.HTTP_404_NOT_FOUND,
    "rate_limit_exceeded": status.HTTP_429_TOO_MANY_REQUESTS,
}


def handle_comment_error(error: CommentError) -> HTTPException:
    """Convert comment errors to HTTP exceptions.

    Unknown codes map to 500.
    """
    status_code = ERROR_STATUS_MAP.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=error.message)


def is_admin(user: Any) -> bool:
    return permissions.is_admin(user.role)
