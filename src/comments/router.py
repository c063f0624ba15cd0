"""Comment system API endpoints.

Provides routes for:
- Comment CRUD (create, read, update, delete)
- Filtered listings and the nested comment tree
- Engagement (like, dislike, helpful) and reports
- Aggregate statistics
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.dependencies import CurrentUser
from src.core.schemas import ApiResponse, Pagination

from .dependencies import CommentServiceDep, handle_comment_error, is_admin
from .models import ContentType
from .schemas import (
    CommentFilters,
    CommentResponse,
    CommentStatsResponse,
    CommentTreeNodeResponse,
    CreateCommentRequest,
    HelpfulVotesResponse,
    ReportCommentRequest,
    UpdateCommentRequest,
    VoteCountsResponse,
)
from .service import CommentError, author_type_for_role


router = APIRouter(prefix="/v1/comments", tags=["comments"])


def _user_uuid(user) -> UUID:
    return UUID(str(user.id))


@router.post(
    "",
    response_model=ApiResponse[CommentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create comment",
)
async def create_comment(
    data: CreateCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[CommentResponse]:
    """Create a comment on a content item, or a reply when parent_id is set.

    Rate limited per user (per minute and per hour).
    Content is sanitized before storage.
    """
    try:
        comment = await comment_service.create_comment(
            content=data.content,
            author_id=_user_uuid(user),
            author_type=author_type_for_role(user.role),
            content_type=data.content_type,
            content_id=data.content_id,
            parent_id=data.parent_id,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[CommentResponse](
        data=CommentResponse.from_comment(comment),
        message="Comment created",
    )


@router.get(
    "",
    response_model=ApiResponse[list[CommentResponse]],
    summary="List comments",
)
async def list_comments(
    comment_service: CommentServiceDep,
    filters: Annotated[CommentFilters, Query()],
) -> ApiResponse[list[CommentResponse]]:
    """Filtered, sorted and paginated comment listing."""
    try:
        comments, total = await comment_service.get_comments(filters)
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[list[CommentResponse]](
        data=[CommentResponse.from_comment(c) for c in comments],
        pagination=Pagination.build(filters.page, filters.limit, total),
    )


@router.get(
    "/stats",
    response_model=ApiResponse[CommentStatsResponse],
    summary="Comment statistics",
)
async def get_comment_stats(
    comment_service: CommentServiceDep,
    content_type: ContentType | None = None,
    content_id: str | None = None,
) -> ApiResponse[CommentStatsResponse]:
    try:
        stats = await comment_service.get_comment_stats(content_type, content_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[CommentStatsResponse](data=stats)


@router.get(
    "/tree/{content_type}/{content_id}",
    response_model=ApiResponse[list[CommentTreeNodeResponse]],
    summary="Comment tree",
)
async def get_comment_tree(
    content_type: ContentType,
    content_id: str,
    comment_service: CommentServiceDep,
    max_depth: int | None = None,
) -> ApiResponse[list[CommentTreeNodeResponse]]:
    """Visible comments of a content item nested under their parents.

    Roots are newest first, replies oldest first. Replies below
    ``max_depth`` (default and upper bound come from settings) are not
    returned but still count in ``total_replies``.
    """
    try:
        nodes = await comment_service.get_comment_tree(
            content_type, content_id, max_depth
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[list[CommentTreeNodeResponse]](
        data=[CommentTreeNodeResponse.from_node(node) for node in nodes]
    )


@router.get(
    "/{comment_id}",
    response_model=ApiResponse[CommentResponse],
    summary="Get comment",
)
async def get_comment(
    comment_id: str,
    comment_service: CommentServiceDep,
) -> ApiResponse[CommentResponse]:
    try:
        comment = await comment_service.get_comment(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[CommentResponse](data=CommentResponse.from_comment(comment))


@router.put(
    "/{comment_id}",
    response_model=ApiResponse[CommentResponse],
    summary="Update comment",
)
async def update_comment(
    comment_id: str,
    data: UpdateCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[CommentResponse]:
    """Edit comment content. Only the author or an admin can edit.

    The previous version is kept in the edit history.
    """
    try:
        comment = await comment_service.update_comment(
            comment_id=comment_id,
            user_id=_user_uuid(user),
            content=data.content,
            reason=data.reason,
            is_admin=is_admin(user),
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[CommentResponse](
        data=CommentResponse.from_comment(comment),
        message="Comment updated",
    )


@router.delete(
    "/{comment_id}",
    response_model=ApiResponse[None],
    summary="Delete comment",
)
async def delete_comment(
    comment_id: str,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[None]:
    """Delete a comment. Author or admin only; replies are kept."""
    try:
        await comment_service.delete_comment(
            comment_id=comment_id,
            user_id=_user_uuid(user),
            is_admin=is_admin(user),
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[None](message="Comment deleted")


# ==============================================================================
# Engagement
# ==============================================================================


@router.post(
    "/{comment_id}/like",
    response_model=ApiResponse[VoteCountsResponse],
    summary="Toggle like",
)
async def like_comment(
    comment_id: str,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[VoteCountsResponse]:
    try:
        comment = await comment_service.toggle_like(comment_id, _user_uuid(user))
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[VoteCountsResponse](
        data=VoteCountsResponse(
            likes=comment.likes_count, dislikes=comment.dislikes_count
        )
    )


@router.post(
    "/{comment_id}/dislike",
    response_model=ApiResponse[VoteCountsResponse],
    summary="Toggle dislike",
)
async def dislike_comment(
    comment_id: str,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[VoteCountsResponse]:
    try:
        comment = await comment_service.toggle_dislike(comment_id, _user_uuid(user))
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[VoteCountsResponse](
        data=VoteCountsResponse(
            likes=comment.likes_count, dislikes=comment.dislikes_count
        )
    )


@router.post(
    "/{comment_id}/helpful",
    response_model=ApiResponse[HelpfulVotesResponse],
    summary="Mark comment as helpful",
)
async def mark_helpful(
    comment_id: str,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[HelpfulVotesResponse]:
    try:
        comment = await comment_service.mark_as_helpful(comment_id, _user_uuid(user))
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[HelpfulVotesResponse](
        data=HelpfulVotesResponse(helpful_votes=comment.helpful_votes)
    )


@router.post(
    "/{comment_id}/report",
    response_model=ApiResponse[None],
    summary="Report comment",
)
async def report_comment(
    comment_id: str,
    data: ReportCommentRequest,
    comment_service: CommentServiceDep,
    user: CurrentUser,
) -> ApiResponse[None]:
    """Report a comment for moderation.

    Reporting twice while the first report is pending has no effect.
    """
    try:
        await comment_service.report_comment(
            comment_id=comment_id,
            reporter_id=_user_uuid(user),
            reason=data.reason,
            description=data.description,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[None](message="Comment reported successfully")
