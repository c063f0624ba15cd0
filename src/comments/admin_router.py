"""Comment moderation endpoints (teachers and admins).

Provides routes for:
- Moderation queue and statistics
- Single and bulk moderation
- Report resolution and audit trail
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from src.auth.dependencies import ModeratorUser
from src.core.schemas import ApiResponse, Pagination

from .dependencies import CommentServiceDep, handle_comment_error
from .models import ContentType, ModerationStatus
from .schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    BulkModerateRequest,
    BulkModerationResponse,
    CommentAuditResponse,
    CommentResponse,
    ModerateCommentRequest,
    ModerationStatsResponse,
    ReportResponse,
    ResolveReportRequest,
)
from .service import CommentError


router = APIRouter(prefix="/v1/admin/comments", tags=["comments-admin"])


@router.get(
    "/moderation",
    response_model=ApiResponse[list[CommentResponse]],
    summary="Moderation queue",
)
async def get_moderation_queue(
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
    status: ModerationStatus | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> ApiResponse[list[CommentResponse]]:
    """Pending, flagged and hidden comments, newest first."""
    try:
        comments, total = await comment_service.get_moderation_queue(
            status=status, page=page, limit=limit
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[list[CommentResponse]](
        data=[CommentResponse.from_comment(c) for c in comments],
        pagination=Pagination.build(page, limit, total),
    )


@router.get(
    "/moderation-stats",
    response_model=ApiResponse[ModerationStatsResponse],
    summary="Moderation statistics",
)
async def get_moderation_stats(
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
    content_type: ContentType | None = None,
    content_id: str | None = None,
) -> ApiResponse[ModerationStatsResponse]:
    try:
        stats = await comment_service.get_moderation_stats(content_type, content_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[ModerationStatsResponse](data=stats)


@router.post(
    "/bulk-moderate",
    response_model=ApiResponse[BulkModerationResponse],
    summary="Bulk moderation",
)
async def bulk_moderate(
    data: BulkModerateRequest,
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
) -> ApiResponse[BulkModerationResponse]:
    """Apply one action to many comments.

    Failures are reported per comment; the request itself only fails for
    an empty list, an unknown action or a rejection without reason.
    """
    try:
        result = await comment_service.bulk_moderate(
            comment_ids=data.comment_ids,
            moderator_id=UUID(str(moderator.id)),
            action=data.action,
            reason=data.reason,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[BulkModerationResponse](
        data=result,
        message=(
            f"{result.summary.successful} of {result.summary.total} "
            "comments moderated"
        ),
    )


@router.post(
    "/{comment_id}/moderate",
    response_model=ApiResponse[CommentResponse],
    summary="Moderate comment",
)
async def moderate_comment(
    comment_id: str,
    data: ModerateCommentRequest,
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
) -> ApiResponse[CommentResponse]:
    """Approve, reject (reason required) or flag a comment."""
    try:
        comment = await comment_service.moderate_comment(
            comment_id=comment_id,
            moderator_id=UUID(str(moderator.id)),
            action=data.action,
            reason=data.reason,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e

    return ApiResponse[CommentResponse](
        data=CommentResponse.from_comment(comment),
        message=f"Comment {comment.moderation_status.value}",
    )


@router.get(
    "/{comment_id}/reports",
    response_model=ApiResponse[list[ReportResponse]],
    summary="List comment reports",
)
async def get_comment_reports(
    comment_id: str,
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
) -> ApiResponse[list[ReportResponse]]:
    try:
        reports = await comment_service.get_comment_reports(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[list[ReportResponse]](
        data=[ReportResponse.from_report(r) for r in reports]
    )


@router.put(
    "/{comment_id}/reports/{report_id}/resolve",
    response_model=ApiResponse[ReportResponse],
    summary="Resolve report",
)
async def resolve_report(
    comment_id: str,
    report_id: str,
    data: ResolveReportRequest,
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
) -> ApiResponse[ReportResponse]:
    """Close a report as resolved or dismissed."""
    try:
        report = await comment_service.resolve_report(
            comment_id=comment_id,
            report_id=report_id,
            moderator_id=UUID(str(moderator.id)),
            status=data.status,
            note=data.note,
        )
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[ReportResponse](data=ReportResponse.from_report(report))


@router.get(
    "/{comment_id}/audit",
    response_model=ApiResponse[CommentAuditResponse],
    summary="Comment audit trail",
)
async def get_comment_audit(
    comment_id: str,
    comment_service: CommentServiceDep,
    moderator: ModeratorUser,
) -> ApiResponse[CommentAuditResponse]:
    """Edit history, moderation state, engagement, reports and moderator actions."""
    try:
        comment, actions = await comment_service.get_comment_audit(comment_id)
    except CommentError as e:
        raise handle_comment_error(e) from e
    return ApiResponse[CommentAuditResponse](
        data=CommentAuditResponse.build(comment, actions)
    )
