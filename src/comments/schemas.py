"""Pydantic schemas for the comment system.

Request/Response models with validation for:
- Comment creation, editing and listing
- Engagement (like, dislike, helpful, report)
- Moderation, bulk moderation and report resolution
- Statistics and audit views
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import (
    AuthorType,
    ContentType,
    ModerationStatus,
    ReportReason,
    ReportStatus,
)


# ==============================================================================
# Constants
# ==============================================================================
MAX_CONTENT_LENGTH = 2000
MAX_REASON_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 1000
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
MAX_BULK_SIZE = 100


def _strip_required(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        msg = f"{label} cannot be empty"
        raise ValueError(msg)
    return value


# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateCommentRequest(BaseModel):
    """Request to create a comment or a reply."""

    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)
    content_type: ContentType
    content_id: str
    parent_id: str | None = Field(
        None, description="Comment being replied to; omitted for top-level"
    )

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Strip whitespace and validate content."""
        return _strip_required(v, "Content")


class UpdateCommentRequest(BaseModel):
    """Request to edit a comment."""

    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)
    reason: str | None = Field(None, max_length=MAX_REASON_LENGTH)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Strip whitespace and validate content."""
        return _strip_required(v, "Content")


class ReportCommentRequest(BaseModel):
    """Request to report a comment."""

    reason: ReportReason
    description: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: ReportReason) -> ReportReason:
        if v == ReportReason.DELETED_BY_ADMIN:
            msg = "This reason is reserved for administrators"
            raise ValueError(msg)
        return v


class ModerateCommentRequest(BaseModel):
    """Moderator decision on one comment.

    ``action`` is validated by the service so an unknown action is reported
    as a 400 like the other moderation errors.
    """

    action: str = Field(..., description="approve | reject | flag")
    reason: str | None = Field(None, max_length=MAX_REASON_LENGTH)


class BulkModerateRequest(BaseModel):
    """Same decision applied to many comments, each processed independently."""

    comment_ids: list[str] = Field(..., max_length=MAX_BULK_SIZE)
    action: str = Field(..., description="approve | reject | flag")
    reason: str | None = Field(None, max_length=MAX_REASON_LENGTH)


class ResolveReportRequest(BaseModel):
    status: str = Field(..., description="resolved | dismissed")
    note: str | None = Field(None, max_length=MAX_DESCRIPTION_LENGTH)


class SortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    LIKES = "likes"
    HELPFUL_VOTES = "helpful_votes"
    TOTAL_VOTES = "total_votes"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CommentFilters(BaseModel):
    """Filters, sorting and paging for comment listings.

    Identifier filters are kept as strings and parsed by the service so a
    malformed id is a 400 rather than a schema error.
    """

    content_type: ContentType | None = None
    content_id: str | None = None
    author_id: str | None = None
    parent_id: str | None = None
    root_id: str | None = None
    moderation_status: ModerationStatus | None = None
    is_approved: bool | None = None
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


# ==============================================================================
# Response Schemas
# ==============================================================================


class ReportResponse(BaseModel):
    """Response for a comment report."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    comment_id: UUID
    reporter_id: UUID
    reason: ReportReason
    description: str | None = None
    status: ReportStatus
    reported_at: datetime
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None

    @classmethod
    def from_report(cls, report: Any) -> "ReportResponse":
        """Create response from CommentReport entity."""
        return cls(
            id=report.report_id,
            comment_id=report.comment_id,
            reporter_id=report.reporter_id,
            reason=report.reason,
            description=report.description,
            status=report.status,
            reported_at=report.reported_at,
            resolved_by=report.resolved_by,
            resolved_at=report.resolved_at,
            resolution_note=report.resolution_note,
        )


class EditHistoryEntry(BaseModel):
    content: str
    edited_at: datetime
    reason: str | None = None


class CommentResponse(BaseModel):
    """Response for a single comment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_type: ContentType
    content_id: UUID
    parent_id: UUID | None = None
    root_id: UUID | None = None
    author_id: UUID
    author_type: AuthorType
    content: str
    is_edited: bool = False
    edited_at: datetime | None = None
    edit_history: list[EditHistoryEntry] = Field(default_factory=list)
    is_approved: bool
    is_moderated: bool = False
    moderation_status: ModerationStatus
    moderation_reason: str | None = None
    moderated_by: UUID | None = None
    moderated_at: datetime | None = None
    likes: int = 0
    dislikes: int = 0
    helpful_votes: int = 0
    total_votes: int = 0
    reports: list[ReportResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_comment(cls, comment: Any) -> "CommentResponse":
        """Create response from Comment entity.

        Vote sets are exposed as counts only.
        """
        return cls(
            id=comment.comment_id,
            content_type=comment.content_type,
            content_id=comment.content_id,
            parent_id=comment.parent_id,
            root_id=comment.root_id,
            author_id=comment.author_id,
            author_type=comment.author_type,
            content=comment.content,
            is_edited=comment.is_edited,
            edited_at=comment.edited_at,
            edit_history=[EditHistoryEntry(**entry) for entry in comment.edit_history],
            is_approved=comment.is_approved,
            is_moderated=comment.is_moderated,
            moderation_status=comment.moderation_status,
            moderation_reason=comment.moderation_reason,
            moderated_by=comment.moderated_by,
            moderated_at=comment.moderated_at,
            likes=comment.likes_count,
            dislikes=comment.dislikes_count,
            helpful_votes=comment.helpful_votes,
            total_votes=comment.total_votes,
            reports=[ReportResponse.from_report(r) for r in comment.reports],
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )


class CommentTreeNodeResponse(BaseModel):
    """A comment with its nested replies."""

    comment: CommentResponse
    replies: list["CommentTreeNodeResponse"] = Field(default_factory=list)
    total_replies: int = 0
    depth: int = 0

    @classmethod
    def from_node(cls, node: Any) -> "CommentTreeNodeResponse":
        return cls(
            comment=CommentResponse.from_comment(node.comment),
            replies=[cls.from_node(reply) for reply in node.replies],
            total_replies=node.total_replies,
            depth=node.depth,
        )


class VoteCountsResponse(BaseModel):
    """Counters returned by like/dislike toggles."""

    likes: int
    dislikes: int


class HelpfulVotesResponse(BaseModel):
    helpful_votes: int


class CommentStatsResponse(BaseModel):
    """Aggregate counters over all comments or one target."""

    total_comments: int = 0
    total_replies: int = 0
    total_likes: int = 0
    total_dislikes: int = 0
    pending_moderation: int = 0
    flagged_comments: int = 0


class ModerationStatsResponse(CommentStatsResponse):
    pending_actions: int = 0
    moderation_efficiency: float = 0.0


class BulkModerationItem(BaseModel):
    comment_id: str
    success: bool
    error: str | None = None


class BulkModerationSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkModerationResponse(BaseModel):
    """Per-item outcome of a bulk moderation request."""

    results: list[BulkModerationItem]
    summary: BulkModerationSummary


class ModerationStateResponse(BaseModel):
    status: ModerationStatus
    is_approved: bool
    is_moderated: bool
    reason: str | None = None
    moderated_by: UUID | None = None
    moderated_at: datetime | None = None


class ModeratorActionResponse(BaseModel):
    id: UUID
    moderator_id: UUID
    action: str
    performed_at: datetime
    details: str | None = None


class CommentAuditResponse(BaseModel):
    """Full moderation history of one comment."""

    comment_id: UUID
    edit_history: list[EditHistoryEntry]
    moderation: ModerationStateResponse
    engagement: dict[str, int]
    reports: list[ReportResponse]
    moderator_actions: list[ModeratorActionResponse]

    @classmethod
    def build(cls, comment: Any, actions: list[Any]) -> "CommentAuditResponse":
        return cls(
            comment_id=comment.comment_id,
            edit_history=[EditHistoryEntry(**entry) for entry in comment.edit_history],
            moderation=ModerationStateResponse(
                status=comment.moderation_status,
                is_approved=comment.is_approved,
                is_moderated=comment.is_moderated,
                reason=comment.moderation_reason,
                moderated_by=comment.moderated_by,
                moderated_at=comment.moderated_at,
            ),
            engagement={
                "likes": comment.likes_count,
                "dislikes": comment.dislikes_count,
                "helpful_votes": comment.helpful_votes,
                "total_votes": comment.total_votes,
            },
            reports=[ReportResponse.from_report(r) for r in comment.reports],
            moderator_actions=[
                ModeratorActionResponse(
                    id=a.log_id,
                    moderator_id=a.moderator_id,
                    action=a.action.value,
                    performed_at=a.performed_at,
                    details=a.details,
                )
                for a in actions
            ],
        )
