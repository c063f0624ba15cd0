"""Comment system service layer.

Business logic for:
- Comment CRUD with threading support
- Nested tree rendering
- Moderation state machine, bulk moderation and the moderation queue
- Engagement (likes, dislikes, helpful votes, reports)
- Statistics with a Redis cache
- Rate limiting
"""

import html
import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra import DriverException

from src.config import Settings, get_settings
from src.core.redis import comment_stats_key, rate_limit_key

from .models import (
    ACTION_AUDIT,
    ADMIN_DELETE_DESCRIPTION,
    AuthorType,
    Comment,
    CommentReport,
    ContentType,
    ModerationAction,
    ModerationStatus,
    ModeratorAction,
    ModeratorAuditLog,
    ReportReason,
    ReportStatus,
    create_audit_log,
    create_comment,
    create_report,
    is_transition_allowed,
)
from .schemas import (
    BulkModerationItem,
    BulkModerationResponse,
    BulkModerationSummary,
    CommentFilters,
    CommentStatsResponse,
    ModerationStatsResponse,
    SortField,
    SortOrder,
)
from .tree import CommentTreeNode, build_comment_tree


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CommentError(Exception):
    """Base comment error."""

    def __init__(self, message: str, code: str = "comment_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CommentNotFoundError(CommentError):
    """Comment not found."""

    def __init__(self, message: str = "Comment not found"):
        super().__init__(message, "comment_not_found")


class ReportNotFoundError(CommentError):
    def __init__(self, message: str = "Report not found"):
        super().__init__(message, "report_not_found")


class PermissionDeniedError(CommentError):
    """Permission denied for operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class InvalidIdentifierError(CommentError):
    """Malformed or missing identifier."""

    def __init__(self, message: str = "Invalid identifier"):
        super().__init__(message, "invalid_identifier")


class CommentValidationError(CommentError):
    """Request is well-formed but not acceptable (bad action, missing reason)."""

    def __init__(self, message: str):
        super().__init__(message, "validation_error")


class InvalidTransitionError(CommentError):
    """Moderation move not allowed from the current status."""

    def __init__(self, message: str):
        super().__init__(message, "invalid_transition")


class RateLimitExceededError(CommentError):
    """Rate limit exceeded."""

    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, "rate_limit_exceeded")


# ==============================================================================
# Helpers
# ==============================================================================


# Allowed HTML tags (basic formatting only)
ALLOWED_TAGS = {"b", "i", "em", "strong", "code", "pre"}


def sanitize_content(content: str) -> str:
    """Escape HTML, then re-enable the bare formatting tags in ALLOWED_TAGS.

    Tags carrying attributes stay escaped.
    """
    escaped = html.escape(content)
    for tag in ALLOWED_TAGS:
        escaped = escaped.replace(f"&lt;{tag}&gt;", f"<{tag}>")
        escaped = escaped.replace(f"&lt;/{tag}&gt;", f"</{tag}>")
    return escaped


def parse_uuid(value: str | UUID | None, field: str = "comment_id") -> UUID:
    """Parse an identifier coming from a path, query or body.

    Raises:
        InvalidIdentifierError: If the value is missing or not a UUID.
    """
    if isinstance(value, UUID):
        return value
    if not value:
        raise InvalidIdentifierError(f"Missing {field}")
    try:
        return UUID(str(value))
    except ValueError as e:
        raise InvalidIdentifierError(f"Invalid {field}: {value}") from e


def parse_moderation_action(action: str) -> ModerationAction:
    try:
        return ModerationAction(action)
    except ValueError as e:
        allowed = ", ".join(a.value for a in ModerationAction)
        raise CommentValidationError(
            f"Invalid moderation action '{action}'. Expected one of: {allowed}"
        ) from e


def author_type_for_role(role: str) -> AuthorType:
    """Map a user role onto the author type stored with a comment."""
    if role == "admin":
        return AuthorType.ADMIN
    if role == "teacher":
        return AuthorType.TEACHER
    return AuthorType.STUDENT


def _sort_key(sort_by: SortField):
    if sort_by == SortField.UPDATED_AT:
        return lambda c: (c.updated_at, c.created_at)
    if sort_by == SortField.LIKES:
        return lambda c: (c.likes_count, c.created_at)
    if sort_by == SortField.HELPFUL_VOTES:
        return lambda c: (c.helpful_votes, c.created_at)
    if sort_by == SortField.TOTAL_VOTES:
        return lambda c: (c.total_votes, c.created_at)
    return lambda c: c.created_at


def compute_stats(comments: list[Comment]) -> CommentStatsResponse:
    """Aggregate counters over a set of comments.

    ``pending_moderation`` counts flagged comments too: both still wait for
    a moderator decision.
    """
    stats = CommentStatsResponse()
    for comment in comments:
        stats.total_comments += 1
        if comment.is_reply:
            stats.total_replies += 1
        stats.total_likes += comment.likes_count
        stats.total_dislikes += comment.dislikes_count
        if comment.moderation_status in (
            ModerationStatus.PENDING,
            ModerationStatus.FLAGGED,
        ):
            stats.pending_moderation += 1
        if comment.moderation_status == ModerationStatus.FLAGGED:
            stats.flagged_comments += 1
    return stats


def in_moderation_queue(comment: Comment) -> bool:
    return (
        comment.moderation_status in (ModerationStatus.PENDING, ModerationStatus.FLAGGED)
        or not comment.is_approved
    )


# ==============================================================================
# Comment Service
# ==============================================================================


class CommentService:
    """Service for comment management."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis: "Redis | None" = None,
        settings: Settings | None = None,
    ):
        """Initialize with Cassandra session and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis
        self.settings = settings or get_settings()
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        pk = "content_type = ? AND content_id = ? AND comment_id = ?"

        # Comment CRUD
        self._insert_comment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments
            (content_type, content_id, comment_id, parent_id, root_id, author_id,
             author_type, content, edit_history, is_edited, edited_at, is_approved,
             is_moderated, moderation_status, moderation_reason, moderated_by,
             moderated_at, likes, dislikes, helpful_voters, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_lookup = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comments_by_id
            (comment_id, content_type, content_id)
            VALUES (?, ?, ?)
        """)

        self._get_lookup = self.session.prepare(f"""
            SELECT content_type, content_id FROM {self.keyspace}.comments_by_id
            WHERE comment_id = ?
        """)

        self._get_comment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE {pk}
        """)

        self._update_content = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET content = ?, edit_history = ?, is_edited = ?, edited_at = ?, updated_at = ?
            WHERE {pk}
        """)

        self._update_moderation = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET moderation_status = ?, is_approved = ?, is_moderated = ?,
                moderation_reason = ?, moderated_by = ?, moderated_at = ?, updated_at = ?
            WHERE {pk}
        """)

        self._delete_comment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments WHERE {pk}
        """)

        self._delete_lookup = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.comments_by_id WHERE comment_id = ?
        """)

        # Access paths for listings, trees and the moderation queue
        self._get_by_target = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments
            WHERE content_type = ? AND content_id = ?
        """)

        self._get_by_root = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE root_id = ?
        """)

        self._get_by_parent = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE parent_id = ?
        """)

        self._get_by_author = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE author_id = ?
        """)

        self._get_by_status = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE moderation_status = ?
        """)

        self._get_unapproved = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments WHERE is_approved = false
        """)

        self._scan_comments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comments LIMIT ?
        """)

        # Engagement (set arithmetic keeps concurrent toggles independent)
        self._add_like = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET likes = likes + ?, dislikes = dislikes - ?, updated_at = ?
            WHERE {pk}
        """)

        self._remove_like = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET likes = likes - ?, updated_at = ?
            WHERE {pk}
        """)

        self._add_dislike = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET dislikes = dislikes + ?, likes = likes - ?, updated_at = ?
            WHERE {pk}
        """)

        self._remove_dislike = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET dislikes = dislikes - ?, updated_at = ?
            WHERE {pk}
        """)

        self._add_helpful = self.session.prepare(f"""
            UPDATE {self.keyspace}.comments
            SET helpful_voters = helpful_voters + ?, updated_at = ?
            WHERE {pk}
        """)

        # Reports
        self._insert_report = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.comment_reports
            (comment_id, report_id, reporter_id, reason, description, status,
             reported_at, resolved_by, resolved_at, resolution_note)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_reports = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_reports WHERE comment_id = ?
        """)

        self._get_report = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.comment_reports
            WHERE comment_id = ? AND report_id = ?
        """)

        self._update_report = self.session.prepare(f"""
            UPDATE {self.keyspace}.comment_reports
            SET status = ?, resolved_by = ?, resolved_at = ?, resolution_note = ?
            WHERE comment_id = ? AND report_id = ?
        """)

        # Audit log
        self._insert_audit_log = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.moderator_audit_log
            (log_id, moderator_id, action, target_id, performed_at, details)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        self._get_audit_by_target = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.moderator_audit_log WHERE target_id = ?
        """)

    # ==========================================================================
    # Rate Limiting (Redis-based)
    # ==========================================================================

    async def check_rate_limit(self, user_id: UUID) -> bool:
        """Check if user has exceeded the comment rate limit.

        Returns True if within limit, raises RateLimitExceededError otherwise.
        """
        if not self.redis:
            return True

        minute_count = await self.redis.get(
            rate_limit_key("comments", str(user_id), "minute")
        )
        if minute_count and int(minute_count) >= self.settings.comments_per_minute:
            raise RateLimitExceededError("Too many comments per minute. Please wait.")

        hour_count = await self.redis.get(
            rate_limit_key("comments", str(user_id), "hour")
        )
        if hour_count and int(hour_count) >= self.settings.comments_per_hour:
            raise RateLimitExceededError("Hourly comment limit exceeded.")

        return True

    async def increment_rate_limit(self, user_id: UUID) -> None:
        """Increment rate limit counters."""
        if not self.redis:
            return

        key_minute = rate_limit_key("comments", str(user_id), "minute")
        key_hour = rate_limit_key("comments", str(user_id), "hour")

        pipe = self.redis.pipeline()
        pipe.incr(key_minute)
        pipe.expire(key_minute, 60)
        pipe.incr(key_hour)
        pipe.expire(key_hour, 3600)
        await pipe.execute()

    async def check_report_rate_limit(self, reporter_id: UUID) -> None:
        if not self.redis:
            return

        key = rate_limit_key("reports", str(reporter_id), "hour")
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, 3600)
        if count > self.settings.reports_per_hour:
            raise RateLimitExceededError("Hourly report limit exceeded.")

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def _fetch(self, statement, params: list) -> list[Comment]:
        rows = await self.session.aexecute(statement, params)
        return [Comment.from_row(row) for row in rows]

    async def find_comment(self, comment_id: UUID) -> Comment | None:
        """Resolve the partition through comments_by_id, then read the row."""
        result = await self.session.aexecute(self._get_lookup, [comment_id])
        lookup = result[0] if result else None
        if not lookup:
            return None

        result = await self.session.aexecute(
            self._get_comment,
            [lookup.content_type, lookup.content_id, comment_id],
        )
        row = result[0] if result else None
        return Comment.from_row(row) if row else None

    async def get_comment(
        self, comment_id: str | UUID, include_reports: bool = True
    ) -> Comment:
        """Get a single comment, with its reports by default.

        Raises:
            InvalidIdentifierError: Malformed id.
            CommentNotFoundError: No such comment.
        """
        cid = parse_uuid(comment_id)
        comment = await self.find_comment(cid)
        if comment is None:
            raise CommentNotFoundError
        if include_reports:
            comment.reports = await self._load_reports(cid)
        return comment

    async def _load_reports(self, comment_id: UUID) -> list[CommentReport]:
        rows = await self.session.aexecute(self._get_reports, [comment_id])
        reports = [CommentReport.from_row(row) for row in rows]
        reports.sort(key=lambda r: r.reported_at)
        return reports

    async def get_comments_for_target(
        self, content_type: ContentType, content_id: UUID
    ) -> list[Comment]:
        """Every comment on a target, in one partition read."""
        return await self._fetch(self._get_by_target, [content_type.value, content_id])

    async def _scan(self) -> list[Comment]:
        comments = await self._fetch(
            self._scan_comments, [self.settings.comments_scan_limit]
        )
        if len(comments) >= self.settings.comments_scan_limit:
            logger.warning("comment_scan_truncated", limit=self.settings.comments_scan_limit)
        return comments

    # ==========================================================================
    # Comment CRUD
    # ==========================================================================

    async def create_comment(
        self,
        content: str,
        author_id: UUID,
        author_type: AuthorType,
        content_type: ContentType,
        content_id: str | UUID,
        parent_id: str | UUID | None = None,
    ) -> Comment:
        """Create a new comment or reply.

        Performs:
        - Rate limiting check
        - Parent validation (must exist and share the target)
        - Content sanitization
        - Dual-write to the comments and comments_by_id tables
        """
        target_id = parse_uuid(content_id, "content_id")

        await self.check_rate_limit(author_id)

        parent = None
        if parent_id is not None:
            parent = await self.find_comment(parse_uuid(parent_id, "parent_id"))
            if parent is None:
                raise CommentNotFoundError("Parent comment not found")
            if parent.content_type != content_type or parent.content_id != target_id:
                raise CommentValidationError(
                    "Parent comment belongs to a different content item"
                )

        comment = create_comment(
            content_type=content_type,
            content_id=target_id,
            author_id=author_id,
            author_type=author_type,
            content=sanitize_content(content),
            parent=parent,
            auto_approve=self.settings.comments_auto_approve,
        )

        await self.session.aexecute(
            self._insert_comment,
            [
                comment.content_type.value,
                comment.content_id,
                comment.comment_id,
                comment.parent_id,
                comment.root_id,
                comment.author_id,
                comment.author_type.value,
                comment.content,
                comment.edit_history,
                comment.is_edited,
                comment.edited_at,
                comment.is_approved,
                comment.is_moderated,
                comment.moderation_status.value,
                comment.moderation_reason,
                comment.moderated_by,
                comment.moderated_at,
                comment.likes,
                comment.dislikes,
                comment.helpful_voters,
                comment.created_at,
                comment.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_lookup,
            [comment.comment_id, comment.content_type.value, comment.content_id],
        )

        await self.increment_rate_limit(author_id)
        await self._invalidate_stats(comment)

        logger.info(
            "comment_created",
            comment_id=str(comment.comment_id),
            content_type=comment.content_type.value,
            content_id=str(comment.content_id),
            parent_id=str(comment.parent_id) if comment.parent_id else None,
            moderation_status=comment.moderation_status.value,
        )
        return comment

    async def update_comment(
        self,
        comment_id: str | UUID,
        user_id: UUID,
        content: str,
        reason: str | None = None,
        is_admin: bool = False,
    ) -> Comment:
        """Edit a comment, keeping the previous version in edit_history.

        Only the author or an admin may edit.
        """
        comment = await self.get_comment(comment_id)

        if comment.author_id != user_id and not is_admin:
            raise PermissionDeniedError("You can only edit your own comments.")

        comment.edit_content(sanitize_content(content), reason)

        await self.session.aexecute(
            self._update_content,
            [
                comment.content,
                comment.edit_history,
                comment.is_edited,
                comment.edited_at,
                comment.updated_at,
                *self._key(comment),
            ],
        )

        logger.info(
            "comment_updated",
            comment_id=str(comment.comment_id),
            edited_by=str(user_id),
            revision=len(comment.edit_history),
        )
        return comment

    async def delete_comment(
        self,
        comment_id: str | UUID,
        user_id: UUID,
        is_admin: bool = False,
    ) -> None:
        """Hard delete a comment. Replies are left in place.

        When an admin removes someone else's comment, a deleted_by_admin
        report and an audit entry are recorded first so the removal stays
        traceable after the row is gone.
        """
        comment = await self.get_comment(comment_id, include_reports=False)

        is_author = comment.author_id == user_id
        if not is_author and not is_admin:
            raise PermissionDeniedError("You can only delete your own comments.")

        if not is_author:
            report = create_report(
                comment_id=comment.comment_id,
                reporter_id=user_id,
                reason=ReportReason.DELETED_BY_ADMIN,
                description=ADMIN_DELETE_DESCRIPTION,
            )
            await self._save_report(report)
            await self._write_audit(
                user_id,
                ModeratorAction.DELETE_COMMENT,
                comment.comment_id,
                json.dumps(
                    {
                        "author_id": str(comment.author_id),
                        "content_type": comment.content_type.value,
                        "content_id": str(comment.content_id),
                    }
                ),
            )

        await self.session.aexecute(self._delete_comment, self._key(comment))
        await self.session.aexecute(self._delete_lookup, [comment.comment_id])
        await self._invalidate_stats(comment)

        logger.info(
            "comment_deleted",
            comment_id=str(comment.comment_id),
            deleted_by=str(user_id),
            by_admin=not is_author,
        )

    @staticmethod
    def _key(comment: Comment) -> list:
        return [comment.content_type.value, comment.content_id, comment.comment_id]

    # ==========================================================================
    # Tree and Listing
    # ==========================================================================

    async def get_comment_tree(
        self,
        content_type: ContentType,
        content_id: str | UUID,
        max_depth: int | None = None,
    ) -> list[CommentTreeNode]:
        """Nested tree of visible comments on a target."""
        target_id = parse_uuid(content_id, "content_id")
        depth = (
            self.settings.comments_default_tree_depth if max_depth is None else max_depth
        )
        if not 1 <= depth <= self.settings.comments_max_tree_depth:
            raise CommentValidationError(
                f"max_depth must be between 1 and {self.settings.comments_max_tree_depth}"
            )

        comments = await self.get_comments_for_target(content_type, target_id)
        return build_comment_tree(comments, max_depth=depth)

    async def get_comments(self, filters: CommentFilters) -> tuple[list[Comment], int]:
        """Filtered, sorted page of comments.

        Reads through the narrowest access path available (target partition,
        then the root, parent, author and status indexes, else a bounded scan)
        and applies the remaining filters in memory.

        Returns:
            The page of comments and the total number of matches.
        """
        content_id = (
            parse_uuid(filters.content_id, "content_id") if filters.content_id else None
        )
        author_id = (
            parse_uuid(filters.author_id, "author_id") if filters.author_id else None
        )
        parent_id = (
            parse_uuid(filters.parent_id, "parent_id") if filters.parent_id else None
        )
        root_id = parse_uuid(filters.root_id, "root_id") if filters.root_id else None

        if filters.content_type and content_id:
            candidates = await self.get_comments_for_target(
                filters.content_type, content_id
            )
        elif root_id:
            candidates = await self._fetch(self._get_by_root, [root_id])
        elif parent_id:
            candidates = await self._fetch(self._get_by_parent, [parent_id])
        elif author_id:
            candidates = await self._fetch(self._get_by_author, [author_id])
        elif filters.moderation_status:
            candidates = await self._fetch(
                self._get_by_status, [filters.moderation_status.value]
            )
        else:
            candidates = await self._scan()

        def matches(c: Comment) -> bool:
            return (
                (filters.content_type is None or c.content_type == filters.content_type)
                and (content_id is None or c.content_id == content_id)
                and (author_id is None or c.author_id == author_id)
                and (parent_id is None or c.parent_id == parent_id)
                and (root_id is None or c.root_id == root_id)
                and (
                    filters.moderation_status is None
                    or c.moderation_status == filters.moderation_status
                )
                and (filters.is_approved is None or c.is_approved == filters.is_approved)
            )

        selected = [c for c in candidates if matches(c)]
        selected.sort(
            key=_sort_key(filters.sort_by),
            reverse=filters.sort_order == SortOrder.DESC,
        )
        start = (filters.page - 1) * filters.limit
        return selected[start : start + filters.limit], len(selected)

    # ==========================================================================
    # Engagement
    # ==========================================================================

    async def toggle_like(self, comment_id: str | UUID, user_id: UUID) -> Comment:
        """Like a comment, or undo the like. Clears any dislike by the user."""
        comment = await self.get_comment(comment_id, include_reports=False)
        now = datetime.now(UTC)

        if comment.toggle_like(user_id):
            await self.session.aexecute(
                self._add_like, [{user_id}, {user_id}, now, *self._key(comment)]
            )
        else:
            await self.session.aexecute(
                self._remove_like, [{user_id}, now, *self._key(comment)]
            )
        await self._invalidate_stats(comment)
        return comment

    async def toggle_dislike(self, comment_id: str | UUID, user_id: UUID) -> Comment:
        """Dislike a comment, or undo the dislike. Clears any like by the user."""
        comment = await self.get_comment(comment_id, include_reports=False)
        now = datetime.now(UTC)

        if comment.toggle_dislike(user_id):
            await self.session.aexecute(
                self._add_dislike, [{user_id}, {user_id}, now, *self._key(comment)]
            )
        else:
            await self.session.aexecute(
                self._remove_dislike, [{user_id}, now, *self._key(comment)]
            )
        await self._invalidate_stats(comment)
        return comment

    async def mark_as_helpful(self, comment_id: str | UUID, user_id: UUID) -> Comment:
        """Count a helpful vote. Voting twice has no further effect."""
        comment = await self.get_comment(comment_id, include_reports=False)
        if comment.mark_helpful(user_id):
            await self.session.aexecute(
                self._add_helpful,
                [{user_id}, datetime.now(UTC), *self._key(comment)],
            )
        return comment

    async def report_comment(
        self,
        comment_id: str | UUID,
        reporter_id: UUID,
        reason: ReportReason,
        description: str | None = None,
    ) -> Comment:
        """Report a comment for moderation.

        A reporter with a pending report on the comment is not counted
        twice. Reporting never hides the comment; once enough pending
        reports pile up on a comment still awaiting review, it is flagged.
        """
        comment = await self.get_comment(comment_id)

        if comment.has_pending_report_from(reporter_id):
            return comment

        await self.check_report_rate_limit(reporter_id)

        report = create_report(
            comment_id=comment.comment_id,
            reporter_id=reporter_id,
            reason=reason,
            description=html.escape(description) if description else None,
        )
        await self._save_report(report)
        comment.reports.append(report)

        pending = len(comment.pending_reports)
        logger.info(
            "comment_reported",
            comment_id=str(comment.comment_id),
            reason=reason.value,
            pending_reports=pending,
        )

        if (
            pending >= self.settings.comments_report_flag_threshold
            and comment.moderation_status == ModerationStatus.PENDING
        ):
            comment.moderation_status = ModerationStatus.FLAGGED
            comment.moderation_reason = f"Reported by {pending} users"
            comment.updated_at = datetime.now(UTC)
            await self._persist_moderation(comment)
            await self._invalidate_stats(comment)
            logger.info(
                "comment_auto_flagged",
                comment_id=str(comment.comment_id),
                pending_reports=pending,
            )

        return comment

    async def _save_report(self, report: CommentReport) -> None:
        await self.session.aexecute(
            self._insert_report,
            [
                report.comment_id,
                report.report_id,
                report.reporter_id,
                report.reason.value,
                report.description,
                report.status.value,
                report.reported_at,
                report.resolved_by,
                report.resolved_at,
                report.resolution_note,
            ],
        )

    # ==========================================================================
    # Moderation
    # ==========================================================================

    async def _persist_moderation(self, comment: Comment) -> None:
        await self.session.aexecute(
            self._update_moderation,
            [
                comment.moderation_status.value,
                comment.is_approved,
                comment.is_moderated,
                comment.moderation_reason,
                comment.moderated_by,
                comment.moderated_at,
                comment.updated_at,
                *self._key(comment),
            ],
        )

    async def _write_audit(
        self,
        moderator_id: UUID,
        action: ModeratorAction,
        target_id: UUID,
        details: str | None = None,
    ) -> ModeratorAuditLog:
        entry = create_audit_log(
            moderator_id=moderator_id,
            action=action,
            target_id=target_id,
            details=details,
        )
        await self.session.aexecute(
            self._insert_audit_log,
            [
                entry.log_id,
                entry.moderator_id,
                entry.action.value,
                entry.target_id,
                entry.performed_at,
                entry.details,
            ],
        )
        return entry

    @staticmethod
    def _validate_reason(action: ModerationAction, reason: str | None) -> str | None:
        reason = reason.strip() if reason else None
        if action == ModerationAction.REJECT and not reason:
            raise CommentValidationError("A reason is required to reject a comment")
        return reason

    async def _apply_action(
        self,
        comment_id: str | UUID,
        moderator_id: UUID,
        action: ModerationAction,
        reason: str | None,
    ) -> Comment:
        comment = await self.get_comment(comment_id, include_reports=False)
        previous = comment.moderation_status
        target = action.target_status

        if not is_transition_allowed(previous, target):
            raise InvalidTransitionError(
                f"Cannot {action.value} a comment that is {previous.value}"
            )

        comment.apply_moderation(action, moderator_id, reason)
        await self._persist_moderation(comment)
        await self._write_audit(
            moderator_id,
            ACTION_AUDIT[action],
            comment.comment_id,
            json.dumps(
                {
                    "from": previous.value,
                    "to": target.value,
                    "reason": comment.moderation_reason,
                }
            ),
        )
        await self._invalidate_stats(comment)

        logger.info(
            "comment_moderated",
            comment_id=str(comment.comment_id),
            moderator_id=str(moderator_id),
            action=action.value,
            previous_status=previous.value,
        )
        return comment

    async def moderate_comment(
        self,
        comment_id: str | UUID,
        moderator_id: UUID,
        action: str,
        reason: str | None = None,
    ) -> Comment:
        """Approve, reject or flag one comment.

        Raises:
            CommentValidationError: Unknown action, or reject without reason.
            InvalidTransitionError: Move not allowed from the current status.
        """
        parsed = parse_moderation_action(action)
        reason = self._validate_reason(parsed, reason)
        return await self._apply_action(comment_id, moderator_id, parsed, reason)

    async def approve_comment(
        self, comment_id: str | UUID, moderator_id: UUID, reason: str | None = None
    ) -> Comment:
        return await self.moderate_comment(
            comment_id, moderator_id, ModerationAction.APPROVE.value, reason
        )

    async def reject_comment(
        self, comment_id: str | UUID, moderator_id: UUID, reason: str | None
    ) -> Comment:
        return await self.moderate_comment(
            comment_id, moderator_id, ModerationAction.REJECT.value, reason
        )

    async def flag_comment(
        self, comment_id: str | UUID, moderator_id: UUID, reason: str | None = None
    ) -> Comment:
        return await self.moderate_comment(
            comment_id, moderator_id, ModerationAction.FLAG.value, reason
        )

    async def bulk_moderate(
        self,
        comment_ids: list[str],
        moderator_id: UUID,
        action: str,
        reason: str | None = None,
    ) -> BulkModerationResponse:
        """Apply one moderation action to many comments.

        Every id is processed on its own: a malformed id, a missing comment
        or a refused transition becomes a failed entry and the batch goes on.
        Only an empty batch or an unusable action/reason fails the request.
        """
        if not comment_ids:
            raise CommentValidationError("No comments selected for moderation")

        parsed = parse_moderation_action(action)
        reason = self._validate_reason(parsed, reason)

        results: list[BulkModerationItem] = []
        for comment_id in comment_ids:
            try:
                await self._apply_action(comment_id, moderator_id, parsed, reason)
            except CommentError as e:
                results.append(
                    BulkModerationItem(comment_id=comment_id, success=False, error=e.message)
                )
            except DriverException as e:
                logger.warning(
                    "bulk_moderation_item_failed",
                    comment_id=comment_id,
                    error=str(e),
                )
                results.append(
                    BulkModerationItem(
                        comment_id=comment_id,
                        success=False,
                        error="Failed to update comment",
                    )
                )
            else:
                results.append(BulkModerationItem(comment_id=comment_id, success=True))

        successful = sum(1 for r in results if r.success)
        summary = BulkModerationSummary(
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
        )
        logger.info(
            "bulk_moderation_completed",
            moderator_id=str(moderator_id),
            action=parsed.value,
            total=summary.total,
            successful=summary.successful,
            failed=summary.failed,
        )
        return BulkModerationResponse(results=results, summary=summary)

    async def get_moderation_queue(
        self,
        status: ModerationStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Comment], int]:
        """Comments awaiting review, newest first.

        The queue holds pending and flagged comments plus anything hidden
        (``is_approved`` false); ``status`` narrows it to one status.
        """
        if status is not None:
            candidates = await self._fetch(self._get_by_status, [status.value])
        else:
            candidates = []
            for statement, params in (
                (self._get_by_status, [ModerationStatus.PENDING.value]),
                (self._get_by_status, [ModerationStatus.FLAGGED.value]),
                (self._get_unapproved, []),
            ):
                candidates.extend(await self._fetch(statement, params))

        unique = {c.comment_id: c for c in candidates if in_moderation_queue(c)}
        queue = sorted(unique.values(), key=lambda c: c.created_at, reverse=True)
        start = (page - 1) * limit
        return queue[start : start + limit], len(queue)

    # ==========================================================================
    # Reports administration
    # ==========================================================================

    async def get_comment_reports(self, comment_id: str | UUID) -> list[CommentReport]:
        comment = await self.get_comment(comment_id)
        return comment.reports

    async def resolve_report(
        self,
        comment_id: str | UUID,
        report_id: str | UUID,
        moderator_id: UUID,
        status: str,
        note: str | None = None,
    ) -> CommentReport:
        """Close a report as resolved or dismissed."""
        try:
            new_status = ReportStatus(status)
        except ValueError as e:
            raise CommentValidationError(
                "Report status must be 'resolved' or 'dismissed'"
            ) from e
        if new_status == ReportStatus.PENDING:
            raise CommentValidationError(
                "Report status must be 'resolved' or 'dismissed'"
            )

        cid = parse_uuid(comment_id)
        rid = parse_uuid(report_id, "report_id")
        if await self.find_comment(cid) is None:
            raise CommentNotFoundError

        result = await self.session.aexecute(self._get_report, [cid, rid])
        row = result[0] if result else None
        if not row:
            raise ReportNotFoundError

        report = CommentReport.from_row(row)
        report.status = new_status
        report.resolved_by = moderator_id
        report.resolved_at = datetime.now(UTC)
        report.resolution_note = html.escape(note) if note else None

        await self.session.aexecute(
            self._update_report,
            [
                report.status.value,
                report.resolved_by,
                report.resolved_at,
                report.resolution_note,
                cid,
                rid,
            ],
        )
        await self._write_audit(
            moderator_id,
            ModeratorAction.RESOLVE_REPORT,
            rid,
            json.dumps({"comment_id": str(cid), "status": new_status.value}),
        )

        logger.info(
            "comment_report_resolved",
            comment_id=str(cid),
            report_id=str(rid),
            status=new_status.value,
        )
        return report

    async def get_comment_audit(
        self, comment_id: str | UUID
    ) -> tuple[Comment, list[ModeratorAuditLog]]:
        """Comment (with reports) and every moderator action taken on it."""
        comment = await self.get_comment(comment_id)
        rows = await self.session.aexecute(
            self._get_audit_by_target, [comment.comment_id]
        )
        actions = sorted(
            (ModeratorAuditLog.from_row(row) for row in rows),
            key=lambda a: a.performed_at,
        )
        return comment, actions

    # ==========================================================================
    # Statistics
    # ==========================================================================

    async def get_comment_stats(
        self,
        content_type: ContentType | None = None,
        content_id: str | UUID | None = None,
    ) -> CommentStatsResponse:
        """Counters for one target, or for every comment when unfiltered."""
        target_id = parse_uuid(content_id, "content_id") if content_id else None
        key = comment_stats_key(
            content_type.value if content_type else None,
            str(target_id) if target_id else None,
        )

        if self.redis:
            cached = await self.redis.get(key)
            if cached:
                return CommentStatsResponse(**json.loads(cached))

        if content_type and target_id:
            comments = await self.get_comments_for_target(content_type, target_id)
        else:
            comments = [
                c
                for c in await self._scan()
                if content_type is None or c.content_type == content_type
            ]
            if target_id:
                comments = [c for c in comments if c.content_id == target_id]

        stats = compute_stats(comments)

        if self.redis:
            await self.redis.setex(
                key,
                self.settings.comments_stats_cache_ttl,
                json.dumps(stats.model_dump()),
            )

        return stats

    async def get_moderation_stats(
        self,
        content_type: ContentType | None = None,
        content_id: str | UUID | None = None,
    ) -> ModerationStatsResponse:
        stats = await self.get_comment_stats(content_type, content_id)
        efficiency = 0.0
        if stats.total_comments:
            efficiency = round(
                (stats.total_comments - stats.pending_moderation)
                / stats.total_comments
                * 100,
                2,
            )
        return ModerationStatsResponse(
            **stats.model_dump(),
            pending_actions=stats.pending_moderation + stats.flagged_comments,
            moderation_efficiency=efficiency,
        )

    async def _invalidate_stats(self, comment: Comment) -> None:
        """Drop cached statistics that include this comment."""
        if not self.redis:
            return

        await self.redis.delete(
            comment_stats_key(comment.content_type.value, str(comment.content_id)),
            comment_stats_key(comment.content_type.value, None),
            comment_stats_key(None, str(comment.content_id)),
            comment_stats_key(None, None),
        )
