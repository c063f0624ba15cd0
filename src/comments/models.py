"""Database models for threaded comments on LMS content.

Cassandra table definitions for:
- Comments: partitioned by target (content_type, content_id) so one read
  returns the whole discussion of a course, lesson, discussion or assignment
- Comments by id: O(1) resolution of a comment id to its partition
- Comment reports: user reports, kept after the comment is deleted
- Moderator audit log: every moderation decision, 1 year TTL

Threading uses an adjacency list (parent_id) plus the id of the top-level
ancestor (root_id) so a whole thread can be fetched with one index read.
Engagement is stored as user-id sets, which gives toggle semantics and
one-vote-per-user for free.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.auth.models import ensure_utc_aware


class ContentType(str, Enum):
    """LMS entities that can be commented on."""

    COURSE = "course"
    LESSON = "lesson"
    DISCUSSION = "discussion"
    ASSIGNMENT = "assignment"


class AuthorType(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class ModerationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class ModerationAction(str, Enum):
    """Moderator decisions, each targeting one ModerationStatus."""

    APPROVE = "approve"
    REJECT = "reject"
    FLAG = "flag"

    @property
    def target_status(self) -> ModerationStatus:
        return ACTION_TARGET_STATUS[self]


class ReportReason(str, Enum):
    SPAM = "spam"
    INAPPROPRIATE = "inappropriate"
    HARASSMENT = "harassment"
    OTHER = "other"
    DELETED_BY_ADMIN = "deleted_by_admin"


class ReportStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ModeratorAction(str, Enum):
    """Types of moderator actions for audit logging."""

    APPROVE_COMMENT = "approve_comment"
    REJECT_COMMENT = "reject_comment"
    FLAG_COMMENT = "flag_comment"
    DELETE_COMMENT = "delete_comment"
    RESOLVE_REPORT = "resolve_report"


ACTION_TARGET_STATUS: dict[ModerationAction, ModerationStatus] = {
    ModerationAction.APPROVE: ModerationStatus.APPROVED,
    ModerationAction.REJECT: ModerationStatus.REJECTED,
    ModerationAction.FLAG: ModerationStatus.FLAGGED,
}

ACTION_AUDIT: dict[ModerationAction, ModeratorAction] = {
    ModerationAction.APPROVE: ModeratorAction.APPROVE_COMMENT,
    ModerationAction.REJECT: ModeratorAction.REJECT_COMMENT,
    ModerationAction.FLAG: ModeratorAction.FLAG_COMMENT,
}

# Moves a moderator may make from each status. Re-applying the current
# status is always accepted (see is_transition_allowed).
ALLOWED_TRANSITIONS: dict[ModerationStatus, frozenset[ModerationStatus]] = {
    ModerationStatus.PENDING: frozenset(
        {
            ModerationStatus.APPROVED,
            ModerationStatus.REJECTED,
            ModerationStatus.FLAGGED,
        }
    ),
    ModerationStatus.FLAGGED: frozenset(
        {ModerationStatus.APPROVED, ModerationStatus.REJECTED}
    ),
    ModerationStatus.APPROVED: frozenset(
        {ModerationStatus.REJECTED, ModerationStatus.FLAGGED}
    ),
    ModerationStatus.REJECTED: frozenset({ModerationStatus.APPROVED}),
}

DEFAULT_FLAG_REASON = "Flagged by moderator"
ADMIN_DELETE_DESCRIPTION = "Comment deleted by administrator"


def is_transition_allowed(current: ModerationStatus, target: ModerationStatus) -> bool:
    """Check whether a moderator may move a comment from current to target."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COMMENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments (
    content_type TEXT,
    content_id UUID,
    comment_id UUID,
    parent_id UUID,
    root_id UUID,
    author_id UUID,
    author_type TEXT,
    content TEXT,
    edit_history LIST<FROZEN<MAP<TEXT, TEXT>>>,
    is_edited BOOLEAN,
    edited_at TIMESTAMP,
    is_approved BOOLEAN,
    is_moderated BOOLEAN,
    moderation_status TEXT,
    moderation_reason TEXT,
    moderated_by UUID,
    moderated_at TIMESTAMP,
    likes SET<UUID>,
    dislikes SET<UUID>,
    helpful_voters SET<UUID>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((content_type, content_id), comment_id)
)
"""

COMMENT_AUTHOR_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_author_idx
ON {keyspace}.comments (author_id)
"""

COMMENT_PARENT_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_parent_idx
ON {keyspace}.comments (parent_id)
"""

COMMENT_ROOT_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_root_idx
ON {keyspace}.comments (root_id)
"""

COMMENT_STATUS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_status_idx
ON {keyspace}.comments (moderation_status)
"""

COMMENT_APPROVED_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS comments_approved_idx
ON {keyspace}.comments (is_approved)
"""

# Comment id -> partition key
COMMENTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comments_by_id (
    comment_id UUID PRIMARY KEY,
    content_type TEXT,
    content_id UUID
)
"""

REPORT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.comment_reports (
    comment_id UUID,
    report_id UUID,
    reporter_id UUID,
    reason TEXT,
    description TEXT,
    status TEXT,
    reported_at TIMESTAMP,
    resolved_by UUID,
    resolved_at TIMESTAMP,
    resolution_note TEXT,
    PRIMARY KEY ((comment_id), report_id)
)
"""

MODERATOR_AUDIT_LOG_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.moderator_audit_log (
    log_id UUID,
    moderator_id UUID,
    action TEXT,
    target_id UUID,
    performed_at TIMESTAMP,
    details TEXT,
    PRIMARY KEY ((moderator_id), performed_at, log_id)
) WITH CLUSTERING ORDER BY (performed_at DESC, log_id ASC)
  AND default_time_to_live = 31536000
  AND comment = 'Audit log for moderator actions (1 year TTL for compliance)'
"""

MODERATOR_AUDIT_TARGET_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS moderator_audit_target_idx
ON {keyspace}.moderator_audit_log (target_id)
"""

COMMENTS_TABLES_CQL = [
    COMMENT_TABLE_CQL,
    COMMENT_AUTHOR_INDEX_CQL,
    COMMENT_PARENT_INDEX_CQL,
    COMMENT_ROOT_INDEX_CQL,
    COMMENT_STATUS_INDEX_CQL,
    COMMENT_APPROVED_INDEX_CQL,
    COMMENTS_BY_ID_TABLE_CQL,
    REPORT_TABLE_CQL,
    MODERATOR_AUDIT_LOG_TABLE_CQL,
    MODERATOR_AUDIT_TARGET_INDEX_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class CommentReport:
    """Report of a comment for moderation."""

    report_id: UUID
    comment_id: UUID
    reporter_id: UUID
    reason: ReportReason
    description: str | None
    status: ReportStatus
    reported_at: datetime
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "CommentReport":
        return cls(
            report_id=row.report_id,
            comment_id=row.comment_id,
            reporter_id=row.reporter_id,
            reason=ReportReason(row.reason),
            description=row.description,
            status=ReportStatus(row.status),
            reported_at=ensure_utc_aware(row.reported_at),
            resolved_by=row.resolved_by,
            resolved_at=ensure_utc_aware(row.resolved_at),
            resolution_note=row.resolution_note,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == ReportStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": str(self.report_id),
            "comment_id": str(self.comment_id),
            "reporter_id": str(self.reporter_id),
            "reason": self.reason.value,
            "description": self.description,
            "status": self.status.value,
            "reported_at": self.reported_at.isoformat(),
            "resolved_by": str(self.resolved_by) if self.resolved_by else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolution_note": self.resolution_note,
        }


@dataclass
class Comment:
    """Comment entity with threading, moderation and engagement state.

    ``reports`` is not a column of the comments table; it is filled from
    comment_reports when a single comment is loaded.
    """

    comment_id: UUID
    content_type: ContentType
    content_id: UUID
    parent_id: UUID | None
    root_id: UUID | None
    author_id: UUID
    author_type: AuthorType
    content: str
    created_at: datetime
    updated_at: datetime
    edit_history: list[dict[str, str]] = field(default_factory=list)
    is_edited: bool = False
    edited_at: datetime | None = None
    is_approved: bool = True
    is_moderated: bool = False
    moderation_status: ModerationStatus = ModerationStatus.PENDING
    moderation_reason: str | None = None
    moderated_by: UUID | None = None
    moderated_at: datetime | None = None
    likes: set[UUID] = field(default_factory=set)
    dislikes: set[UUID] = field(default_factory=set)
    helpful_voters: set[UUID] = field(default_factory=set)
    reports: list[CommentReport] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Any) -> "Comment":
        """Create Comment from Cassandra row.

        Empty collections come back from Cassandra as None.
        """
        return cls(
            comment_id=row.comment_id,
            content_type=ContentType(row.content_type),
            content_id=row.content_id,
            parent_id=row.parent_id,
            root_id=row.root_id,
            author_id=row.author_id,
            author_type=AuthorType(row.author_type or AuthorType.STUDENT.value),
            content=row.content,
            created_at=ensure_utc_aware(row.created_at),
            updated_at=ensure_utc_aware(row.updated_at or row.created_at),
            edit_history=[dict(entry) for entry in (row.edit_history or [])],
            is_edited=row.is_edited or False,
            edited_at=ensure_utc_aware(row.edited_at),
            is_approved=row.is_approved if row.is_approved is not None else True,
            is_moderated=row.is_moderated or False,
            moderation_status=ModerationStatus(
                row.moderation_status or ModerationStatus.PENDING.value
            ),
            moderation_reason=row.moderation_reason,
            moderated_by=row.moderated_by,
            moderated_at=ensure_utc_aware(row.moderated_at),
            likes=set(row.likes or ()),
            dislikes=set(row.dislikes or ()),
            helpful_voters=set(row.helpful_voters or ()),
        )

    # --- derived values ---

    @property
    def is_reply(self) -> bool:
        return self.parent_id is not None

    @property
    def is_visible(self) -> bool:
        """Shown in public trees: approved by flag and by status."""
        return self.is_approved and self.moderation_status == ModerationStatus.APPROVED

    @property
    def likes_count(self) -> int:
        return len(self.likes)

    @property
    def dislikes_count(self) -> int:
        return len(self.dislikes)

    @property
    def helpful_votes(self) -> int:
        return len(self.helpful_voters)

    @property
    def total_votes(self) -> int:
        return len(self.likes) + len(self.dislikes)

    @property
    def pending_reports(self) -> list[CommentReport]:
        return [r for r in self.reports if r.is_pending]

    def has_pending_report_from(self, reporter_id: UUID) -> bool:
        return any(r.reporter_id == reporter_id for r in self.pending_reports)

    # --- engagement ---

    def toggle_like(self, user_id: UUID) -> bool:
        """Like, or undo a previous like. A like replaces a dislike.

        Returns:
            True if the user now likes the comment.
        """
        if user_id in self.likes:
            self.likes.discard(user_id)
            return False
        self.likes.add(user_id)
        self.dislikes.discard(user_id)
        return True

    def toggle_dislike(self, user_id: UUID) -> bool:
        """Mirror of toggle_like. Returns True if the user now dislikes it."""
        if user_id in self.dislikes:
            self.dislikes.discard(user_id)
            return False
        self.dislikes.add(user_id)
        self.likes.discard(user_id)
        return True

    def mark_helpful(self, user_id: UUID) -> bool:
        """Record a helpful vote. Returns False if the user already voted."""
        if user_id in self.helpful_voters:
            return False
        self.helpful_voters.add(user_id)
        return True

    # --- editing and moderation ---

    def edit_content(
        self, new_content: str, reason: str | None = None, now: datetime | None = None
    ) -> dict[str, str]:
        """Replace the content, keeping the previous version in edit_history.

        Returns:
            The history entry that was appended.
        """
        now = now or datetime.now(UTC)
        entry = {"content": self.content, "edited_at": now.isoformat()}
        if reason:
            entry["reason"] = reason
        self.edit_history.append(entry)
        self.content = new_content
        self.is_edited = True
        self.edited_at = now
        self.updated_at = now
        return entry

    def apply_moderation(
        self,
        action: ModerationAction,
        moderator_id: UUID,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Apply a moderator decision. The caller validates the transition.

        Flagging leaves ``is_approved`` untouched: a flagged comment stays
        as listed as it was until a moderator approves or rejects it.
        """
        now = now or datetime.now(UTC)
        self.moderation_status = action.target_status
        if action == ModerationAction.APPROVE:
            self.is_approved = True
        elif action == ModerationAction.REJECT:
            self.is_approved = False
        elif not reason:
            reason = DEFAULT_FLAG_REASON
        self.is_moderated = True
        self.moderation_reason = reason
        self.moderated_by = moderator_id
        self.moderated_at = now
        self.updated_at = now

    def to_dict(self) -> dict[str, Any]:
        return {
            "comment_id": str(self.comment_id),
            "content_type": self.content_type.value,
            "content_id": str(self.content_id),
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "root_id": str(self.root_id) if self.root_id else None,
            "author_id": str(self.author_id),
            "author_type": self.author_type.value,
            "content": self.content,
            "edit_history": self.edit_history,
            "is_edited": self.is_edited,
            "edited_at": self.edited_at.isoformat() if self.edited_at else None,
            "is_approved": self.is_approved,
            "is_moderated": self.is_moderated,
            "moderation_status": self.moderation_status.value,
            "moderation_reason": self.moderation_reason,
            "moderated_by": str(self.moderated_by) if self.moderated_by else None,
            "moderated_at": (
                self.moderated_at.isoformat() if self.moderated_at else None
            ),
            "likes": self.likes_count,
            "dislikes": self.dislikes_count,
            "helpful_votes": self.helpful_votes,
            "total_votes": self.total_votes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ModeratorAuditLog:
    """Audit log entry for moderator actions."""

    log_id: UUID
    moderator_id: UUID
    action: ModeratorAction
    target_id: UUID | None
    performed_at: datetime
    details: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> "ModeratorAuditLog":
        return cls(
            log_id=row.log_id,
            moderator_id=row.moderator_id,
            action=ModeratorAction(row.action),
            target_id=row.target_id,
            performed_at=ensure_utc_aware(row.performed_at),
            details=row.details,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_id": str(self.log_id),
            "moderator_id": str(self.moderator_id),
            "action": self.action.value,
            "target_id": str(self.target_id) if self.target_id else None,
            "performed_at": self.performed_at.isoformat(),
            "details": self.details,
        }


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_comment(
    content_type: ContentType,
    content_id: UUID,
    author_id: UUID,
    author_type: AuthorType,
    content: str,
    parent: Comment | None = None,
    auto_approve: bool = False,
) -> Comment:
    """Create a new comment.

    Replies inherit the top-level ancestor of their parent as root_id, so
    every comment in a thread points at the same root.
    """
    now = datetime.now(UTC)
    return Comment(
        comment_id=uuid4(),
        content_type=content_type,
        content_id=content_id,
        parent_id=parent.comment_id if parent else None,
        root_id=(parent.root_id or parent.comment_id) if parent else None,
        author_id=author_id,
        author_type=author_type,
        content=content,
        created_at=now,
        updated_at=now,
        is_approved=True,
        moderation_status=(
            ModerationStatus.APPROVED if auto_approve else ModerationStatus.PENDING
        ),
    )


def create_report(
    comment_id: UUID,
    reporter_id: UUID,
    reason: ReportReason,
    description: str | None = None,
) -> CommentReport:
    return CommentReport(
        report_id=uuid4(),
        comment_id=comment_id,
        reporter_id=reporter_id,
        reason=reason,
        description=description,
        status=ReportStatus.PENDING,
        reported_at=datetime.now(UTC),
    )


def create_audit_log(
    moderator_id: UUID,
    action: ModeratorAction,
    target_id: UUID | None = None,
    details: str | None = None,
) -> ModeratorAuditLog:
    """Create a moderator audit log entry.

    Args:
        moderator_id: ID of the moderator performing the action
        action: Type of moderator action
        target_id: ID of the affected entity (comment_id or report_id)
        details: Free text or JSON describing the action

    Returns:
        ModeratorAuditLog instance ready to be inserted
    """
    return ModeratorAuditLog(
        log_id=uuid4(),
        moderator_id=moderator_id,
        action=action,
        target_id=target_id,
        performed_at=datetime.now(UTC),
        details=details,
    )
