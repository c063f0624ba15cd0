"""Comment system module.

Provides threaded comments on course content with:
- Nested trees with depth limits
- Likes, dislikes and helpful votes
- Reports, moderation and an audit trail
- Rate limiting and cached statistics

Note: Routers are not exported here to avoid circular imports.
Import directly from src.comments.router / src.comments.admin_router.
"""

from .models import (
    COMMENTS_TABLES_CQL,
    Comment,
    CommentReport,
    ContentType,
    ModerationAction,
    ModerationStatus,
    ReportReason,
    ReportStatus,
)
from .service import CommentService
from .tree import CommentTreeNode, build_comment_tree


__all__ = [
    "COMMENTS_TABLES_CQL",
    "Comment",
    "CommentReport",
    "CommentService",
    "CommentTreeNode",
    "ContentType",
    "ModerationAction",
    "ModerationStatus",
    "ReportReason",
    "ReportStatus",
    "build_comment_tree",
]
