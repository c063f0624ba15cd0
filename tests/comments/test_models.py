"""Tests for comment entities, engagement toggles and moderation rules."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from src.comments.models import (
    ALLOWED_TRANSITIONS,
    DEFAULT_FLAG_REASON,
    AuthorType,
    Comment,
    ContentType,
    ModerationAction,
    ModerationStatus,
    ReportReason,
    ReportStatus,
    create_comment,
    create_report,
    is_transition_allowed,
)


class TestCreateComment:
    def test_top_level_defaults(self) -> None:
        comment = create_comment(
            content_type=ContentType.COURSE,
            content_id=uuid4(),
            author_id=uuid4(),
            author_type=AuthorType.STUDENT,
            content="Hello",
        )
        assert comment.parent_id is None
        assert comment.root_id is None
        assert comment.moderation_status == ModerationStatus.PENDING
        assert comment.is_approved is True
        assert comment.is_moderated is False
        assert comment.created_at.tzinfo is not None

    def test_auto_approve(self) -> None:
        comment = create_comment(
            content_type=ContentType.COURSE,
            content_id=uuid4(),
            author_id=uuid4(),
            author_type=AuthorType.TEACHER,
            content="Hello",
            auto_approve=True,
        )
        assert comment.moderation_status == ModerationStatus.APPROVED

    def test_root_id_propagates_through_replies(self, make_comment) -> None:
        root = make_comment()
        reply = create_comment(
            content_type=root.content_type,
            content_id=root.content_id,
            author_id=uuid4(),
            author_type=AuthorType.STUDENT,
            content="reply",
            parent=root,
        )
        nested = create_comment(
            content_type=root.content_type,
            content_id=root.content_id,
            author_id=uuid4(),
            author_type=AuthorType.STUDENT,
            content="nested",
            parent=reply,
        )

        assert reply.parent_id == root.comment_id
        assert reply.root_id == root.comment_id
        assert nested.parent_id == reply.comment_id
        assert nested.root_id == root.comment_id


class TestEngagement:
    def test_like_toggles(self, make_comment) -> None:
        comment = make_comment()
        user = uuid4()

        assert comment.toggle_like(user) is True
        assert comment.likes_count == 1
        assert comment.toggle_like(user) is False
        assert comment.likes_count == 0

    def test_like_replaces_dislike(self, make_comment) -> None:
        comment = make_comment()
        user = uuid4()
        comment.toggle_dislike(user)

        comment.toggle_like(user)

        assert comment.likes == {user}
        assert comment.dislikes == set()
        assert comment.total_votes == 1

    def test_dislike_replaces_like(self, make_comment) -> None:
        comment = make_comment()
        user = uuid4()
        comment.toggle_like(user)

        assert comment.toggle_dislike(user) is True
        assert comment.likes_count == 0
        assert comment.dislikes_count == 1

    def test_helpful_is_one_vote_per_user(self, make_comment) -> None:
        comment = make_comment()
        user = uuid4()

        assert comment.mark_helpful(user) is True
        assert comment.mark_helpful(user) is False
        assert comment.helpful_votes == 1


class TestEditing:
    def test_edit_keeps_previous_version(self, make_comment) -> None:
        comment = make_comment(content="first")
        now = datetime(2024, 2, 1, tzinfo=UTC)

        entry = comment.edit_content("second", reason="typo", now=now)

        assert comment.content == "second"
        assert comment.is_edited is True
        assert comment.edited_at == now
        assert comment.updated_at == now
        assert entry == {
            "content": "first",
            "edited_at": now.isoformat(),
            "reason": "typo",
        }
        assert comment.edit_history == [entry]

    def test_edit_without_reason(self, make_comment) -> None:
        comment = make_comment(content="first")
        entry = comment.edit_content("second")
        assert "reason" not in entry


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (ModerationStatus.PENDING, ModerationStatus.APPROVED),
            (ModerationStatus.PENDING, ModerationStatus.REJECTED),
            (ModerationStatus.PENDING, ModerationStatus.FLAGGED),
            (ModerationStatus.FLAGGED, ModerationStatus.APPROVED),
            (ModerationStatus.FLAGGED, ModerationStatus.REJECTED),
            (ModerationStatus.APPROVED, ModerationStatus.REJECTED),
            (ModerationStatus.APPROVED, ModerationStatus.FLAGGED),
            (ModerationStatus.REJECTED, ModerationStatus.APPROVED),
        ],
    )
    def test_allowed(self, current, target) -> None:
        assert is_transition_allowed(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            (ModerationStatus.REJECTED, ModerationStatus.FLAGGED),
            (ModerationStatus.APPROVED, ModerationStatus.PENDING),
            (ModerationStatus.FLAGGED, ModerationStatus.PENDING),
        ],
    )
    def test_refused(self, current, target) -> None:
        assert is_transition_allowed(current, target) is False

    def test_same_status_is_allowed(self) -> None:
        for status in ModerationStatus:
            assert is_transition_allowed(status, status) is True

    def test_nothing_returns_to_pending(self) -> None:
        for targets in ALLOWED_TRANSITIONS.values():
            assert ModerationStatus.PENDING not in targets


class TestApplyModeration:
    def test_approve(self, make_comment) -> None:
        comment = make_comment(
            moderation_status=ModerationStatus.FLAGGED, is_approved=False
        )
        moderator = uuid4()

        comment.apply_moderation(ModerationAction.APPROVE, moderator)

        assert comment.moderation_status == ModerationStatus.APPROVED
        assert comment.is_approved is True
        assert comment.is_moderated is True
        assert comment.moderated_by == moderator
        assert comment.moderated_at is not None

    def test_reject(self, make_comment) -> None:
        comment = make_comment()

        comment.apply_moderation(ModerationAction.REJECT, uuid4(), reason="spam")

        assert comment.moderation_status == ModerationStatus.REJECTED
        assert comment.is_approved is False
        assert comment.moderation_reason == "spam"
        assert comment.is_visible is False

    def test_flag_keeps_approval_and_defaults_reason(self, make_comment) -> None:
        comment = make_comment(moderation_status=ModerationStatus.PENDING)

        comment.apply_moderation(ModerationAction.FLAG, uuid4())

        assert comment.moderation_status == ModerationStatus.FLAGGED
        assert comment.is_approved is True
        assert comment.moderation_reason == DEFAULT_FLAG_REASON


class TestReports:
    def test_pending_report_lookup(self, make_comment) -> None:
        comment: Comment = make_comment()
        reporter = uuid4()
        report = create_report(comment.comment_id, reporter, ReportReason.SPAM)
        comment.reports.append(report)

        assert comment.has_pending_report_from(reporter) is True

        report.status = ReportStatus.DISMISSED
        assert comment.has_pending_report_from(reporter) is False
        assert comment.pending_reports == []
