"""Tests for comment endpoints (service mocked through dependency overrides)."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.permissions import UserRole
from src.comments.dependencies import get_comment_service
from src.comments.models import AuthorType, ContentType, ModerationStatus
from src.comments.schemas import (
    BulkModerationItem,
    BulkModerationResponse,
    BulkModerationSummary,
    CommentFilters,
    CommentStatsResponse,
)
from src.comments.service import (
    CommentNotFoundError,
    CommentValidationError,
    InvalidIdentifierError,
    InvalidTransitionError,
    PermissionDeniedError,
    RateLimitExceededError,
)
from src.comments.tree import build_comment_tree
from src.main import app


LESSON_ID = "11111111-1111-1111-1111-111111111111"


@pytest.fixture
def service():
    mock = Mock()
    for name in (
        "create_comment",
        "get_comments",
        "get_comment",
        "get_comment_tree",
        "get_comment_stats",
        "update_comment",
        "delete_comment",
        "toggle_like",
        "toggle_dislike",
        "mark_as_helpful",
        "report_comment",
        "moderate_comment",
        "bulk_moderate",
        "get_moderation_queue",
        "get_moderation_stats",
        "get_comment_reports",
        "resolve_report",
        "get_comment_audit",
    ):
        setattr(mock, name, AsyncMock())
    app.dependency_overrides[get_comment_service] = lambda: mock
    return mock


class TestPublicRoutes:
    def test_create_requires_auth(self, client: TestClient, service) -> None:
        response = client.post(
            "/v1/comments",
            json={"content": "hi", "content_type": "lesson", "content_id": LESSON_ID},
        )
        assert response.status_code == 401
        service.create_comment.assert_not_awaited()

    def test_create(
        self, client: TestClient, service, auth_header, make_comment
    ) -> None:
        user_id = uuid4()
        comment = make_comment(author_id=user_id, author_type=AuthorType.TEACHER)
        service.create_comment.return_value = comment

        response = client.post(
            "/v1/comments",
            json={
                "content": "  Welcome to the lesson  ",
                "content_type": "lesson",
                "content_id": LESSON_ID,
            },
            headers=auth_header(UserRole.TEACHER, user_id),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["id"] == str(comment.comment_id)
        kwargs = service.create_comment.await_args.kwargs
        assert kwargs["content"] == "Welcome to the lesson"
        assert kwargs["author_id"] == user_id
        assert kwargs["author_type"] == AuthorType.TEACHER
        assert kwargs["content_type"] == ContentType.LESSON
        assert kwargs["parent_id"] is None

    def test_create_rejects_long_content(
        self, client: TestClient, service, auth_header
    ) -> None:
        response = client.post(
            "/v1/comments",
            json={
                "content": "x" * 2001,
                "content_type": "lesson",
                "content_id": LESSON_ID,
            },
            headers=auth_header(),
        )
        assert response.status_code == 422

    def test_create_rejects_unknown_content_type(
        self, client: TestClient, service, auth_header
    ) -> None:
        response = client.post(
            "/v1/comments",
            json={"content": "hi", "content_type": "bill", "content_id": LESSON_ID},
            headers=auth_header(),
        )
        assert response.status_code == 422

    def test_create_rate_limited(
        self, client: TestClient, service, auth_header
    ) -> None:
        service.create_comment.side_effect = RateLimitExceededError()

        response = client.post(
            "/v1/comments",
            json={"content": "hi", "content_type": "lesson", "content_id": LESSON_ID},
            headers=auth_header(),
        )

        assert response.status_code == 429
        assert response.json()["success"] is False

    def test_list_with_pagination(
        self, client: TestClient, service, make_comment
    ) -> None:
        service.get_comments.return_value = ([make_comment(), make_comment()], 45)

        response = client.get(
            "/v1/comments",
            params={"content_type": "lesson", "page": 2, "limit": 20, "is_approved": "true"},
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {
            "page": 2,
            "limit": 20,
            "total": 45,
            "total_pages": 3,
        }
        filters: CommentFilters = service.get_comments.await_args.args[0]
        assert filters.content_type == ContentType.LESSON
        assert filters.is_approved is True

    def test_list_rejects_oversized_page(self, client: TestClient, service) -> None:
        response = client.get("/v1/comments", params={"limit": 101})
        assert response.status_code == 422

    def test_stats_is_not_shadowed_by_id_route(
        self, client: TestClient, service
    ) -> None:
        service.get_comment_stats.return_value = CommentStatsResponse(total_comments=4)

        response = client.get("/v1/comments/stats")

        assert response.status_code == 200
        assert response.json()["data"]["total_comments"] == 4
        service.get_comment.assert_not_awaited()

    def test_tree(self, client: TestClient, service, make_comment) -> None:
        root = make_comment()
        reply = make_comment(
            minutes=1, parent_id=root.comment_id, root_id=root.comment_id
        )
        service.get_comment_tree.return_value = build_comment_tree([root, reply])

        response = client.get(
            f"/v1/comments/tree/lesson/{LESSON_ID}", params={"max_depth": 2}
        )

        assert response.status_code == 200
        [node] = response.json()["data"]
        assert node["depth"] == 0
        assert node["total_replies"] == 1
        assert node["replies"][0]["comment"]["parent_id"] == str(root.comment_id)
        service.get_comment_tree.assert_awaited_once_with(
            ContentType.LESSON, LESSON_ID, 2
        )

    def test_tree_default_depth_left_to_service(
        self, client: TestClient, service
    ) -> None:
        service.get_comment_tree.return_value = []

        response = client.get(f"/v1/comments/tree/lesson/{LESSON_ID}")

        assert response.status_code == 200
        service.get_comment_tree.assert_awaited_once_with(
            ContentType.LESSON, LESSON_ID, None
        )

    def test_tree_depth_out_of_range(self, client: TestClient, service) -> None:
        service.get_comment_tree.side_effect = CommentValidationError(
            "max_depth must be between 1 and 10"
        )

        response = client.get(
            f"/v1/comments/tree/lesson/{LESSON_ID}", params={"max_depth": 11}
        )

        assert response.status_code == 400
        assert service.get_comment_tree.await_args.args[2] == 11

    def test_get_missing(self, client: TestClient, service) -> None:
        service.get_comment.side_effect = CommentNotFoundError()

        response = client.get(f"/v1/comments/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["message"] == "Comment not found"

    def test_get_malformed_id(self, client: TestClient, service) -> None:
        service.get_comment.side_effect = InvalidIdentifierError("Invalid comment_id")

        response = client.get("/v1/comments/123")

        assert response.status_code == 400

    def test_update_forbidden(self, client: TestClient, service, auth_header) -> None:
        service.update_comment.side_effect = PermissionDeniedError()

        response = client.put(
            f"/v1/comments/{uuid4()}",
            json={"content": "edited"},
            headers=auth_header(),
        )

        assert response.status_code == 403

    def test_admin_delete_passes_flag(
        self, client: TestClient, service, auth_header
    ) -> None:
        comment_id = str(uuid4())

        response = client.delete(
            f"/v1/comments/{comment_id}", headers=auth_header(UserRole.ADMIN)
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Comment deleted"
        assert service.delete_comment.await_args.kwargs["is_admin"] is True

    def test_like(self, client: TestClient, service, auth_header, make_comment) -> None:
        service.toggle_like.return_value = make_comment(likes={uuid4()})

        response = client.post(f"/v1/comments/{uuid4()}/like", headers=auth_header())

        assert response.json()["data"] == {"likes": 1, "dislikes": 0}

    def test_helpful(
        self, client: TestClient, service, auth_header, make_comment
    ) -> None:
        service.mark_as_helpful.return_value = make_comment(
            helpful_voters={uuid4(), uuid4()}
        )

        response = client.post(
            f"/v1/comments/{uuid4()}/helpful", headers=auth_header()
        )

        assert response.json()["data"] == {"helpful_votes": 2}

    def test_report(self, client: TestClient, service, auth_header) -> None:
        response = client.post(
            f"/v1/comments/{uuid4()}/report",
            json={"reason": "spam", "description": "ads"},
            headers=auth_header(),
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Comment reported successfully"

    def test_report_reserved_reason(
        self, client: TestClient, service, auth_header
    ) -> None:
        response = client.post(
            f"/v1/comments/{uuid4()}/report",
            json={"reason": "deleted_by_admin"},
            headers=auth_header(),
        )
        assert response.status_code == 422


class TestAdminRoutes:
    def test_students_cannot_moderate(
        self, client: TestClient, service, auth_header
    ) -> None:
        response = client.get(
            "/v1/admin/comments/moderation", headers=auth_header(UserRole.STUDENT)
        )
        assert response.status_code == 403
        service.get_moderation_queue.assert_not_awaited()

    def test_queue_for_teacher(
        self, client: TestClient, service, auth_header, make_comment
    ) -> None:
        service.get_moderation_queue.return_value = (
            [make_comment(moderation_status=ModerationStatus.FLAGGED)],
            1,
        )

        response = client.get(
            "/v1/admin/comments/moderation",
            params={"status": "flagged"},
            headers=auth_header(UserRole.TEACHER),
        )

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 1
        assert service.get_moderation_queue.await_args.kwargs["status"] == (
            ModerationStatus.FLAGGED
        )

    def test_moderate_invalid_transition(
        self, client: TestClient, service, auth_header
    ) -> None:
        service.moderate_comment.side_effect = InvalidTransitionError(
            "Cannot flag a comment that is rejected"
        )

        response = client.post(
            f"/v1/admin/comments/{uuid4()}/moderate",
            json={"action": "flag"},
            headers=auth_header(UserRole.ADMIN),
        )

        assert response.status_code == 400
        assert "rejected" in response.json()["message"]

    def test_moderate_unknown_action(
        self, client: TestClient, service, auth_header
    ) -> None:
        service.moderate_comment.side_effect = CommentValidationError(
            "Invalid moderation action 'archive'"
        )

        response = client.post(
            f"/v1/admin/comments/{uuid4()}/moderate",
            json={"action": "archive"},
            headers=auth_header(UserRole.ADMIN),
        )

        assert response.status_code == 400

    def test_bulk(self, client: TestClient, service, auth_header) -> None:
        service.bulk_moderate.return_value = BulkModerationResponse(
            results=[
                BulkModerationItem(comment_id="a", success=True),
                BulkModerationItem(comment_id="b", success=False, error="Comment not found"),
            ],
            summary=BulkModerationSummary(total=2, successful=1, failed=1),
        )

        response = client.post(
            "/v1/admin/comments/bulk-moderate",
            json={"comment_ids": ["a", "b"], "action": "approve"},
            headers=auth_header(UserRole.TEACHER),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["summary"] == {"total": 2, "successful": 1, "failed": 1}
        assert body["message"] == "1 of 2 comments moderated"

    def test_resolve_report(
        self, client: TestClient, service, auth_header
    ) -> None:
        service.resolve_report.side_effect = CommentValidationError(
            "Report status must be 'resolved' or 'dismissed'"
        )

        response = client.put(
            f"/v1/admin/comments/{uuid4()}/reports/{uuid4()}/resolve",
            json={"status": "pending"},
            headers=auth_header(UserRole.ADMIN),
        )

        assert response.status_code == 400

    def test_audit(
        self, client: TestClient, service, auth_header, make_comment
    ) -> None:
        comment = make_comment()
        comment.edit_content("v2", reason="typo")
        service.get_comment_audit.return_value = (comment, [])

        response = client.get(
            f"/v1/admin/comments/{comment.comment_id}/audit",
            headers=auth_header(UserRole.ADMIN),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["edit_history"][0]["content"] == "Great lesson"
        assert data["moderation"]["status"] == "approved"
        assert data["moderator_actions"] == []
