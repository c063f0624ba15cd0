"""Shared fixtures."""

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from uuid import UUID, uuid4

import pytest


os.environ.setdefault("ENVIRONMENT", "testing")

from fastapi.testclient import TestClient  # noqa: E402

from src.auth.permissions import UserRole  # noqa: E402
from src.auth.security import create_access_token  # noqa: E402
from src.comments.models import (  # noqa: E402
    AuthorType,
    Comment,
    ContentType,
    ModerationStatus,
)
from src.main import app  # noqa: E402


BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client without lifespan (no Cassandra or Redis)."""
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_comment() -> Callable[..., Comment]:
    """Build Comment entities; ``minutes`` offsets created_at from a fixed base."""

    def _make(minutes: int = 0, **overrides: Any) -> Comment:
        created = BASE_TIME + timedelta(minutes=minutes)
        fields: dict[str, Any] = {
            "comment_id": uuid4(),
            "content_type": ContentType.LESSON,
            "content_id": UUID("11111111-1111-1111-1111-111111111111"),
            "parent_id": None,
            "root_id": None,
            "author_id": uuid4(),
            "author_type": AuthorType.STUDENT,
            "content": "Great lesson",
            "created_at": created,
            "updated_at": created,
            "is_approved": True,
            "moderation_status": ModerationStatus.APPROVED,
        }
        fields.update(overrides)
        return Comment(**fields)

    return _make


@pytest.fixture
def comment_row() -> Callable[[Comment], SimpleNamespace]:
    """Render a Comment as a Cassandra row (empty sets come back as None)."""

    def _row(comment: Comment) -> SimpleNamespace:
        return SimpleNamespace(
            comment_id=comment.comment_id,
            content_type=comment.content_type.value,
            content_id=comment.content_id,
            parent_id=comment.parent_id,
            root_id=comment.root_id,
            author_id=comment.author_id,
            author_type=comment.author_type.value,
            content=comment.content,
            edit_history=list(comment.edit_history) or None,
            is_edited=comment.is_edited,
            edited_at=comment.edited_at,
            is_approved=comment.is_approved,
            is_moderated=comment.is_moderated,
            moderation_status=comment.moderation_status.value,
            moderation_reason=comment.moderation_reason,
            moderated_by=comment.moderated_by,
            moderated_at=comment.moderated_at,
            likes=set(comment.likes) or None,
            dislikes=set(comment.dislikes) or None,
            helpful_voters=set(comment.helpful_voters) or None,
            created_at=comment.created_at.replace(tzinfo=None),
            updated_at=comment.updated_at.replace(tzinfo=None),
        )

    return _row


@pytest.fixture
def auth_header() -> Callable[..., dict[str, str]]:
    """Bearer header for a user with the given role."""

    def _header(
        role: UserRole = UserRole.STUDENT, user_id: UUID | None = None
    ) -> dict[str, str]:
        token = create_access_token(
            {
                "sub": str(user_id or uuid4()),
                "email": f"{role.value}@example.com",
                "role": role.value,
            }
        )
        return {"Authorization": f"Bearer {token}"}

    return _header
