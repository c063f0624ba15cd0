"""Fixtures for comment service tests.

``CommentStore`` answers the service's prepared statements from in-memory
comments so tests can exercise the real query paths against a mock session.
"""

from collections import defaultdict
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock
from uuid import UUID

import pytest
from cassandra.cluster import Session

from src.comments.models import Comment, CommentReport
from src.comments.service import CommentService
from src.config import Settings


def report_row(report: CommentReport) -> SimpleNamespace:
    return SimpleNamespace(
        report_id=report.report_id,
        comment_id=report.comment_id,
        reporter_id=report.reporter_id,
        reason=report.reason.value,
        description=report.description,
        status=report.status.value,
        reported_at=report.reported_at,
        resolved_by=report.resolved_by,
        resolved_at=report.resolved_at,
        resolution_note=report.resolution_note,
    )


class CommentStore:
    """In-memory answers for CommentService statements; records every call."""

    def __init__(self, service: CommentService, to_row: Callable[[Comment], Any]):
        self.service = service
        self.to_row = to_row
        self.comments: dict[UUID, Comment] = {}
        self.reports: dict[UUID, list[CommentReport]] = defaultdict(list)
        self.calls: list[tuple[Any, list | None]] = []

    def add(self, *comments: Comment) -> None:
        for comment in comments:
            self.comments[comment.comment_id] = comment

    def add_report(self, report: CommentReport) -> None:
        self.reports[report.comment_id].append(report)

    def executed(self, statement: Any) -> list[list]:
        """Parameters of every execution of ``statement``."""
        return [params for stmt, params in self.calls if stmt is statement]

    def _rows(self, predicate: Callable[[Comment], bool]) -> list:
        return [self.to_row(c) for c in self.comments.values() if predicate(c)]

    async def execute(self, statement: Any, params: list | None = None) -> list:
        self.calls.append((statement, params))
        s = self.service

        if statement is s._get_lookup:
            comment = self.comments.get(params[0])
            if comment is None:
                return []
            return [
                SimpleNamespace(
                    content_type=comment.content_type.value,
                    content_id=comment.content_id,
                )
            ]
        if statement is s._get_comment:
            comment = self.comments.get(params[2])
            return [self.to_row(comment)] if comment else []
        if statement is s._get_reports:
            return [report_row(r) for r in self.reports[params[0]]]
        if statement is s._get_report:
            return [
                report_row(r)
                for r in self.reports[params[0]]
                if r.report_id == params[1]
            ]
        if statement is s._get_by_target:
            return self._rows(
                lambda c: c.content_type.value == params[0]
                and c.content_id == params[1]
            )
        if statement is s._get_by_root:
            return self._rows(lambda c: c.root_id == params[0])
        if statement is s._get_by_parent:
            return self._rows(lambda c: c.parent_id == params[0])
        if statement is s._get_by_author:
            return self._rows(lambda c: c.author_id == params[0])
        if statement is s._get_by_status:
            return self._rows(lambda c: c.moderation_status.value == params[0])
        if statement is s._get_unapproved:
            return self._rows(lambda c: not c.is_approved)
        if statement is s._scan_comments:
            return self._rows(lambda c: True)[: params[0]]
        return []


@pytest.fixture
def settings() -> Settings:
    return Settings(
        comments_auto_approve=False,
        comments_report_flag_threshold=3,
        comments_per_minute=10,
        comments_per_hour=100,
        reports_per_hour=5,
    )


@pytest.fixture
def mock_session():
    """Mock Cassandra session; each prepare() returns a distinct statement."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(name="prepared", cql=cql))
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis_mock = AsyncMock()
    mock_pipe = Mock()
    mock_pipe.incr = Mock()
    mock_pipe.expire = Mock()
    mock_pipe.execute = AsyncMock(return_value=[1, True, 1, True])
    redis_mock.pipeline = Mock(return_value=mock_pipe)
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.incr = AsyncMock(return_value=1)
    return redis_mock


@pytest.fixture
def comment_service(mock_session, mock_redis, settings) -> CommentService:
    return CommentService(
        session=mock_session, keyspace="test_keyspace", redis=mock_redis, settings=settings
    )


@pytest.fixture
def db(comment_service, mock_session, comment_row) -> CommentStore:
    store = CommentStore(comment_service, comment_row)
    mock_session.aexecute.side_effect = store.execute
    return store
