"""In-memory assembly of nested comment trees.

The service reads every comment of a target in one partition query and hands
the rows to ``build_comment_tree``; no per-node queries are issued.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from .models import Comment


@dataclass
class CommentTreeNode:
    """A visible comment with its (possibly truncated) replies."""

    comment: Comment
    depth: int
    total_replies: int = 0
    replies: list["CommentTreeNode"] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "comment": self.comment.to_dict(),
            "replies": [reply.to_dict() for reply in self.replies],
            "total_replies": self.total_replies,
            "depth": self.depth,
        }


def build_comment_tree(
    comments: Iterable[Comment], max_depth: int = 3
) -> list[CommentTreeNode]:
    """Nest visible comments under their parents.

    Top-level comments come newest first, replies oldest first. A node at
    ``depth >= max_depth`` keeps an empty ``replies`` list, but its
    ``total_replies`` still counts every visible descendant.

    Replies whose parent is hidden (pending, rejected, deleted) are
    unreachable and therefore hidden too.
    """
    visible = [c for c in comments if c.is_visible]

    children: dict[UUID | None, list[Comment]] = defaultdict(list)
    for comment in visible:
        children[comment.parent_id].append(comment)
    for siblings in children.values():
        siblings.sort(key=lambda c: c.created_at)

    roots = sorted(children.get(None, []), key=lambda c: c.created_at, reverse=True)

    # Pre-order walk with an explicit stack; threads can be arbitrarily deep.
    order: list[tuple[CommentTreeNode, CommentTreeNode | None]] = []
    stack: list[tuple[Comment, int, CommentTreeNode | None]] = [
        (root, 0, None) for root in reversed(roots)
    ]
    while stack:
        comment, depth, parent = stack.pop()
        node = CommentTreeNode(comment=comment, depth=depth)
        order.append((node, parent))
        for child in reversed(children.get(comment.comment_id, [])):
            stack.append((child, depth + 1, node))

    for node, parent in order:
        if parent is not None and parent.depth < max_depth:
            parent.replies.append(node)

    # Reverse pre-order visits every descendant before its ancestors
    for node, parent in reversed(order):
        if parent is not None:
            parent.total_replies += 1 + node.total_replies

    return [node for node, parent in order if parent is None]
