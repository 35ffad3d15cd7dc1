"""Review changes decided locally and applied to a pull request.

``ReviewChange`` is a closed union; :meth:`PullRequest.apply_change` dispatches
with one branch per variant. Each variant builds the JSON payload for its request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stashreview.diff import Anchor, Comment


def _anchor_payload(anchor: Anchor | None) -> dict[str, Any]:
    if anchor is None:
        return {}
    return anchor.model_dump(by_alias=True, exclude_none=True, mode="json")


@dataclass(frozen=True)
class ReplyAdded:
    """A reply to an existing comment."""

    comment: Comment
    parent: Comment

    def payload(self) -> dict[str, Any]:
        return {"text": self.comment.text, "parent": {"id": self.parent.id}}


@dataclass(frozen=True)
class LineCommentAdded:
    """A new comment anchored to a single diff line."""

    comment: Comment

    def payload(self) -> dict[str, Any]:
        return {"text": self.comment.text, "anchor": _anchor_payload(self.comment.anchor)}


@dataclass(frozen=True)
class FileCommentAdded:
    """A new comment anchored to a file as a whole."""

    comment: Comment

    def payload(self) -> dict[str, Any]:
        anchor = self.comment.anchor or Anchor()
        return {
            "text": self.comment.text,
            "anchor": _anchor_payload(Anchor(path=anchor.path, src_path=anchor.src_path)),
        }


@dataclass(frozen=True)
class ReviewCommentAdded:
    """A new review-level comment with no anchor."""

    comment: Comment

    def payload(self) -> dict[str, Any]:
        return {"text": self.comment.text}


@dataclass(frozen=True)
class CommentModified:
    """New text for an existing comment; ``comment.version`` is the last observed version."""

    comment: Comment

    def payload(self) -> dict[str, Any]:
        return {"text": self.comment.text, "version": self.comment.version}


@dataclass(frozen=True)
class CommentRemoved:
    """Deletion of an existing comment at ``comment.version``."""

    comment: Comment


ReviewChange = ReplyAdded | LineCommentAdded | FileCommentAdded | ReviewCommentAdded | CommentModified | CommentRemoved
