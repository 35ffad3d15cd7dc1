"""stashreview: review Stash pull requests: annotated diffs and versioned comment changes."""

from __future__ import annotations

from stashreview.changes import (
    CommentModified,
    CommentRemoved,
    FileCommentAdded,
    LineCommentAdded,
    ReplyAdded,
    ReviewChange,
    ReviewCommentAdded,
)
from stashreview.inbox import get_inbox
from stashreview.pull_request import PullRequest
from stashreview.stash_api import StashApiError, StashClient, StashError, UnexpectedStatusCode

__all__ = [
    "CommentModified",
    "CommentRemoved",
    "FileCommentAdded",
    "LineCommentAdded",
    "PullRequest",
    "ReplyAdded",
    "ReviewChange",
    "ReviewCommentAdded",
    "StashApiError",
    "StashClient",
    "StashError",
    "UnexpectedStatusCode",
    "get_inbox",
]
