"""Pull request operations: diff review assembly and versioned mutations.

Reads:
- :meth:`PullRequest.get_review`: full diff with comments resolved onto lines
- :meth:`PullRequest.get_activities`: lighter overview built from the activity feed
- :meth:`PullRequest.get_files`: changed files, fetched once per instance

Writes go through :meth:`PullRequest.apply_change` (comments) or
:meth:`approve` / :meth:`decline` / :meth:`merge`. Every mutation of an
existing comment or of the pull request state carries the last observed
``version``; the server rejects stale ones with a 409.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from pydantic import Field, PrivateAttr

from stashreview.cache import Memo
from stashreview.changes import (
    CommentModified,
    CommentRemoved,
    FileCommentAdded,
    LineCommentAdded,
    ReplyAdded,
    ReviewChange,
    ReviewCommentAdded,
)
from stashreview.config import ReviewConfig
from stashreview.diff import Anchor, Changeset, Comment, Diff, Hunk, Line, Segment, SegmentType, StashModel
from stashreview.models import (
    Activity,
    Participant,
    PullRequestInfo,
    PullRequestProperties,
    Ref,
    Review,
    ReviewFile,
    format_timestamp,
)
from stashreview.stash_api import StashClient, StashError, pull_request_path

logger = logging.getLogger(__name__)

_HTTP_NO_CONTENT = 204
_HTTP_CONFLICT = 409
_FILES_PAGE_LIMIT = 1000


class _FilesPage(StashModel):
    values: list[ReviewFile] = Field(default_factory=list)


class _ActivitiesPage(StashModel):
    values: list[Activity] = Field(default_factory=list)


class PullRequest(StashModel):
    """A pull request as listed by the server, bound to a client for further calls."""

    id: int
    title: str = ""
    description: str = ""
    state: str = ""
    updated_date: int = 0
    from_ref: Ref = Field(default_factory=Ref)
    to_ref: Ref = Field(default_factory=Ref)
    author: Participant = Field(default_factory=Participant)
    reviewers: list[Participant] = Field(default_factory=list)
    properties: PullRequestProperties = Field(default_factory=PullRequestProperties)

    _client: StashClient | None = PrivateAttr(default=None)
    _path: str = PrivateAttr(default="")
    _settings: ReviewConfig = PrivateAttr(default_factory=ReviewConfig)
    _files: Memo = PrivateAttr(default_factory=Memo)

    def bind(
        self,
        client: StashClient,
        project: str,
        repo: str,
        settings: ReviewConfig | None = None,
    ) -> PullRequest:
        """Attach the client and resource path used by every remote operation."""
        self._client = client
        self._path = pull_request_path(project, repo, self.id)
        if settings is not None:
            self._settings = settings
        return self

    @classmethod
    def open(
        cls,
        client: StashClient,
        project: str,
        repo: str,
        pr_id: int,
        settings: ReviewConfig | None = None,
    ) -> PullRequest:
        """Bind to a pull request by id without fetching its listing data."""
        return cls(id=pr_id).bind(client, project, repo, settings)

    @property
    def client(self) -> StashClient:
        if self._client is None:
            msg = f"pull request {self.id} is not bound to a client"
            raise StashError(msg)
        return self._client

    @property
    def path(self) -> str:
        return self._path

    @property
    def comment_count(self) -> int:
        return self.properties.comment_count

    @property
    def updated(self) -> str:
        return format_timestamp(self.updated_date)

    @property
    def approvals(self) -> int:
        return sum(1 for r in self.reviewers if r.approved)

    # -- Reads ------------------------------------------------------------------

    def get_info(self) -> PullRequestInfo:
        """Fetch the pull request's current version and links."""
        return self.client.get(self.path, target=PullRequestInfo)

    def get_review(self, path: str = "", ignore_whitespace: bool = False) -> Review:
        """Fetch the diff (optionally for a single file) with comments resolved onto lines.

        Each diff is stamped with the changeset's ``fromHash``/``toHash`` so it
        can be handled on its own. Line comment ids are resolved against the
        changeset's line comments; unknown ids are skipped.

        Raises:
            StashError: On a classified error response; no partial review is returned.
        """
        params = {"whitespace": "ignore-all"} if ignore_whitespace else None
        resource = f"{self.path}/diff/{path}" if path else f"{self.path}/diff"
        changeset: Changeset = self.client.get(resource, params=params, target=Changeset)

        for diff in changeset.diffs:
            diff.attributes.from_hash = [changeset.from_hash]
            diff.attributes.to_hash = [changeset.to_hash]

        pool = changeset.comment_pool()
        for _diff, _hunk, _segment, line in changeset.iter_lines():
            _attach_comments(line, pool)

        changeset.path = path
        logger.debug("successfully got review from Stash")
        return Review(changeset=changeset, is_overview=False)

    def get_activities(self, limit: int = 25) -> Review:
        """Build an overview review from the most recent activity entries.

        Commented activities that carry a diff snippet contribute that snippet
        with the comment attached to its anchored line; the rest become
        review-level comments.
        """
        page: _ActivitiesPage = self.client.get(
            f"{self.path}/activities",
            params={"limit": limit},
            target=_ActivitiesPage,
        )

        diffs: list[Diff] = []
        review_comments: list[Comment] = []
        for activity in page.values:
            if activity.action != "COMMENTED" or activity.comment is None:
                continue
            if activity.diff is None:
                review_comments.append(activity.comment)
                continue
            diffs.append(_annotate_activity_diff(activity, activity.diff, activity.comment))

        logger.debug("successfully got activities from Stash")
        return Review(changeset=Changeset(diffs=diffs), is_overview=True, review_comments=review_comments)

    def get_files(self) -> list[ReviewFile]:
        """Return the changed files, fetching them on first use only."""
        return self._files.get_or_set(self._fetch_files)

    def _fetch_files(self) -> list[ReviewFile]:
        page: _FilesPage = self.client.get(
            f"{self.path}/changes",
            params={"start": 0, "limit": _FILES_PAGE_LIMIT},
            target=_FilesPage,
        )
        logger.debug("successfully got files list from Stash")
        return page.values

    # -- Comment changes --------------------------------------------------------

    def apply_change(self, change: ReviewChange) -> Comment | None:
        """Send one review change to the server.

        Returns the created or modified comment, or ``None`` for removals and
        skipped changes.
        """
        preview = self._settings.comment_preview_len

        if isinstance(change, ReplyAdded):
            logger.info("replying to <%d>: <%s>", change.parent.id, change.comment.short(preview))
            return self._add_comment(change)
        if isinstance(change, LineCommentAdded):
            line = change.comment.anchor.line if change.comment.anchor else None
            logger.info("commenting (L%s): <%s>", line, change.comment.short(preview))
            return self._add_comment(change)
        if isinstance(change, CommentRemoved):
            logger.info("wasting comment: <%d>", change.comment.id)
            self._remove_comment(change)
            return None
        if isinstance(change, CommentModified):
            logger.info("modifying comment <%d>: <%s>", change.comment.id, change.comment.short(preview))
            return self._modify_comment(change)
        if isinstance(change, ReviewCommentAdded):
            logger.info("adding review level comment: <%s>", change.comment.short(preview))
            return self._add_comment(change)
        if isinstance(change, FileCommentAdded):
            logger.info("adding file level comment: <%s>", change.comment.short(preview))
            return self._add_comment(change)

        if self._settings.strict_changes:
            msg = f"unexpected review change: {change!r}"
            raise TypeError(msg)
        logger.warning("unexpected <change> argument: %r", change)
        return None

    def _add_comment(self, change: ReplyAdded | LineCommentAdded | ReviewCommentAdded | FileCommentAdded) -> Comment:
        result: Comment = self.client.post(f"{self.path}/comments", payload=change.payload(), target=Comment)
        logger.info("comment added: <%d>", result.id)
        return result

    def _modify_comment(self, change: CommentModified) -> Comment:
        comment = change.comment
        result: Comment = self.client.put(
            f"{self.path}/comments/{comment.id}",
            params={"version": comment.version},
            payload=change.payload(),
            target=Comment,
        )
        logger.info("comment modified: <%d>, version %d", result.id, result.version)
        return result

    def _remove_comment(self, change: CommentRemoved) -> None:
        comment = change.comment
        logger.debug("accessing Stash...")
        result = self.client.perform(
            "DELETE",
            f"{self.path}/comments/{comment.id}",
            params={"version": comment.version},
            target=dict[str, Any],
        )
        if result.error is not None and result.status_code != _HTTP_NO_CONTENT:
            raise result.error
        logger.info("comment wasted: <%d>", comment.id)

    # -- Pull request state -----------------------------------------------------

    def approve(self) -> None:
        """Approve the pull request as the current user. Repeating it is harmless."""
        self.client.post(f"{self.path}/approve")
        logger.info("pull request <%d> approved", self.id)

    def decline(self) -> None:
        """Decline the pull request at its current version."""
        self._versioned_transition("decline")

    def merge(self) -> None:
        """Merge the pull request at its current version."""
        self._versioned_transition("merge")

    def _versioned_transition(self, action: str) -> None:
        """Read the current version, then POST *action* with it.

        A 409 means the version moved between the two calls; the read and
        the POST are repeated up to ``version_retries`` times before the last
        conflict is raised. Any other error is raised immediately.
        """
        attempts = self._settings.version_retries
        for attempt in range(1, attempts + 1):
            info = self.get_info()
            try:
                self.client.post(f"{self.path}/{action}", params={"version": info.version})
            except StashError as exc:
                if exc.status_code != _HTTP_CONFLICT or attempt == attempts:
                    raise
                logger.warning(
                    "%s of pull request <%d> conflicted at version %d (attempt %d/%d), retrying",
                    action,
                    self.id,
                    info.version,
                    attempt,
                    attempts,
                )
                continue
            logger.info("pull request <%d>: %s done at version %d", self.id, action, info.version)
            return


def _attach_comments(line: Line, pool: dict[int, Comment]) -> None:
    """Append the pooled comment for each of *line*'s ids, once each, in id order."""
    seen = {c.id for c in line.comments}
    for comment_id in line.comment_ids:
        comment = pool.get(comment_id)
        if comment is None or comment_id in seen:
            continue
        line.comments.append(comment)
        seen.add(comment_id)


def _annotate_activity_diff(activity: Activity, diff: Diff, comment: Comment) -> Diff:
    """Attach an activity's comment to the anchored line of its diff snippet."""
    anchor = activity.comment_anchor or comment.anchor
    if comment.anchor is None and anchor is not None:
        comment = comment.model_copy(update={"anchor": anchor})

    if anchor is None or anchor.line is None:
        diff.file_comments.append(comment)
        return diff

    diff.line_comments.append(comment)
    for _hunk, segment, line in _iter_diff_lines(diff):
        if _line_number(segment.type, line, anchor) == anchor.line:
            line.comment_ids.append(comment.id)
            line.comments.append(comment)
            break
    return diff


def _iter_diff_lines(diff: Diff) -> Iterator[tuple[Hunk, Segment, Line]]:
    for hunk in diff.hunks:
        for segment in hunk.segments:
            for line in segment.lines:
                yield hunk, segment, line


def _line_number(segment_type: SegmentType, line: Line, anchor: Anchor) -> int:
    """Return the number *anchor* would use for *line*, or -1 when the segment type differs."""
    if anchor.line_type is not None and anchor.line_type != segment_type:
        return -1
    if segment_type == SegmentType.REMOVED or anchor.file_type == "FROM":
        return line.source
    return line.destination
