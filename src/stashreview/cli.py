"""Command-line interface for stashreview, built on cyclopts."""

from __future__ import annotations

import logging
import os
import sys
from typing import Literal

import cyclopts
import httpx
from pydantic import ValidationError

from stashreview.changes import (
    CommentModified,
    CommentRemoved,
    FileCommentAdded,
    LineCommentAdded,
    ReplyAdded,
    ReviewChange,
    ReviewCommentAdded,
)
from stashreview.config import ENV_OVERRIDES, Config, ConfigError, get_config, load_config, set_config
from stashreview.diff import Anchor, Comment, Diff, SegmentType
from stashreview.inbox import get_inbox
from stashreview.models import Review
from stashreview.pull_request import PullRequest
from stashreview.stash_api import StashClient, StashError

logger = logging.getLogger(__name__)

app = cyclopts.App(
    name="stashreview",
    help="stashreview: review Stash pull requests from the terminal.",
)

_SEGMENT_PREFIX = {
    SegmentType.ADDED: "+",
    SegmentType.REMOVED: "-",
    SegmentType.CONTEXT: " ",
}


def _load() -> Config:
    """Load config, install it as the active one and set up logging."""
    config, _path = load_config()
    set_config(config)
    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _open_client(config: Config) -> StashClient:
    if not config.stash.url:
        msg = "Stash URL is not configured. Set STASH_URL or [stash] url in .stashreview.toml"
        raise ConfigError(msg)
    return StashClient(
        config.stash.url,
        config.stash.user,
        config.stash.token,
        timeout=config.stash.timeout,
    )


def _open_pull_request(project: str, repo: str, pr_id: int) -> PullRequest:
    config = _load()
    return PullRequest.open(_open_client(config), project, repo, pr_id, config.review)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@app.command
def inbox(role: Literal["reviewer", "author"] = "reviewer") -> None:
    """List pull requests waiting in your inbox.

    Args:
        role: Inbox role, ``reviewer`` or ``author``.
    """
    config = _load()
    with _open_client(config) as client:
        for pr in get_inbox(client, role, config.review):
            print(format_pull_request(pr))


@app.command
def review(project: str, repo: str, pr_id: int, path: str = "", *, ignore_whitespace: bool | None = None) -> None:
    """Print a pull request's diff with its line comments.

    Args:
        project: Project key (``~user`` for personal repositories).
        repo: Repository slug.
        pr_id: Pull request id.
        path: Only show this file.
        ignore_whitespace: Hide whitespace-only changes (defaults to config).
    """
    pr = _open_pull_request(project, repo, pr_id)
    if ignore_whitespace is None:
        ignore_whitespace = get_config().review.ignore_whitespace
    with pr.client:
        print(render_review(pr.get_review(path, ignore_whitespace)), end="")


@app.command
def activities(project: str, repo: str, pr_id: int, limit: int = 25) -> None:
    """Print recent comment activity on a pull request."""
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        print(render_review(pr.get_activities(limit)), end="")


@app.command
def files(project: str, repo: str, pr_id: int) -> None:
    """List files changed by a pull request."""
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        for f in pr.get_files():
            print(f"{f.type:<8} {f.name}")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@app.command
def comment(
    project: str,
    repo: str,
    pr_id: int,
    text: str,
    *,
    path: str | None = None,
    line: int | None = None,
    line_type: SegmentType = SegmentType.ADDED,
    reply_to: int | None = None,
) -> None:
    """Add a comment: review-level, on a file (--path) or on a line (--path and --line).

    Args:
        project: Project key.
        repo: Repository slug.
        pr_id: Pull request id.
        text: Comment text.
        path: File to comment on.
        line: Line to comment on; requires --path.
        line_type: Segment type of the line (ADDED, REMOVED or CONTEXT).
        reply_to: Reply to this comment id instead.
    """
    change = build_add_change(text, path=path, line=line, line_type=line_type, reply_to=reply_to)
    _apply(project, repo, pr_id, change)


@app.command
def edit(project: str, repo: str, pr_id: int, comment_id: int, version: int, text: str) -> None:
    """Replace the text of a comment last seen at *version*."""
    _apply(project, repo, pr_id, CommentModified(Comment(id=comment_id, version=version, text=text)))


@app.command
def delete(project: str, repo: str, pr_id: int, comment_id: int, version: int) -> None:
    """Delete a comment last seen at *version*."""
    _apply(project, repo, pr_id, CommentRemoved(Comment(id=comment_id, version=version)))


@app.command
def approve(project: str, repo: str, pr_id: int) -> None:
    """Approve a pull request."""
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        pr.approve()
    print(f"approved #{pr_id}")


@app.command
def decline(project: str, repo: str, pr_id: int) -> None:
    """Decline a pull request."""
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        pr.decline()
    print(f"declined #{pr_id}")


@app.command
def merge(project: str, repo: str, pr_id: int) -> None:
    """Merge a pull request."""
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        pr.merge()
    print(f"merged #{pr_id}")


def _apply(project: str, repo: str, pr_id: int, change: ReviewChange) -> None:
    pr = _open_pull_request(project, repo, pr_id)
    with pr.client:
        result = pr.apply_change(change)
    if result is not None:
        print(f"comment {result.id} (version {result.version})")


def build_add_change(
    text: str,
    *,
    path: str | None = None,
    line: int | None = None,
    line_type: SegmentType = SegmentType.ADDED,
    reply_to: int | None = None,
) -> ReviewChange:
    """Pick the add-variant matching the given location options."""
    if reply_to is not None:
        return ReplyAdded(Comment(text=text), parent=Comment(id=reply_to))
    if line is not None:
        if not path:
            msg = "--line requires --path"
            raise ConfigError(msg)
        file_type = "FROM" if line_type == SegmentType.REMOVED else "TO"
        anchor = Anchor(line=line, line_type=line_type, file_type=file_type, path=path, src_path=path)
        return LineCommentAdded(Comment(text=text, anchor=anchor))
    if path:
        return FileCommentAdded(Comment(text=text, anchor=Anchor(path=path, src_path=path)))
    return ReviewCommentAdded(Comment(text=text))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def format_pull_request(pr: PullRequest) -> str:
    """One-line summary of an inbox entry."""
    repository = pr.to_ref.repository
    where = f"{repository.project.key}/{repository.slug}" if repository else "?"
    return (
        f"{where}#{pr.id}  {pr.state:<8} {pr.updated}  "
        f"{pr.author.user.name}  +{pr.approvals}/{len(pr.reviewers)}  "
        f"💬{pr.comment_count}  {pr.title}"
    )


def _format_comment(comment: Comment, indent: str) -> list[str]:
    text = comment.text.splitlines() or [""]
    out = [f"{indent}# [{comment.id} v{comment.version}] {comment.author.name}: {text[0]}"]
    out.extend(f"{indent}#   {line}" for line in text[1:])
    for reply in comment.comments:
        out.extend(_format_comment(reply, indent + "  "))
    return out


def _render_diff(diff: Diff) -> list[str]:
    source = diff.source.to_string if diff.source else "/dev/null"
    destination = diff.destination.to_string if diff.destination else "/dev/null"
    out = [f"--- {source}", f"+++ {destination}"]
    out.extend(line for c in diff.file_comments for line in _format_comment(c, ""))
    for hunk in diff.hunks:
        out.append(
            f"@@ -{hunk.source_line},{hunk.source_span} +{hunk.destination_line},{hunk.destination_span} @@",
        )
        for segment in hunk.segments:
            prefix = _SEGMENT_PREFIX[segment.type]
            for line in segment.lines:
                out.append(f"{prefix}{line.line}")
                for c in line.comments:
                    out.extend(_format_comment(c, "    "))
    return out


def render_review(review: Review) -> str:
    """Render a review as unified-diff-like text with comments under their lines."""
    out: list[str] = []
    for c in review.review_comments:
        out.extend(_format_comment(c, ""))
    for diff in review.diffs:
        out.extend(_render_diff(diff))
    return "".join(f"{line}\n" for line in out)


# ---------------------------------------------------------------------------
# check-env
# ---------------------------------------------------------------------------


@app.command(name="check-env")
def check_env() -> None:
    """Print recognized environment variables and validate the configuration."""
    print("stashreview check-env")
    print("=" * 40)

    found = {k: v for k, v in sorted(os.environ.items()) if k in ENV_OVERRIDES}
    if not found:
        print("\nNo STASH_* environment variables set.")
    else:
        print(f"\nFound {len(found)} variable(s):\n")
        for key, value in found.items():
            print(f"  {key} = {_mask_value(key, value)}")

    print("\n" + "-" * 40)
    print("Validating configuration...\n")
    try:
        config, path = load_config()
    except ConfigError as exc:
        print(f"❌ Configuration error: {exc}")
        sys.exit(1)

    print(f"  Config file: {path or 'none'}")
    print(f"  Stash URL: {config.stash.url or 'NOT SET'}")
    print(f"  User: {config.stash.user or 'NOT SET'}")
    print(f"  Token: {'set' if config.stash.token else 'NOT SET'}")
    print(f"  Version retries: {config.review.version_retries}")
    print(f"  Strict changes: {'yes' if config.review.strict_changes else 'no'}")
    print()


_MASK_MIN_LENGTH = 4


def _mask_value(key: str, value: str) -> str:
    """Mask sensitive values."""
    if "token" in key.lower():
        if len(value) > _MASK_MIN_LENGTH:
            return value[:2] + "*" * (len(value) - _MASK_MIN_LENGTH) + value[-2:]
        return "****"
    return value


def main() -> None:
    """Run the CLI, turning Stash and config errors into a one-line message."""
    try:
        app()
    except (StashError, ConfigError, ValidationError, httpx.HTTPError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
