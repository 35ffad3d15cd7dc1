"""Pydantic models for Stash pull request resources."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from stashreview.diff import Anchor, Changeset, Comment, Diff, FilePath, StashModel, User

_TIMESTAMP_FORMAT = "%a %b %e %H:%M %Y"


def format_timestamp(millis: int) -> str:
    """Render a Stash millisecond timestamp in local time, like ``Mon Jan  2 15:04 2006``."""
    return datetime.fromtimestamp(millis // 1000).strftime(_TIMESTAMP_FORMAT)


class Project(StashModel):
    key: str = ""


class Repository(StashModel):
    slug: str = ""
    project: Project = Field(default_factory=Project)


class Ref(StashModel):
    """A branch reference on either side of a pull request."""

    id: str = Field(default="", description="Full ref name, e.g. refs/heads/feature")
    display_id: str = ""
    latest_commit: str = ""
    repository: Repository | None = None


class Participant(StashModel):
    user: User = Field(default_factory=User)
    role: str = ""
    approved: bool = False


class PullRequestProperties(StashModel):
    comment_count: int = 0


class Link(StashModel):
    href: str = ""


class Links(StashModel):
    self_: list[Link] = Field(default_factory=list, alias="self")


class PullRequestInfo(StashModel):
    """Current server-side state of a pull request, fetched before versioned mutations."""

    id: int = 0
    version: int = Field(default=0, description="Optimistic-concurrency token for decline/merge")
    state: str = ""
    links: Links = Field(default_factory=Links)


class ReviewFile(StashModel):
    """One entry of a pull request's ``changes`` listing."""

    content_id: str = ""
    path: FilePath = Field(default_factory=FilePath)
    src_path: FilePath | None = None
    type: str = Field(default="", description="ADD, MODIFY, DELETE, MOVE, COPY")

    @property
    def name(self) -> str:
        return self.path.to_string


class Activity(StashModel):
    """A single pull request activity entry."""

    id: int = 0
    created_date: int = 0
    user: User = Field(default_factory=User)
    action: str = ""
    comment_action: str | None = None
    comment: Comment | None = None
    comment_anchor: Anchor | None = None
    diff: Diff | None = None


class Review(BaseModel):
    """An annotated changeset ready for display or editing.

    ``is_overview`` is true when the review was assembled from the activity
    feed rather than the full diff; ``review_comments`` then holds the
    comments that have no line anchor.
    """

    changeset: Changeset
    is_overview: bool = Field(default=False, description="Built from the activity feed rather than the full diff")
    review_comments: list[Comment] = Field(default_factory=list, description="Comments with no line anchor")

    @property
    def diffs(self) -> list[Diff]:
        return self.changeset.diffs

    @property
    def path(self) -> str:
        return self.changeset.path
