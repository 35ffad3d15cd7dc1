"""Pydantic models for Stash diffs and the comments anchored to them.

A :class:`Changeset` is the decoded body of a ``pull-requests/<id>/diff``
response: ``Diff`` (one per file) → ``Hunk`` → ``Segment`` → ``Line``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ELLIPSIS = "..."


class StashModel(BaseModel):
    """Base for models decoded from Stash's camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SegmentType(StrEnum):
    """Kind of lines a diff segment holds."""

    ADDED = "ADDED"
    REMOVED = "REMOVED"
    CONTEXT = "CONTEXT"


class User(StashModel):
    name: str = ""
    display_name: str = ""
    email_address: str = ""


class Anchor(StashModel):
    """Where a comment is attached: a line, a file, or (when empty) the whole review."""

    from_hash: str | None = None
    to_hash: str | None = None
    line: int | None = Field(default=None, description="Line number the comment is attached to")
    line_type: SegmentType | None = Field(default=None, description="Segment type of the anchored line")
    file_type: str | None = Field(default=None, description="FROM (source side) or TO (destination side)")
    path: str | None = Field(default=None, description="File path the comment is attached to")
    src_path: str | None = None


class Comment(StashModel):
    """A review comment; ``version`` is the optimistic-concurrency token."""

    id: int = 0
    version: int = 0
    text: str = ""
    author: User = Field(default_factory=User)
    created_date: int = 0
    updated_date: int = 0
    anchor: Anchor | None = None
    comments: list[Comment] = Field(default_factory=list, description="Replies to this comment")
    parent: Comment | None = None

    def short(self, length: int) -> str:
        """Return the first line of the text, cut to *length* characters."""
        text = self.text.strip()
        first, _, rest = text.partition("\n")
        if len(first) > length:
            return first[: max(length - len(_ELLIPSIS), 0)] + _ELLIPSIS
        if rest:
            return first + _ELLIPSIS
        return first


class Line(StashModel):
    source: int = 0
    destination: int = 0
    line: str = ""
    truncated: bool = False
    comment_ids: list[int] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list, description="Resolved comments, in comment_ids order")


class Segment(StashModel):
    type: SegmentType
    truncated: bool = False
    lines: list[Line] = Field(default_factory=list)


class Hunk(StashModel):
    source_line: int = 0
    source_span: int = 0
    destination_line: int = 0
    destination_span: int = 0
    truncated: bool = False
    segments: list[Segment] = Field(default_factory=list)


class FilePath(StashModel):
    parent: str = ""
    name: str = ""
    to_string: str = ""


class DiffAttributes(StashModel):
    from_hash: list[str] = Field(default_factory=list)
    to_hash: list[str] = Field(default_factory=list)


class Diff(StashModel):
    source: FilePath | None = None
    destination: FilePath | None = None
    truncated: bool = False
    hunks: list[Hunk] = Field(default_factory=list)
    attributes: DiffAttributes = Field(default_factory=DiffAttributes)
    line_comments: list[Comment] = Field(default_factory=list)
    file_comments: list[Comment] = Field(default_factory=list)

    @property
    def path(self) -> str:
        """Destination path, or the source path for deleted files."""
        side = self.destination or self.source
        return side.to_string if side else ""


class Changeset(StashModel):
    from_hash: str = ""
    to_hash: str = ""
    path: str = ""
    whitespace: str = ""
    diffs: list[Diff] = Field(default_factory=list)

    def iter_lines(self) -> Iterator[tuple[Diff, Hunk, Segment, Line]]:
        """Yield every ``(diff, hunk, segment, line)`` tuple in order."""
        for diff in self.diffs:
            for hunk in diff.hunks:
                for segment in hunk.segments:
                    for line in segment.lines:
                        yield diff, hunk, segment, line

    def for_each_line(self, callback: Callable[[Diff, Hunk, Segment, Line], None]) -> None:
        """Invoke *callback* for every line tuple; exceptions stop the walk."""
        for item in self.iter_lines():
            callback(*item)

    def comment_pool(self) -> dict[int, Comment]:
        """Return an id→Comment map over every diff's line comments.

        The first comment with a given id wins; later duplicates are ignored.
        """
        pool: dict[int, Comment] = {}
        for diff in self.diffs:
            for comment in diff.line_comments:
                pool.setdefault(comment.id, comment)
        return pool


def decode_changeset(raw: bytes | str) -> Changeset:
    """Decode a raw ``diff`` response body."""
    return Changeset.model_validate_json(raw)
