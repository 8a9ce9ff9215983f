"""Revision-related data models.

Everything here is a read-only projection: built fresh per request from
platform payloads and never mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Source(str, Enum):
    """Originating platform of a revision."""

    GITLAB = "GITLAB"
    PHABRICATOR = "PHABRICATOR"


@dataclass(frozen=True)
class Author:
    """A platform user as shown next to a revision or comment."""

    name: str
    username: str | None = None
    platform_id: str | int | None = None


@dataclass(frozen=True)
class Project:
    """Platform-native project (GitLab) or repository (Phabricator)."""

    id: str | int
    name: str
    path_with_namespace: str
    url: str
    source: Source
    access_level: int | None = None
    phid: str | None = None


@dataclass(frozen=True)
class Revision:
    """Unified code-review item."""

    id: str | int
    source: Source
    title: str
    summary: str
    status: str  # opaque platform status, e.g. "mergeable", "needs-review"
    url: str
    author: Author
    date_modified: int  # epoch milliseconds
    is_draft: bool
    project: str
    project_url: str
    project_id: str | int | None  # None for a Phabricator revision outside any repository
    jira_id: str = ""
    branch: str | None = None
    following: bool = False
    iid: int | None = None  # GitLab per-project number, used for detail lookups

    @property
    def key(self) -> tuple[Source, str | int]:
        """Natural aggregation key."""
        return (self.source, self.id)


@dataclass(frozen=True)
class DiffFile:
    """One file's change within a revision."""

    old_path: str
    new_path: str
    diff_text: str
    is_new_file: bool = False
    is_renamed_file: bool = False
    is_deleted_file: bool = False


@dataclass(frozen=True)
class CommentPosition:
    """Anchor of an inline comment."""

    file_path: str
    line_number: int | None
    side: str  # "new" or "old"


@dataclass(frozen=True)
class Comment:
    """A general or inline comment on a revision."""

    id: str | int
    author: Author
    body: str
    created_at: int  # epoch milliseconds
    position: CommentPosition | None = None

    @property
    def is_inline(self) -> bool:
        return self.position is not None


@dataclass(frozen=True)
class NewCommentPosition:
    """Caller-supplied anchor for a new inline comment."""

    file_path: str
    new_line: int | None = None
    old_line: int | None = None
    old_path: str | None = None


@dataclass(frozen=True)
class Reviewer:
    """Resolved reviewer of a revision."""

    name: str
    username: str | None = None


@dataclass(frozen=True)
class CommentThread:
    """Ordered comments plus the inline subset.

    ``inline_comments`` holds the same objects as ``comments``; the two
    lists are not disjoint.
    """

    comments: list[Comment] = field(default_factory=list)
    inline_comments: list[Comment] = field(default_factory=list)


@dataclass(frozen=True)
class SourceError:
    """A failed call collected during fan-out instead of being raised."""

    source: Source
    scope: Any  # project id, or None for a global search
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class AggregationResult:
    """Revisions from one aggregation call plus its partial failures."""

    revisions: list[Revision] = field(default_factory=list)
    errors: list[SourceError] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class RevisionDetail:
    """A single revision with its diff, comments and reviewers."""

    revision: Revision
    diffs: list[DiffFile]
    comments: list[Comment]
    inline_comments: list[Comment]
    reviewers: list[Reviewer]
