"""Client-side filtering of aggregated revisions."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from revhub.logging import get_logger
from revhub.types.revisions import Revision

logger = get_logger("filters")

ALL = "All"
NO_GROUP = "None"


@dataclass(frozen=True)
class UserGroup:
    """A named set of author display names."""

    name: str
    users: tuple[str, ...] = ()


@dataclass(frozen=True)
class RevisionFilter:
    """
    Field filters combined with AND.

    Empty values (and ``"All"`` for author and project) disable a filter.

    Example:
        ```python
        RevisionFilter(status="mergeable", title="login").apply(result.revisions)
        ```
    """

    status: str | None = None
    title: str | None = None  # case-insensitive substring
    author: str | None = ALL  # case-insensitive substring of the author name
    project: str | None = ALL
    drafts_only: bool = False

    def matches(self, revision: Revision) -> bool:
        if self.status and revision.status != self.status:
            return False
        if self.title and self.title.lower() not in revision.title.lower():
            return False
        if self.author and self.author != ALL and self.author.lower() not in revision.author.name.lower():
            return False
        if self.project and self.project != ALL and revision.project != self.project:
            return False
        if self.drafts_only and not revision.is_draft:
            return False
        return True

    def apply(self, revisions: Iterable[Revision]) -> list[Revision]:
        return [revision for revision in revisions if self.matches(revision)]


def filter_by_user_group(
    revisions: Iterable[Revision],
    groups: Iterable[UserGroup],
    group_name: str | None,
) -> list[Revision]:
    """
    Keep revisions authored by members of ``group_name``.

    No selection (``None``, ``""`` or ``"None"``) keeps everything, and so
    does an unknown group name, which is logged.
    """
    revisions = list(revisions)
    if not group_name or group_name == NO_GROUP:
        return revisions

    group = next((g for g in groups if g.name == group_name), None)
    if group is None:
        logger.warning("User group %r not found; not filtering", group_name)
        return revisions

    members = set(group.users)
    return [revision for revision in revisions if revision.author.name in members]


def unique_projects(revisions: Iterable[Revision]) -> list[str]:
    """Sorted distinct project names, prefixed with ``"All"``."""
    return [ALL, *sorted({revision.project for revision in revisions})]


def unique_authors(revisions: Iterable[Revision]) -> list[str]:
    """Sorted distinct author names, prefixed with ``"All"``."""
    return [ALL, *sorted({revision.author.name for revision in revisions})]


__all__ = [
    "ALL",
    "NO_GROUP",
    "RevisionFilter",
    "UserGroup",
    "filter_by_user_group",
    "unique_authors",
    "unique_projects",
]
