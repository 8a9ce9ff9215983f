"""
Mapping of raw platform records onto ``Revision``.

Status strings are passed through untouched; presentation is looked up
separately (see ``revhub.status``).
"""

import re
from collections.abc import Callable, Collection, Iterable, Mapping
from typing import Any

from revhub.comments import IdentityCache, gitlab_author
from revhub.exceptions import UnresolvedProjectError
from revhub.logging import get_logger
from revhub.timestamps import iso_to_epoch_ms, seconds_to_epoch_ms
from revhub.types.revisions import Author, Project, Revision, Source

logger = get_logger("normalize")

JIRA_ID_PATTERN = re.compile(r"\[(\w+-\d+)\]")

ProjectTable = Mapping[str, Project]


def extract_jira_id(title: str | None) -> str:
    """Return the first bracketed ``KEY-123`` token of a title, or ``""``."""
    if not title:
        return ""
    match = JIRA_ID_PATTERN.search(title)
    return match.group(1) if match else ""


def index_projects(projects: Iterable[Project]) -> dict[str, Project]:
    """Build the id -> Project lookup table; Phabricator repos are also keyed by PHID."""
    table: dict[str, Project] = {}
    for project in projects:
        table[str(project.id)] = project
        if project.phid:
            table[project.phid] = project
    return table


def lookup_project(table: ProjectTable, project_key: Any, item_id: Any = None) -> Project:
    if project_key is not None:
        project = table.get(str(project_key))
        if project is not None:
            return project
    raise UnresolvedProjectError(project_key, item_id)


def normalize_gitlab_revision(
    raw: dict[str, Any],
    projects: ProjectTable,
    followed_user_ids: Collection[Any] = (),
) -> Revision:
    """
    Map a GitLab merge request onto a Revision.

    ``project_namespace``/``project_url`` attached during fan-out win over
    the lookup table values; the table is still required so that items of
    unknown projects are rejected.

    Raises:
        UnresolvedProjectError: If the MR's project is not in ``projects``
    """
    project = lookup_project(projects, raw.get("project_id"), raw.get("iid"))
    author = raw.get("author") or {}
    title = raw.get("title") or ""

    return Revision(
        id=raw["id"],
        source=Source.GITLAB,
        title=title,
        summary=raw.get("description") or "",
        status=raw.get("detailed_merge_status") or "",
        url=raw.get("web_url") or "",
        author=gitlab_author(author),
        date_modified=iso_to_epoch_ms(raw.get("updated_at")),
        is_draft=bool(raw.get("work_in_progress", raw.get("draft", False))),
        project=raw.get("project_namespace") or project.path_with_namespace,
        project_url=raw.get("project_url") or project.url,
        project_id=project.id,
        jira_id=extract_jira_id(title),
        branch=raw.get("source_branch"),
        following=author.get("id") is not None and author.get("id") in followed_user_ids,
        iid=raw.get("iid"),
    )


def normalize_phabricator_revision(
    raw: dict[str, Any],
    projects: ProjectTable | None,
    identities: IdentityCache,
    base_url: str,
) -> Revision:
    """
    Map a ``differential.revision.search`` record onto a Revision.

    The author must already be in ``identities``; unknown authors are
    reported as "Unknown". Revisions are not tied to a repository in
    Phabricator: one without ``repositoryPHID``, or any revision when
    ``projects`` is None (repositories could not be looked up), gets an
    empty project.

    Raises:
        UnresolvedProjectError: If the revision names a repository that is
            not in ``projects``
    """
    fields = raw.get("fields") or {}
    repository_phid = fields.get("repositoryPHID") or raw.get("repositoryPHID")
    project = None
    if repository_phid and projects is not None:
        project = lookup_project(projects, repository_phid, raw.get("id"))

    author_phid = fields.get("authorPHID")
    author = identities.get(author_phid) if author_phid else None
    if author is None:
        author = Author(name="Unknown", platform_id=author_phid)

    title = fields.get("title") or ""
    return Revision(
        id=raw["id"],
        source=Source.PHABRICATOR,
        title=title,
        summary=fields.get("summary") or "",
        status=(fields.get("status") or {}).get("value") or "",
        url=f"{base_url.rstrip('/')}/D{raw['id']}",
        author=author,
        date_modified=seconds_to_epoch_ms(fields.get("dateModified")),
        is_draft=bool(fields.get("isDraft", False)),
        project=project.name if project else "",
        project_url=project.url if project else "",
        project_id=project.id if project else None,
        jira_id=extract_jira_id(title),
    )


def normalize_many(
    raws: Iterable[dict[str, Any]],
    normalize_one: Callable[[dict[str, Any]], Revision],
) -> list[Revision]:
    """
    Normalize a batch; items that cannot be mapped are logged and dropped.

    An item is dropped when its project is unresolved or when the platform
    sent it malformed (missing id, unparseable timestamp, wrong field type).
    """
    revisions = []
    for raw in raws:
        try:
            revisions.append(normalize_one(raw))
        except UnresolvedProjectError as e:
            logger.warning("Dropping item: %s", e)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            item_id = raw.get("id") if isinstance(raw, dict) else None
            logger.warning("Dropping malformed item %r: %s: %s", item_id, type(e).__name__, e)
    return revisions


def dedupe_revisions(revisions: Iterable[Revision]) -> list[Revision]:
    """Keep the first revision per ``(source, id)``, preserving order."""
    seen: set[tuple[Source, Any]] = set()
    unique = []
    for revision in revisions:
        if revision.key in seen:
            continue
        seen.add(revision.key)
        unique.append(revision)
    return unique


def sort_revisions(revisions: Iterable[Revision], newest_first: bool = True) -> list[Revision]:
    return sorted(revisions, key=lambda r: r.date_modified, reverse=newest_first)
