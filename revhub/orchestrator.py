"""
Aggregation orchestrator.

Fans out adapter calls under a bounded semaphore, normalizes what comes
back and degrades centrally: a failing project or search becomes a
``SourceError`` in the result instead of an exception. Single-item calls
(detail views, comments) propagate their errors.
"""

import asyncio
from collections.abc import Awaitable, Collection
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from revhub.clients.base import SourceClient
from revhub.clients.gitlab import GitLabClient
from revhub.clients.phabricator import PhabricatorClient
from revhub.comments import IdentityCache, normalize_gitlab_notes, normalize_phabricator_transactions
from revhub.diff import diff_file_from_gitlab, parse_diff
from revhub.exceptions import ConfigurationError, RevHubError, ValidationError
from revhub.logging import get_logger
from revhub.normalize import (
    dedupe_revisions,
    index_projects,
    normalize_gitlab_revision,
    normalize_many,
    normalize_phabricator_revision,
)
from revhub.types.revisions import (
    AggregationResult,
    Comment,
    NewCommentPosition,
    Project,
    Reviewer,
    RevisionDetail,
    Source,
    SourceError,
)

logger = get_logger("orchestrator")

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 8


@runtime_checkable
class ProjectCache(Protocol):
    """Caller-owned list of previously fetched projects."""

    async def get_projects(self) -> list[Project]: ...


class StaticProjectCache:
    """A ``ProjectCache`` over a fixed list."""

    def __init__(self, projects: list[Project] | None = None) -> None:
        self._projects = list(projects or [])

    async def get_projects(self) -> list[Project]:
        return list(self._projects)


@dataclass(frozen=True)
class RevisionScope:
    """
    What ``fetch_all_revisions`` should collect.

    Example:
        ```python
        RevisionScope.gitlab()               # every cached GitLab project
        RevisionScope.gitlab([12, 34])       # explicit project ids
        RevisionScope.phabricator()          # revisions needing attention
        RevisionScope.all()                  # both, side by side
        ```
    """

    sources: frozenset[Source]
    project_ids: tuple[Any, ...] | None = None

    @classmethod
    def gitlab(cls, project_ids: Collection[Any] | str | None = None) -> "RevisionScope":
        return cls(frozenset({Source.GITLAB}), _as_ids(project_ids))

    @classmethod
    def phabricator(cls) -> "RevisionScope":
        return cls(frozenset({Source.PHABRICATOR}))

    @classmethod
    def all(cls, project_ids: Collection[Any] | str | None = None) -> "RevisionScope":
        return cls(frozenset({Source.GITLAB, Source.PHABRICATOR}), _as_ids(project_ids))

    def includes(self, source: Source) -> bool:
        return source in self.sources


def _as_ids(project_ids: Collection[Any] | str | None) -> tuple[Any, ...] | None:
    if project_ids is None:
        return None
    if isinstance(project_ids, str):
        return tuple(part.strip() for part in project_ids.split(",") if part.strip())
    return tuple(project_ids)


class RevisionAggregator:
    """
    Collects revisions, details and comments across the configured platforms.

    The aggregator does not own its adapters; closing them is the caller's
    job (``AsyncRevHubClient`` does it).
    """

    def __init__(
        self,
        gitlab: GitLabClient | None = None,
        phabricator: PhabricatorClient | None = None,
        project_cache: ProjectCache | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        followed_user_ids: Collection[Any] = (),
    ) -> None:
        """
        Initialize the aggregator.

        Args:
            gitlab: GitLab adapter, or None when GitLab is not configured
            phabricator: Phabricator adapter, or None when not configured
            project_cache: Source of previously fetched GitLab projects; when
                absent, ``list_projects`` is called on every aggregation
            max_concurrency: Maximum adapter calls in flight during fan-out
            followed_user_ids: GitLab user ids whose revisions are flagged
                ``following``

        Raises:
            ConfigurationError: If max_concurrency is not positive
        """
        if max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        self.gitlab = gitlab
        self.phabricator = phabricator
        self.project_cache = project_cache
        self.max_concurrency = max_concurrency
        self.followed_user_ids = frozenset(followed_user_ids)

    def client_for(self, source: Source) -> SourceClient:
        """
        Return the adapter for ``source``.

        Raises:
            ConfigurationError: If that platform is not configured
        """
        client: SourceClient | None = self.gitlab if source == Source.GITLAB else self.phabricator
        if client is None:
            raise ConfigurationError(f"{source.value} is not configured")
        return client

    @staticmethod
    async def _collect(source: Source, scope: Any, call: Awaitable[T]) -> tuple[T | None, SourceError | None]:
        try:
            return await call, None
        except RevHubError as e:
            logger.warning("%s call failed for scope %r: %s", source.value, scope, e)
            return None, SourceError(source=source, scope=scope, error=e)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def fetch_all_revisions(self, scope: RevisionScope) -> AggregationResult:
        """
        Collect open revisions for ``scope``.

        Each source's revisions form one run, deduplicated by
        ``(source, id)`` within that run; runs are never merged into one id
        space. Per-project and per-search failures are reported in
        ``errors``.

        When GitLab is the only source in scope, failing to resolve its
        project list raises; alongside another source it is reported as
        ``SourceError(GITLAB, scope=None)`` and the other runs still count.

        Args:
            scope: Sources (and optionally GitLab project ids) to collect

        Returns:
            Revisions plus the failures encountered on the way

        Raises:
            ConfigurationError: If a source in scope is not configured
            ApiError: If GitLab alone is in scope and its projects cannot be
                resolved (including explicitly requested ids)
        """
        clients = {source: self.client_for(source) for source in Source if scope.includes(source)}

        runs = []
        if Source.GITLAB in clients:
            degrade = len(clients) > 1
            runs.append(self._fetch_gitlab(clients[Source.GITLAB], scope.project_ids, degrade))
        if Source.PHABRICATOR in clients:
            runs.append(self._fetch_phabricator(clients[Source.PHABRICATOR]))

        revisions = []
        errors = []
        for result in await asyncio.gather(*runs):
            revisions.extend(result.revisions)
            errors.extend(result.errors)

        logger.debug("Aggregated %d revisions with %d failures", len(revisions), len(errors))
        return AggregationResult(revisions=revisions, errors=errors)

    async def _gitlab_projects(self, client: GitLabClient, project_ids: tuple[Any, ...] | None) -> list[Project]:
        if project_ids is not None:
            return await client.get_projects_by_ids(list(project_ids), self.max_concurrency)
        if self.project_cache is not None:
            projects = await self.project_cache.get_projects()
        else:
            projects = await client.list_projects()
        return [project for project in projects if project.source == Source.GITLAB]

    async def _fetch_gitlab(
        self,
        client: GitLabClient,
        project_ids: tuple[Any, ...] | None,
        degrade: bool = False,
    ) -> AggregationResult:
        if degrade:
            projects, error = await self._collect(Source.GITLAB, None, self._gitlab_projects(client, project_ids))
            if error is not None:
                return AggregationResult(errors=[error])
        else:
            projects = await self._gitlab_projects(client, project_ids)
        table = index_projects(projects)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _fetch_project(project: Project) -> tuple[list[dict[str, Any]] | None, SourceError | None]:
            async with semaphore:
                return await self._collect(Source.GITLAB, project.id, client.list_open_items(project.id))

        outcomes = await asyncio.gather(*(_fetch_project(project) for project in projects))

        raws: list[dict[str, Any]] = []
        errors: list[SourceError] = []
        for project, (items, error) in zip(projects, outcomes):
            if error is not None:
                errors.append(error)
                continue
            for item in items or []:
                if not isinstance(item, dict):
                    logger.warning("Dropping non-object merge request entry from project %r", project.id)
                    continue
                raws.append(
                    {
                        **item,
                        "project_namespace": project.path_with_namespace,
                        "project_url": project.url,
                    }
                )

        revisions = normalize_many(
            raws,
            lambda raw: normalize_gitlab_revision(raw, table, self.followed_user_ids),
        )
        return AggregationResult(revisions=dedupe_revisions(revisions), errors=errors)

    async def _fetch_phabricator(self, client: PhabricatorClient) -> AggregationResult:
        raws, error = await self._collect(Source.PHABRICATOR, None, client.list_open_items())
        if error is not None:
            return AggregationResult(errors=[error])
        if not raws:
            return AggregationResult()

        identities = IdentityCache(client.resolve_authors)
        repository_phids = _unique((raw.get("fields") or {}).get("repositoryPHID") for raw in raws)
        author_phids = _unique((raw.get("fields") or {}).get("authorPHID") for raw in raws)

        (repositories, repo_error), (_, author_error) = await asyncio.gather(
            self._collect(Source.PHABRICATOR, None, _search_repositories(client, repository_phids)),
            self._collect(Source.PHABRICATOR, None, identities.resolve_many(author_phids)),
        )
        errors = [e for e in (repo_error, author_error) if e is not None]

        # Without a repository lookup revisions keep an empty project
        table = None if repo_error is not None else index_projects(repositories or [])
        revisions = normalize_many(
            raws,
            lambda raw: normalize_phabricator_revision(raw, table, identities, client.base_url),
        )
        return AggregationResult(revisions=dedupe_revisions(revisions), errors=errors)

    # ------------------------------------------------------------------
    # Detail view
    # ------------------------------------------------------------------

    async def fetch_revision_detail(
        self,
        source: Source,
        item_id: Any,
        project_id: Any = None,
    ) -> RevisionDetail:
        """
        Fetch one revision with its diff, comments and reviewers.

        The item, its diff and its activity are requested concurrently;
        a Phabricator raw diff is fetched once the item names its active
        diff. Nothing is degraded here: any failure propagates.

        Args:
            source: Platform of the revision
            item_id: Platform-native id (GitLab MR iid, Phabricator revision number)
            project_id: GitLab project id or path (required for GitLab)

        Raises:
            ConfigurationError: If the platform is not configured
            ValidationError: If a GitLab call lacks project_id
            NotFoundError: If the revision does not exist
        """
        client = self.client_for(source)
        if source == Source.GITLAB:
            return await self._gitlab_detail(client, item_id, project_id)
        return await self._phabricator_detail(client, item_id)

    async def _gitlab_project(self, client: GitLabClient, project_id: Any) -> Project:
        if self.project_cache is not None:
            for project in await self.project_cache.get_projects():
                if project.source == Source.GITLAB and str(project_id) in (str(project.id), project.path_with_namespace):
                    return project
        return await client.get_project(project_id)

    async def _gitlab_detail(self, client: GitLabClient, item_id: Any, project_id: Any) -> RevisionDetail:
        if project_id is None:
            raise ValidationError("GitLab revisions are addressed by project_id and iid")

        raw, changes, notes, project = await asyncio.gather(
            client.get_item_by_id(item_id, project_id),
            client.get_diff(item_id, project_id),
            client.get_comments(item_id, project_id),
            self._gitlab_project(client, project_id),
        )

        revision = normalize_gitlab_revision(
            {**raw, "project_namespace": project.path_with_namespace, "project_url": project.url},
            index_projects([project]),
            self.followed_user_ids,
        )
        thread = normalize_gitlab_notes(notes)

        author_id = (raw.get("author") or {}).get("id")
        reviewers = [
            Reviewer(name=user.get("name") or user.get("username"), username=user.get("username"))
            for user in raw.get("reviewers") or []
            if user.get("id") != author_id and (user.get("name") or user.get("username"))
        ]

        return RevisionDetail(
            revision=revision,
            diffs=[diff_file_from_gitlab(change) for change in changes],
            comments=thread.comments,
            inline_comments=thread.inline_comments,
            reviewers=reviewers,
        )

    async def _phabricator_detail(self, client: PhabricatorClient, item_id: Any) -> RevisionDetail:
        raw, transactions = await asyncio.gather(client.get_item_by_id(item_id), client.get_comments(item_id))

        fields = raw.get("fields") or {}
        author_phid = fields.get("authorPHID")
        reviewer_phids = [
            entry.get("reviewerPHID")
            for entry in ((raw.get("attachments") or {}).get("reviewers") or {}).get("reviewers") or []
        ]

        # One identity batch for the author, reviewers and every commenter
        identities = IdentityCache(client.resolve_authors)
        raw_diff, repositories, _ = await asyncio.gather(
            client.get_raw_diff(fields.get("diffPHID")),
            _search_repositories(client, _unique([fields.get("repositoryPHID")])),
            identities.resolve_many([author_phid, *reviewer_phids, *(tx.get("authorPHID") for tx in transactions)]),
        )

        revision = normalize_phabricator_revision(raw, index_projects(repositories), identities, client.base_url)
        thread = await normalize_phabricator_transactions(transactions, identities)

        reviewers = []
        for phid in dict.fromkeys(reviewer_phids):
            author = identities.get(phid) if phid else None
            if author is None or phid == author_phid:
                continue
            reviewers.append(Reviewer(name=author.name, username=author.username))

        return RevisionDetail(
            revision=revision,
            diffs=parse_diff(raw_diff),
            comments=thread.comments,
            inline_comments=thread.inline_comments,
            reviewers=reviewers,
        )

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def post_comment(
        self,
        source: Source,
        item_id: Any,
        body: str,
        project_id: Any = None,
        position: NewCommentPosition | None = None,
    ) -> Comment:
        return await self.client_for(source).post_comment(item_id, project_id, body, position)

    async def delete_comment(
        self,
        source: Source,
        item_id: Any,
        comment_id: Any,
        project_id: Any = None,
    ) -> None:
        await self.client_for(source).delete_comment(item_id, project_id, comment_id)


def _unique(values: Any) -> list[str]:
    return [value for value in dict.fromkeys(values) if value]


async def _search_repositories(client: PhabricatorClient, phids: list[str]) -> list[Project]:
    # An empty constraint would list every repository
    if not phids:
        return []
    return await client.search_repositories(phids)
