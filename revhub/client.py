"""
revhub async client.

Single entry point over both review platforms.
"""

import os
from collections.abc import Collection
from typing import Any

from revhub.clients.base import SourceClient
from revhub.clients.gitlab import GitLabClient
from revhub.clients.phabricator import PhabricatorClient
from revhub.exceptions import ConfigurationError
from revhub.orchestrator import DEFAULT_MAX_CONCURRENCY, ProjectCache, RevisionAggregator, RevisionScope
from revhub.transport import Credentials, RetryConfig
from revhub.types.revisions import AggregationResult, Comment, NewCommentPosition, RevisionDetail, Source


class AsyncRevHubClient:
    """
    Async client aggregating GitLab merge requests and Phabricator revisions.

    Either platform may be left out; calling an operation for a platform
    that is not configured raises ``ConfigurationError``.

    Example:
        ```python
        import asyncio
        from revhub import AsyncRevHubClient, RevisionScope

        async def main():
            async with AsyncRevHubClient.from_env() as client:
                result = await client.fetch_all_revisions(RevisionScope.all())
                for revision in result.revisions:
                    print(revision.source.value, revision.title)
                for error in result.errors:
                    print("failed:", error.scope, error.message)

        asyncio.run(main())
        ```
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        gitlab: Credentials | SourceClient | None = None,
        phabricator: Credentials | SourceClient | None = None,
        project_cache: ProjectCache | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
        followed_user_ids: Collection[Any] = (),
    ) -> None:
        """
        Initialize the client.

        Args:
            gitlab: GitLab credentials, or a ready adapter (e.g. a mock)
            phabricator: Phabricator credentials, or a ready adapter
            project_cache: Previously fetched GitLab projects (optional)
            max_concurrency: Maximum adapter calls in flight (default: 8)
            timeout: Request timeout in seconds (default: 30.0)
            retry_config: Configuration for retry behavior (optional)
            followed_user_ids: GitLab user ids to flag as ``following``

        Raises:
            ConfigurationError: If no platform is configured
        """
        if gitlab is None and phabricator is None:
            raise ConfigurationError("At least one of GitLab or Phabricator must be configured")

        if isinstance(gitlab, Credentials):
            gitlab = GitLabClient(gitlab, timeout=timeout, retry_config=retry_config)
        if isinstance(phabricator, Credentials):
            phabricator = PhabricatorClient(phabricator, timeout=timeout, retry_config=retry_config)

        self.gitlab = gitlab
        self.phabricator = phabricator
        self._aggregator = RevisionAggregator(
            gitlab=gitlab,
            phabricator=phabricator,
            project_cache=project_cache,
            max_concurrency=max_concurrency,
            followed_user_ids=followed_user_ids,
        )

    @classmethod
    def from_env(
        cls,
        project_cache: ProjectCache | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry_config: RetryConfig | None = None,
    ) -> "AsyncRevHubClient":
        """
        Create a client from environment variables.

        Environment variables:
            REVHUB_GITLAB_URL / REVHUB_GITLAB_TOKEN: GitLab instance and token
            REVHUB_PHABRICATOR_URL / REVHUB_PHABRICATOR_TOKEN: Phabricator
                instance and Conduit token
            REVHUB_MAX_CONCURRENCY: Fan-out limit (optional, default: 8)

        A platform is configured only when both its URL and token are set.

        Returns:
            Configured AsyncRevHubClient instance

        Raises:
            ConfigurationError: If no platform is configured or
                REVHUB_MAX_CONCURRENCY is not a positive integer
        """
        gitlab = _credentials_from_env("GITLAB")
        phabricator = _credentials_from_env("PHABRICATOR")
        if gitlab is None and phabricator is None:
            raise ConfigurationError(
                "Set REVHUB_GITLAB_URL/REVHUB_GITLAB_TOKEN or "
                "REVHUB_PHABRICATOR_URL/REVHUB_PHABRICATOR_TOKEN"
            )

        raw_concurrency = os.environ.get("REVHUB_MAX_CONCURRENCY", "").strip()
        max_concurrency = DEFAULT_MAX_CONCURRENCY
        if raw_concurrency:
            try:
                max_concurrency = int(raw_concurrency)
            except ValueError:
                raise ConfigurationError(
                    f"Invalid REVHUB_MAX_CONCURRENCY: {raw_concurrency!r}. Must be a positive integer"
                ) from None
            if max_concurrency < 1:
                raise ConfigurationError(
                    f"Invalid REVHUB_MAX_CONCURRENCY: {raw_concurrency!r}. Must be a positive integer"
                )

        return cls(
            gitlab=gitlab,
            phabricator=phabricator,
            project_cache=project_cache,
            max_concurrency=max_concurrency,
            timeout=timeout,
            retry_config=retry_config,
        )

    @property
    def aggregator(self) -> RevisionAggregator:
        """Get the underlying aggregator (for advanced use cases)."""
        return self._aggregator

    async def fetch_all_revisions(self, scope: RevisionScope | None = None) -> AggregationResult:
        """Collect open revisions; defaults to every configured platform."""
        if scope is None:
            scope = RevisionScope(frozenset(s for s in Source if self._configured(s)))
        return await self._aggregator.fetch_all_revisions(scope)

    async def fetch_revision_detail(
        self,
        source: Source,
        item_id: Any,
        project_id: Any = None,
    ) -> RevisionDetail:
        return await self._aggregator.fetch_revision_detail(source, item_id, project_id)

    async def post_comment(
        self,
        source: Source,
        item_id: Any,
        body: str,
        project_id: Any = None,
        position: NewCommentPosition | None = None,
    ) -> Comment:
        return await self._aggregator.post_comment(source, item_id, body, project_id, position)

    async def delete_comment(
        self,
        source: Source,
        item_id: Any,
        comment_id: Any,
        project_id: Any = None,
    ) -> None:
        await self._aggregator.delete_comment(source, item_id, comment_id, project_id)

    def _configured(self, source: Source) -> bool:
        return (self.gitlab if source == Source.GITLAB else self.phabricator) is not None

    async def close(self) -> None:
        """Close both adapters and release resources."""
        for client in (self.gitlab, self.phabricator):
            if client is not None:
                await client.close()

    async def __aenter__(self) -> "AsyncRevHubClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit - closes the client."""
        await self.close()


def _credentials_from_env(platform: str) -> Credentials | None:
    url = os.environ.get(f"REVHUB_{platform}_URL", "").strip()
    token = os.environ.get(f"REVHUB_{platform}_TOKEN", "").strip()
    if not url or not token:
        return None
    return Credentials(base_url=url, token=token)
