"""GitLab merge request client.

Talks to the REST API under ``<base_url>/api/v4`` with a bearer token.
"""

import asyncio
from typing import Any
from urllib.parse import quote

import httpx

from revhub.clients.base import ProjectFilter, SourceClient, validate_comment
from revhub.comments import comment_from_gitlab_note
from revhub.exceptions import ApiError, ValidationError
from revhub.logging import get_logger
from revhub.transport import AsyncHTTPTransport, Credentials, RetryConfig
from revhub.types.revisions import Comment, NewCommentPosition, Project, Source

logger = get_logger("gitlab")


def expect_shape(data: Any, kind: type, path: str) -> Any:
    """
    Check that a 2xx body has the JSON shape the endpoint documents.

    Proxies and SSO gateways may answer with an HTML page and a 200 status.

    Raises:
        ApiError: If ``data`` is not an instance of ``kind``
    """
    if not isinstance(data, kind):
        raise ApiError(200, f"Unexpected response from {path}: expected a JSON {kind.__name__}")
    return data


def project_from_gitlab(raw: dict[str, Any]) -> Project:
    """Map a ``GET /projects`` record."""
    permissions = raw.get("permissions") or {}
    access = (permissions.get("project_access") or {}).get("access_level")
    if access is None:
        access = (permissions.get("group_access") or {}).get("access_level")

    return Project(
        id=raw["id"],
        name=raw.get("name") or "",
        path_with_namespace=raw.get("path_with_namespace") or "Unknown",
        url=raw.get("web_url") or "",
        source=Source.GITLAB,
        access_level=access,
    )


def parse_project_ids(ids: str | list[Any]) -> list[str]:
    """Accept ``"1, 2,3"`` or a list; blanks are dropped."""
    if isinstance(ids, str):
        ids = ids.split(",")
    return [str(i).strip() for i in ids if str(i).strip()]


class GitLabClient(SourceClient):
    """
    Async client for GitLab merge requests.

    Example:
        ```python
        from revhub.clients import GitLabClient
        from revhub.transport import Credentials

        async with GitLabClient(Credentials("https://gitlab.example.com", token)) as gitlab:
            projects = await gitlab.list_projects()
            mrs = await gitlab.list_open_items(projects[0].id)
        ```
    """

    source = Source.GITLAB

    PAGE_SIZE = 100
    DEFAULT_MAX_PAGES = 200

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the GitLab client.

        Args:
            credentials: Instance URL (without ``/api/v4``) and access token
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            max_pages: Upper bound on pages read by paginated listings
            http_transport: Optional httpx transport (tests)
        """
        self.base_url = credentials.root_url
        self.max_pages = max_pages
        self.transport = AsyncHTTPTransport(
            base_url=f"{self.base_url}/api/v4",
            headers={
                "Authorization": f"Bearer {credentials.token}",
                "Accept": "application/json",
            },
            timeout=timeout,
            retry_config=retry_config,
            http_transport=http_transport,
        )

    async def close(self) -> None:
        await self.transport.close()

    @staticmethod
    def _mr_path(project_id: Any, item_id: Any = None) -> str:
        if project_id is None or project_id == "":
            raise ValidationError("GitLab merge requests are addressed by project_id")
        path = f"/projects/{quote(str(project_id), safe='')}/merge_requests"
        if item_id is not None:
            path = f"{path}/{item_id}"
        return path

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """
        Read pages until one comes back empty.

        GitLab does not reliably report totals, so an empty page is the
        only end marker; ``max_pages`` guards against servers that never
        return one.
        """
        items: list[Any] = []
        for page in range(1, self.max_pages + 1):
            data = await self.transport.request(
                "GET",
                path,
                params={**(params or {}), "per_page": self.PAGE_SIZE, "page": page},
            )
            if not data:
                return items
            items.extend(expect_shape(data, list, path))

        logger.warning("Stopped paging %s after %d pages", path, self.max_pages)
        return items

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_projects(self, filter: ProjectFilter | None = None) -> list[Project]:
        """
        List projects the caller is a member of.

        Only developer, maintainer and owner memberships are kept by
        default; guests and reporters cannot act on merge requests.

        Args:
            filter: Role/starred filter (default: developer and above)

        Returns:
            Matching projects in API order
        """
        filter = filter or ProjectFilter()
        params: dict[str, Any] = {"membership": "true"}
        if filter.starred:
            params["starred"] = "true"

        raw_projects = await self._paginate("/projects", params)
        projects = [project_from_gitlab(raw) for raw in raw_projects]
        return [project for project in projects if filter.accepts(project)]

    async def get_project(self, project_id: Any) -> Project:
        data = await self.transport.request("GET", f"/projects/{quote(str(project_id), safe='')}")
        return project_from_gitlab(expect_shape(data, dict, "/projects"))

    async def get_projects_by_ids(
        self,
        ids: str | list[Any],
        max_concurrency: int = 8,
    ) -> list[Project]:
        """
        Fetch projects by explicit id.

        Args:
            ids: Project ids or paths, as a list or a comma separated string
            max_concurrency: Maximum requests in flight

        Returns:
            Projects in the order the ids were given

        Raises:
            ApiError: If any project cannot be fetched
        """
        semaphore = asyncio.Semaphore(max_concurrency)

        async def _fetch_one(project_id: str) -> Project:
            async with semaphore:
                return await self.get_project(project_id)

        return list(await asyncio.gather(*(_fetch_one(i) for i in parse_project_ids(ids))))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_current_user(self) -> dict[str, Any]:
        return expect_shape(await self.transport.request("GET", "/user"), dict, "/user")

    async def list_followed_users(self, user_id: Any) -> list[dict[str, Any]]:
        return await self._paginate(f"/users/{user_id}/following")

    # ------------------------------------------------------------------
    # Merge requests
    # ------------------------------------------------------------------

    async def list_open_items(self, project_id: Any = None) -> list[dict[str, Any]]:
        """
        List a project's open merge requests.

        Args:
            project_id: Numeric id or ``namespace/path``

        Returns:
            Raw merge requests in API order
        """
        path = self._mr_path(project_id)
        data = await self.transport.request("GET", path, params={"state": "opened", "per_page": self.PAGE_SIZE})
        return expect_shape(data or [], list, path)

    async def get_item_by_id(self, item_id: Any, project_id: Any = None) -> dict[str, Any]:
        """Fetch one merge request by project and iid."""
        path = self._mr_path(project_id, item_id)
        return expect_shape(await self.transport.request("GET", path), dict, path)

    async def get_diff(self, item_id: Any, project_id: Any = None) -> list[dict[str, Any]]:
        """Return the ``changes`` list (one entry per file, flags included)."""
        path = f"{self._mr_path(project_id, item_id)}/changes"
        data = expect_shape(await self.transport.request("GET", path), dict, path)
        return expect_shape(data.get("changes") or [], list, path)

    async def get_comments(self, item_id: Any, project_id: Any = None) -> list[dict[str, Any]]:
        """Return every note on the merge request, oldest first."""
        return await self._paginate(
            f"{self._mr_path(project_id, item_id)}/notes",
            {"sort": "asc", "order_by": "created_at"},
        )

    async def post_comment(
        self,
        item_id: Any,
        project_id: Any,
        body: str,
        position: NewCommentPosition | None = None,
    ) -> Comment:
        """
        Post a general note, or an inline discussion when ``position`` is given.

        Inline comments are anchored to the merge request's current
        ``diff_refs``, which costs one extra request.

        Raises:
            ValidationError: If the body or position is malformed
        """
        validate_comment(body, position)
        path = self._mr_path(project_id, item_id)

        if position is None:
            note = await self.transport.request("POST", f"{path}/notes", json={"body": body})
            return comment_from_gitlab_note(note)

        merge_request = await self.get_item_by_id(item_id, project_id)
        refs = merge_request.get("diff_refs") or {}
        anchor: dict[str, Any] = {
            "position_type": "text",
            "base_sha": refs.get("base_sha"),
            "start_sha": refs.get("start_sha"),
            "head_sha": refs.get("head_sha"),
            "new_path": position.file_path,
            "old_path": position.old_path or position.file_path,
        }
        if position.new_line is not None:
            anchor["new_line"] = position.new_line
        if position.old_line is not None:
            anchor["old_line"] = position.old_line

        discussion = await self.transport.request(
            "POST",
            f"{path}/discussions",
            json={"body": body, "position": anchor},
        )
        return comment_from_gitlab_note(discussion["notes"][0])

    async def delete_comment(self, item_id: Any, project_id: Any, comment_id: Any) -> None:
        """
        Delete a note.

        Raises:
            NotFoundError: If GitLab reports 404
        """
        await self.transport.request("DELETE", f"{self._mr_path(project_id, item_id)}/notes/{comment_id}")
