"""Phabricator (Conduit) client.

Conduit methods are called as ``POST <base_url>/api/<method>`` with a
form-encoded body; nested parameters use PHP-style bracket keys and the
token travels in the ``api.token`` field. Errors come back as HTTP 200 with
an ``error_code`` in the envelope.
"""

from typing import Any

import httpx

from revhub.clients.base import ProjectFilter, SourceClient, validate_comment
from revhub.comments import phabricator_author
from revhub.exceptions import ApiError, AuthenticationError, NotFoundError, UnsupportedOperationError
from revhub.logging import get_logger
from revhub.timestamps import now_epoch_ms
from revhub.transport import AsyncHTTPTransport, Credentials, RetryConfig
from revhub.types.revisions import Author, Comment, CommentPosition, NewCommentPosition, Project, Source

logger = get_logger("phabricator")

NEEDS_ATTENTION_STATUSES = ("needs-review", "needs-revision", "accepted")


def flatten_params(value: Any, prefix: str = "") -> dict[str, str]:
    """
    Flatten nested parameters into bracket notation.

    ``{"constraints": {"ids": [1, 2]}}`` becomes
    ``{"constraints[ids][0]": "1", "constraints[ids][1]": "2"}``.
    """
    if isinstance(value, dict):
        items: Any = value.items()
    elif isinstance(value, (list, tuple)):
        items = enumerate(value)
    else:
        if isinstance(value, bool):
            return {prefix: "true" if value else "false"}
        return {prefix: "" if value is None else str(value)}

    flat: dict[str, str] = {}
    for key, item in items:
        flat.update(flatten_params(item, f"{prefix}[{key}]" if prefix else str(key)))
    return flat


def project_from_phabricator(raw: dict[str, Any], base_url: str) -> Project:
    """Map a ``diffusion.repository.search`` record."""
    fields = raw.get("fields") or {}
    name = fields.get("name") or ""
    return Project(
        id=raw["id"],
        name=name,
        path_with_namespace=fields.get("shortName") or fields.get("callsign") or name,
        url=f"{base_url}/diffusion/{raw['id']}",
        source=Source.PHABRICATOR,
        phid=raw.get("phid"),
    )


def _revision_number(item_id: Any) -> int:
    # Accept "D123" as well as 123
    text = str(item_id)
    if text[:1] in ("D", "d"):
        text = text[1:]
    return int(text)


class PhabricatorClient(SourceClient):
    """
    Async client for Phabricator differential revisions.

    Example:
        ```python
        from revhub.clients import PhabricatorClient
        from revhub.transport import Credentials

        async with PhabricatorClient(Credentials("https://phab.example.com", token)) as phab:
            revisions = await phab.list_open_items()
        ```
    """

    source = Source.PHABRICATOR

    DEFAULT_MAX_PAGES = 50

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        max_pages: int = DEFAULT_MAX_PAGES,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Phabricator client.

        Args:
            credentials: Instance URL and Conduit API token
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            max_pages: Upper bound on cursor pages read by search calls
            http_transport: Optional httpx transport (tests)
        """
        self.base_url = credentials.root_url
        self.max_pages = max_pages
        self._token = credentials.token
        self._me: Author | None = None
        self.transport = AsyncHTTPTransport(
            base_url=f"{self.base_url}/api",
            headers={"Accept": "application/json"},
            timeout=timeout,
            retry_config=retry_config,
            http_transport=http_transport,
        )

    async def close(self) -> None:
        await self.transport.close()

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Call a Conduit method and unwrap its ``result``.

        Args:
            method: Conduit method name, e.g. ``differential.revision.search``
            params: Method parameters (nested dicts/lists allowed)

        Returns:
            The envelope's ``result`` value

        Raises:
            ApiError: If the HTTP call fails or Conduit reports an error_code
        """
        form = flatten_params({**(params or {}), "api.token": self._token})
        envelope = await self.transport.request("POST", f"/{method}", data=form)

        if not isinstance(envelope, dict):
            raise ApiError(200, f"Unexpected response from {method}")

        error_code = envelope.get("error_code")
        if error_code:
            message = f"{error_code}: {envelope.get('error_info') or 'unknown error'}"
            if error_code == "ERR-INVALID-AUTH":
                raise AuthenticationError(200, message, error_code)
            raise ApiError(200, message, error_code)

        return envelope.get("result")

    async def _search(
        self,
        method: str,
        constraints: dict[str, Any] | None = None,
        attachments: dict[str, Any] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a ``*.search`` method, following the ``after`` cursor."""
        params: dict[str, Any] = dict(extra or {})
        if constraints:
            params["constraints"] = constraints
        if attachments:
            params["attachments"] = attachments

        items: list[dict[str, Any]] = []
        for _ in range(self.max_pages):
            result = await self.call(method, params) or {}
            items.extend(result.get("data") or [])
            after = (result.get("cursor") or {}).get("after")
            if not after:
                return items
            params["after"] = after

        logger.warning("Stopped paging %s after %d pages", method, self.max_pages)
        return items

    # ------------------------------------------------------------------
    # Users and repositories
    # ------------------------------------------------------------------

    async def whoami(self) -> Author:
        """Return the token owner; cached on this client."""
        if self._me is None:
            me = await self.call("user.whoami") or {}
            self._me = Author(
                name=me.get("realName") or me.get("userName") or "Unknown",
                username=me.get("userName"),
                platform_id=me.get("phid"),
            )
        return self._me

    async def search_users(self, phids: list[str]) -> list[dict[str, Any]]:
        if not phids:
            return []
        return await self._search("user.search", {"phids": list(phids)})

    async def resolve_authors(self, phids: list[str]) -> dict[str, Author]:
        """Resolve user PHIDs in one call. Unknown PHIDs are absent from the result."""
        users = await self.search_users(phids)
        return {user["phid"]: phabricator_author(user) for user in users if user.get("phid")}

    async def search_repositories(self, phids: list[str] | None = None) -> list[Project]:
        constraints = {"phids": list(phids)} if phids else None
        repositories = await self._search("diffusion.repository.search", constraints)
        return [project_from_phabricator(raw, self.base_url) for raw in repositories]

    async def list_projects(self, filter: ProjectFilter | None = None) -> list[Project]:
        """List repositories. Conduit has no membership roles, so ``filter`` is ignored."""
        return await self.search_repositories()

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    async def list_open_items(self, project_id: Any = None) -> list[dict[str, Any]]:
        """
        List every revision needing attention.

        Results are global (needs-review, needs-revision and accepted
        revisions across all repositories); ``project_id`` is ignored.
        """
        return await self._search(
            "differential.revision.search",
            {"statuses": list(NEEDS_ATTENTION_STATUSES)},
        )

    async def get_item_by_id(self, item_id: Any, project_id: Any = None) -> dict[str, Any]:
        """
        Fetch one revision with its reviewers attached.

        Raises:
            NotFoundError: If no revision has this id
        """
        revisions = await self._search(
            "differential.revision.search",
            {"ids": [_revision_number(item_id)]},
            {"reviewers": True},
        )
        if not revisions:
            raise NotFoundError(f"Revision D{_revision_number(item_id)} not found")
        return revisions[0]

    async def get_diff(self, item_id: Any, project_id: Any = None) -> str:
        """
        Return the raw unified diff of the revision's active diff.

        A revision without a diff yet gives an empty string.
        """
        revision = await self.get_item_by_id(item_id)
        return await self.get_raw_diff((revision.get("fields") or {}).get("diffPHID"))

    async def get_raw_diff(self, diff_phid: str | None) -> str:
        """Return the raw unified diff for a diff PHID (``""`` when there is none)."""
        if not diff_phid:
            return ""

        diffs = await self._search("differential.diff.search", {"phids": [diff_phid]})
        if not diffs:
            raise NotFoundError(f"Diff {diff_phid} not found")

        raw = await self.call("differential.getrawdiff", {"diffID": diffs[0]["id"]})
        return raw or ""

    async def get_comments(self, item_id: Any, project_id: Any = None) -> list[dict[str, Any]]:
        """Return the revision's transaction stream (comments and metadata mixed)."""
        return await self._search("transaction.search", extra={"objectIdentifier": f"D{_revision_number(item_id)}"})

    async def post_comment(
        self,
        item_id: Any,
        project_id: Any,
        body: str,
        position: NewCommentPosition | None = None,
    ) -> Comment:
        """
        Post a comment on a revision.

        General comments are applied with a ``comment`` transaction.
        Inline comments are created with ``differential.createinline`` and
        become visible to others once the author next submits on the
        revision.

        Raises:
            ValidationError: If the body or position is malformed
        """
        validate_comment(body, position)
        revision_id = _revision_number(item_id)
        author = await self.whoami()

        if position is None:
            result = await self.call(
                "differential.revision.edit",
                {
                    "objectIdentifier": f"D{revision_id}",
                    "transactions": [{"type": "comment", "value": body}],
                },
            ) or {}
            transactions = result.get("transactions") or [{}]
            return Comment(
                id=transactions[0].get("phid") or "",
                author=author,
                body=body,
                created_at=now_epoch_ms(),
            )

        is_new_file = position.new_line is not None
        line = position.new_line if is_new_file else position.old_line
        inline = await self.call(
            "differential.createinline",
            {
                "revisionID": revision_id,
                "filePath": position.file_path,
                "isNewFile": is_new_file,
                "lineNumber": line,
                "content": body,
            },
        ) or {}
        return Comment(
            id=inline.get("id") or "",
            author=author,
            body=body,
            created_at=now_epoch_ms(),
            position=CommentPosition(
                file_path=position.file_path,
                line_number=line,
                side="new" if is_new_file else "old",
            ),
        )

    async def delete_comment(self, item_id: Any, project_id: Any, comment_id: Any) -> None:
        """Conduit offers no way to delete published comments."""
        raise UnsupportedOperationError("Phabricator does not support deleting comments")
