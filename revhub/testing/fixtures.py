"""
Pytest fixtures and raw payload factories for revhub testing.

The factories build platform-shaped dicts (what the adapters return), so
tests exercise the same normalization paths as production code.
"""

from collections.abc import Generator
from typing import Any

import pytest

from revhub.orchestrator import RevisionAggregator
from revhub.testing.mock import MockGitLabClient, MockPhabricatorClient
from revhub.types.revisions import Project, Source

GITLAB_URL = "https://gitlab.example.com"
PHABRICATOR_URL = "https://phab.example.com"


# ============================================================================
# GitLab payloads
# ============================================================================


def create_gitlab_project(
    project_id: int = 1,
    path_with_namespace: str | None = None,
    access_level: int | None = 30,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create a raw ``GET /projects`` record.

    Args:
        project_id: Project id
        path_with_namespace: Defaults to ``group/project-<id>``
        access_level: Project membership access level (None for no membership)
        **kwargs: Additional fields to override

    Returns:
        Raw project dict
    """
    path = path_with_namespace or f"group/project-{project_id}"
    raw = {
        "id": project_id,
        "name": path.rsplit("/", 1)[-1],
        "path_with_namespace": path,
        "web_url": f"{GITLAB_URL}/{path}",
        "permissions": {
            "project_access": None if access_level is None else {"access_level": access_level},
            "group_access": None,
        },
    }
    raw.update(kwargs)
    return raw


def create_project(
    project_id: int = 1,
    path_with_namespace: str | None = None,
    access_level: int | None = 30,
) -> Project:
    """Create a GitLab ``Project`` as a project cache would hold it."""
    path = path_with_namespace or f"group/project-{project_id}"
    return Project(
        id=project_id,
        name=path.rsplit("/", 1)[-1],
        path_with_namespace=path,
        url=f"{GITLAB_URL}/{path}",
        source=Source.GITLAB,
        access_level=access_level,
    )


def create_gitlab_user(user_id: int = 7, username: str = "jdoe", name: str = "Jane Doe") -> dict[str, Any]:
    return {"id": user_id, "username": username, "name": name}


def create_gitlab_merge_request(
    mr_id: int = 101,
    iid: int = 1,
    project_id: int = 1,
    title: str = "[ABC-1] Add login form",
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create a raw merge request record.

    Args:
        mr_id: Instance-wide merge request id
        iid: Per-project merge request number
        project_id: Owning project id
        title: Merge request title
        **kwargs: Additional fields to override

    Returns:
        Raw merge request dict
    """
    raw = {
        "id": mr_id,
        "iid": iid,
        "project_id": project_id,
        "title": title,
        "description": "Adds the login form",
        "state": "opened",
        "detailed_merge_status": "mergeable",
        "web_url": f"{GITLAB_URL}/group/project-{project_id}/-/merge_requests/{iid}",
        "author": create_gitlab_user(),
        "updated_at": "2024-01-15T10:30:00.000Z",
        "work_in_progress": False,
        "draft": False,
        "source_branch": "feature/login",
        "reviewers": [],
        "diff_refs": {"base_sha": "aaa111", "start_sha": "bbb222", "head_sha": "ccc333"},
    }
    raw.update(kwargs)
    return raw


def create_gitlab_change(
    new_path: str = "src/app.py",
    old_path: str | None = None,
    diff: str = "@@ -1 +1 @@\n-old\n+new\n",
    **kwargs: Any,
) -> dict[str, Any]:
    raw = {
        "old_path": old_path or new_path,
        "new_path": new_path,
        "diff": diff,
        "new_file": False,
        "renamed_file": False,
        "deleted_file": False,
    }
    raw.update(kwargs)
    return raw


def create_gitlab_note(
    note_id: int = 300,
    body: str = "Looks good",
    created_at: str = "2024-01-15T11:00:00.000Z",
    position: dict[str, Any] | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create a raw note; passing ``position`` makes it a ``DiffNote``.

    Args:
        note_id: Note id
        body: Note text
        created_at: ISO-8601 timestamp
        position: GitLab position dict (new_path/new_line, old_path/old_line)
        **kwargs: Additional fields to override

    Returns:
        Raw note dict
    """
    raw = {
        "id": note_id,
        "type": "DiffNote" if position else None,
        "body": body,
        "author": create_gitlab_user(),
        "created_at": created_at,
        "system": False,
        "position": position,
    }
    raw.update(kwargs)
    return raw


# ============================================================================
# Phabricator payloads
# ============================================================================


def create_phabricator_user(
    phid: str = "PHID-USER-alice",
    username: str = "alice",
    real_name: str = "Alice Liddell",
) -> dict[str, Any]:
    return {"id": 1, "phid": phid, "fields": {"username": username, "realName": real_name}}


def create_phabricator_repository(
    repo_id: int = 5,
    phid: str = "PHID-REPO-core",
    name: str = "Core",
    short_name: str = "core",
) -> dict[str, Any]:
    return {
        "id": repo_id,
        "phid": phid,
        "fields": {"name": name, "shortName": short_name, "callsign": short_name.upper()},
    }


def create_phabricator_revision(
    revision_id: int = 42,
    author_phid: str = "PHID-USER-alice",
    repository_phid: str | None = "PHID-REPO-core",
    title: str = "[CORE-7] Speed up indexing",
    status: str = "needs-review",
    **fields: Any,
) -> dict[str, Any]:
    """
    Create a raw ``differential.revision.search`` record.

    Args:
        revision_id: Revision number (the ``D`` id)
        author_phid: Author PHID
        repository_phid: Repository PHID
        title: Revision title
        status: Status value
        **fields: Additional ``fields`` entries to override

    Returns:
        Raw revision dict
    """
    record_fields = {
        "title": title,
        "summary": "Indexing is slow",
        "authorPHID": author_phid,
        "repositoryPHID": repository_phid,
        "diffPHID": f"PHID-DIFF-{revision_id}",
        "status": {"value": status, "name": status.replace("-", " ").title()},
        "dateModified": 1705314600,
        "isDraft": False,
    }
    record_fields.update(fields)
    return {
        "id": revision_id,
        "phid": f"PHID-DREV-{revision_id}",
        "fields": record_fields,
        "attachments": {"reviewers": {"reviewers": []}},
    }


def create_phabricator_transaction(
    transaction_id: int = 900,
    author_phid: str = "PHID-USER-alice",
    text: str = "Please add a test",
    date_created: int = 1705315000,
    transaction_type: str = "comment",
    path: str | None = None,
    line: int | None = None,
    is_new_file: bool = True,
) -> dict[str, Any]:
    """Create a raw ``transaction.search`` record; ``path`` makes it inline."""
    raw: dict[str, Any] = {
        "id": transaction_id,
        "phid": f"PHID-XACT-{transaction_id}",
        "type": "inline" if path else transaction_type,
        "authorPHID": author_phid,
        "dateCreated": date_created,
        "comments": [{"id": transaction_id, "removed": False, "content": {"raw": text}}] if text else [],
        "fields": {},
    }
    if path:
        raw["fields"] = {"path": path, "line": line, "length": 1, "isNewFile": is_new_file}
    return raw


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_gitlab() -> Generator[MockGitLabClient, None, None]:
    """
    Provide an empty MockGitLabClient.

    Example:
        ```python
        async def test_my_feature(mock_gitlab):
            mock_gitlab.add_project(create_project(1), [create_gitlab_merge_request()])
            ...
            assert mock_gitlab.was_called("list_open_items")
        ```
    """
    client = MockGitLabClient()
    yield client
    client.reset()


@pytest.fixture
def mock_phabricator() -> Generator[MockPhabricatorClient, None, None]:
    """Provide an empty MockPhabricatorClient."""
    client = MockPhabricatorClient()
    yield client
    client.reset()


@pytest.fixture
def aggregator(mock_gitlab: MockGitLabClient, mock_phabricator: MockPhabricatorClient) -> RevisionAggregator:
    """Provide a RevisionAggregator wired to both mocks."""
    return RevisionAggregator(gitlab=mock_gitlab, phabricator=mock_phabricator)


@pytest.fixture
def sample_project() -> Project:
    return create_project(1)


@pytest.fixture
def sample_merge_request() -> dict[str, Any]:
    return create_gitlab_merge_request()


@pytest.fixture
def sample_phabricator_revision() -> dict[str, Any]:
    return create_phabricator_revision()


@pytest.fixture
def mock_phabricator_with_revision(mock_phabricator: MockPhabricatorClient) -> MockPhabricatorClient:
    """A MockPhabricatorClient holding D42 by Alice in the Core repository."""
    mock_phabricator.add_user(create_phabricator_user())
    mock_phabricator.add_repository(create_phabricator_repository())
    mock_phabricator.add_revision(create_phabricator_revision())
    return mock_phabricator


__all__ = [
    # Fixtures (exported for documentation, actual fixtures are auto-discovered)
    "aggregator",
    "mock_gitlab",
    "mock_phabricator",
    "mock_phabricator_with_revision",
    "sample_merge_request",
    "sample_phabricator_revision",
    "sample_project",
    # Factories
    "GITLAB_URL",
    "PHABRICATOR_URL",
    "create_gitlab_change",
    "create_gitlab_merge_request",
    "create_gitlab_note",
    "create_gitlab_project",
    "create_gitlab_user",
    "create_phabricator_repository",
    "create_phabricator_revision",
    "create_phabricator_transaction",
    "create_phabricator_user",
    "create_project",
]
