"""revhub testing utilities.

Provides in-memory adapters, raw payload factories and fixtures for testing
applications that use revhub.
"""

from revhub.testing.fixtures import (
    GITLAB_URL,
    PHABRICATOR_URL,
    create_gitlab_change,
    create_gitlab_merge_request,
    create_gitlab_note,
    create_gitlab_project,
    create_gitlab_user,
    create_phabricator_repository,
    create_phabricator_revision,
    create_phabricator_transaction,
    create_phabricator_user,
    create_project,
)
from revhub.testing.mock import MockCall, MockGitLabClient, MockPhabricatorClient, MockResponse

__all__ = [
    # Mock adapters
    "MockGitLabClient",
    "MockPhabricatorClient",
    "MockCall",
    "MockResponse",
    # Payload factories
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
