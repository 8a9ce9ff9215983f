"""revhub platform adapters."""

from revhub.clients.base import ACCESS_LEVEL_ROLES, DEFAULT_ROLES, ProjectFilter, SourceClient, role_name
from revhub.clients.gitlab import GitLabClient
from revhub.clients.phabricator import PhabricatorClient

__all__ = [
    "ACCESS_LEVEL_ROLES",
    "DEFAULT_ROLES",
    "GitLabClient",
    "PhabricatorClient",
    "ProjectFilter",
    "SourceClient",
    "role_name",
]
