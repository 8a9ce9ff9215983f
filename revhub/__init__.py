"""revhub - aggregate GitLab merge requests and Phabricator revisions."""

from revhub.client import AsyncRevHubClient
from revhub.clients import GitLabClient, PhabricatorClient, ProjectFilter
from revhub.diff import parse_diff
from revhub.exceptions import (
    ApiError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    NotFoundError,
    RateLimitedError,
    RevHubError,
    ServerError,
    TransportError,
    UnresolvedProjectError,
    UnsupportedOperationError,
    ValidationError,
)
from revhub.filters import RevisionFilter, UserGroup, filter_by_user_group, unique_authors, unique_projects
from revhub.logging import configure_logging, get_logger
from revhub.normalize import dedupe_revisions, extract_jira_id, sort_revisions
from revhub.orchestrator import ProjectCache, RevisionAggregator, RevisionScope, StaticProjectCache
from revhub.status import StatusPresentation, present_status
from revhub.transport import Credentials, RetryConfig
from revhub.types import (
    AggregationResult,
    Author,
    Comment,
    CommentPosition,
    DiffFile,
    NewCommentPosition,
    Project,
    Reviewer,
    Revision,
    RevisionDetail,
    Source,
    SourceError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Main Client
    "AsyncRevHubClient",
    "RevisionAggregator",
    "RevisionScope",
    "ProjectCache",
    "StaticProjectCache",
    # Adapters
    "GitLabClient",
    "PhabricatorClient",
    "ProjectFilter",
    # Models
    "AggregationResult",
    "Author",
    "Comment",
    "CommentPosition",
    "DiffFile",
    "NewCommentPosition",
    "Project",
    "Reviewer",
    "Revision",
    "RevisionDetail",
    "Source",
    "SourceError",
    # Helpers
    "parse_diff",
    "extract_jira_id",
    "dedupe_revisions",
    "sort_revisions",
    "RevisionFilter",
    "UserGroup",
    "filter_by_user_group",
    "unique_authors",
    "unique_projects",
    "StatusPresentation",
    "present_status",
    # Exceptions
    "RevHubError",
    "ConfigurationError",
    "TransportError",
    "ApiError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "RateLimitedError",
    "ServerError",
    "ValidationError",
    "UnresolvedProjectError",
    "UnsupportedOperationError",
    # Transport
    "Credentials",
    "RetryConfig",
    # Logging
    "configure_logging",
    "get_logger",
]
