"""Interface shared by the platform adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from revhub.exceptions import ValidationError
from revhub.types.revisions import Comment, NewCommentPosition, Project, Source

# GitLab membership access levels
ACCESS_LEVEL_ROLES = {
    10: "guest",
    20: "reporter",
    30: "developer",
    40: "maintainer",
    50: "owner",
}

DEFAULT_ROLES = frozenset({"developer", "maintainer", "owner"})


def role_name(access_level: int | None) -> str | None:
    if access_level is None:
        return None
    return ACCESS_LEVEL_ROLES.get(access_level)


@dataclass(frozen=True)
class ProjectFilter:
    """Which projects ``list_projects`` keeps.

    ``roles=None`` disables role filtering (starred projects may be ones
    the caller is not a member of).
    """

    roles: frozenset[str] | None = field(default=DEFAULT_ROLES)
    starred: bool = False

    @classmethod
    def starred_only(cls) -> "ProjectFilter":
        return cls(roles=None, starred=True)

    def accepts(self, project: Project) -> bool:
        if self.roles is None:
            return True
        return role_name(project.access_level) in self.roles


def validate_comment(body: str, position: NewCommentPosition | None) -> None:
    """
    Reject malformed comment input before anything is sent.

    Raises:
        ValidationError: If the body is blank, or the position lacks a file
            path or both line numbers
    """
    if not body or not body.strip():
        raise ValidationError("Comment body must not be empty")
    if position is None:
        return
    if not position.file_path:
        raise ValidationError("Inline comment position requires file_path")
    if position.new_line is None and position.old_line is None:
        raise ValidationError("Inline comment position requires new_line or old_line")


class SourceClient(ABC):
    """
    Authenticated access to one review platform.

    Methods return platform-native payloads (except where noted) and raise
    typed errors; they never degrade to empty results on failure.
    """

    source: Source

    @abstractmethod
    async def list_projects(self, filter: ProjectFilter | None = None) -> list[Project]:
        """List the projects/repositories visible to the caller."""

    @abstractmethod
    async def list_open_items(self, project_id: Any = None) -> list[dict[str, Any]]:
        """List open review items, scoped to a project where the platform needs one."""

    @abstractmethod
    async def get_item_by_id(self, item_id: Any, project_id: Any = None) -> dict[str, Any]:
        """Fetch one review item."""

    @abstractmethod
    async def get_diff(self, item_id: Any, project_id: Any = None) -> Any:
        """Fetch the item's diff in the platform's own representation."""

    @abstractmethod
    async def get_comments(self, item_id: Any, project_id: Any = None) -> list[dict[str, Any]]:
        """Fetch the item's raw activity (notes or transactions)."""

    @abstractmethod
    async def post_comment(
        self,
        item_id: Any,
        project_id: Any,
        body: str,
        position: NewCommentPosition | None = None,
    ) -> Comment:
        """Create a general or inline comment."""

    @abstractmethod
    async def delete_comment(self, item_id: Any, project_id: Any, comment_id: Any) -> None:
        """Delete a comment."""

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "SourceClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
