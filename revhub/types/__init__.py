"""revhub type definitions.

This module exports all data model types used by the package.
"""

from revhub.types.revisions import (
    AggregationResult,
    Author,
    Comment,
    CommentPosition,
    CommentThread,
    DiffFile,
    NewCommentPosition,
    Project,
    Reviewer,
    Revision,
    RevisionDetail,
    Source,
    SourceError,
)

__all__ = [
    "Source",
    # Entities
    "Author",
    "Project",
    "Revision",
    "DiffFile",
    "Comment",
    "CommentPosition",
    "NewCommentPosition",
    "Reviewer",
    # Results
    "CommentThread",
    "SourceError",
    "AggregationResult",
    "RevisionDetail",
]
