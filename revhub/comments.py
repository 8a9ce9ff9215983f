"""
Comment and transaction normalization.

GitLab exposes a flat list of notes; Phabricator exposes a transaction
stream where comments are mixed with status changes, reviewer edits and
other metadata. Both end up as a ``CommentThread``: comments ordered by
``created_at`` then ``id``, plus the inline subset.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from revhub.logging import get_logger
from revhub.timestamps import iso_to_epoch_ms, seconds_to_epoch_ms
from revhub.types.revisions import Author, Comment, CommentPosition, CommentThread

logger = get_logger("normalize")

COMMENT_TRANSACTION_TYPES = frozenset({"comment", "inline"})

IdentityLookup = Callable[[list[str]], Awaitable[dict[str, Author]]]


class IdentityCache:
    """
    Per-call cache of platform identities (PHID -> Author).

    One instance is created for each aggregation or detail call and thrown
    away afterwards; it is never shared between callers. Unknown identities
    are fetched in one batched lookup, and misses are remembered so they
    are not requested twice.

    Example:
        ```python
        cache = IdentityCache(phabricator.resolve_authors)
        authors = await cache.resolve_many(["PHID-USER-1", "PHID-USER-2"])
        ```
    """

    def __init__(
        self,
        lookup: IdentityLookup,
        seed: dict[str, Author] | None = None,
    ) -> None:
        self._lookup = lookup
        self._known: dict[str, Author | None] = dict(seed or {})
        self._lock = asyncio.Lock()
        self.lookup_count = 0

    def __contains__(self, key: str) -> bool:
        return key in self._known

    def get(self, key: str) -> Author | None:
        """Return a cached identity without touching the network."""
        return self._known.get(key)

    async def resolve_many(self, keys: Iterable[str | None]) -> dict[str, Author | None]:
        """
        Resolve identities, fetching only the ones not seen before.

        Args:
            keys: Identity keys; duplicates and empty values are ignored

        Returns:
            Mapping of every requested key to its Author, or None when the
            platform does not know it
        """
        wanted = [key for key in dict.fromkeys(keys) if key]

        async with self._lock:
            missing = [key for key in wanted if key not in self._known]
            if missing:
                self.lookup_count += 1
                found = await self._lookup(missing)
                for key in missing:
                    self._known[key] = found.get(key)

        return {key: self._known.get(key) for key in wanted}


def _id_sort_key(value: Any) -> tuple[int, int, str]:
    if isinstance(value, int):
        return (0, value, "")
    try:
        return (0, int(value), "")
    except (TypeError, ValueError):
        return (1, 0, str(value))


def sort_comments(comments: Iterable[Comment]) -> list[Comment]:
    """Order by ``created_at`` ascending, ``id`` ascending on ties."""
    return sorted(comments, key=lambda c: (c.created_at, _id_sort_key(c.id)))


def build_thread(comments: Iterable[Comment]) -> CommentThread:
    ordered = sort_comments(comments)
    return CommentThread(
        comments=ordered,
        inline_comments=[comment for comment in ordered if comment.is_inline],
    )


# ============================================================================
# GitLab
# ============================================================================


def gitlab_author(raw: dict[str, Any] | None) -> Author:
    raw = raw or {}
    return Author(
        name=raw.get("name") or "Unknown",
        username=raw.get("username"),
        platform_id=raw.get("id"),
    )


def _gitlab_position(note: dict[str, Any]) -> CommentPosition | None:
    position = note.get("position")
    if note.get("type") != "DiffNote" or not position:
        return None

    if position.get("new_line") is not None:
        return CommentPosition(
            file_path=position.get("new_path") or position.get("old_path") or "",
            line_number=position.get("new_line"),
            side="new",
        )
    return CommentPosition(
        file_path=position.get("old_path") or position.get("new_path") or "",
        line_number=position.get("old_line"),
        side="old",
    )


def comment_from_gitlab_note(note: dict[str, Any]) -> Comment:
    return Comment(
        id=note["id"],
        author=gitlab_author(note.get("author")),
        body=note.get("body") or "",
        created_at=iso_to_epoch_ms(note.get("created_at")),
        position=_gitlab_position(note),
    )


def normalize_gitlab_notes(notes: Iterable[dict[str, Any]]) -> CommentThread:
    """
    Normalize a merge request's notes.

    System notes ("added 1 commit", "approved this merge request") are not
    comments and are dropped.

    Args:
        notes: Raw notes from ``GET .../merge_requests/:iid/notes``

    Returns:
        Ordered comment thread
    """
    comments = [comment_from_gitlab_note(note) for note in notes if not note.get("system")]
    return build_thread(comments)


# ============================================================================
# Phabricator
# ============================================================================


def phabricator_author(raw_user: dict[str, Any]) -> Author:
    """Map a ``user.search`` record."""
    fields = raw_user.get("fields") or {}
    return Author(
        name=fields.get("realName") or fields.get("username") or "Unknown",
        username=fields.get("username"),
        platform_id=raw_user.get("phid"),
    )


def _transaction_text(transaction: dict[str, Any]) -> str:
    for comment in transaction.get("comments") or []:
        if comment.get("removed"):
            continue
        raw = (comment.get("content") or {}).get("raw")
        if raw and raw.strip():
            return raw
    return ""


def is_comment_transaction(transaction: dict[str, Any]) -> bool:
    """True for comment/inline transactions that carry text."""
    return transaction.get("type") in COMMENT_TRANSACTION_TYPES and bool(_transaction_text(transaction))


def _phabricator_position(transaction: dict[str, Any]) -> CommentPosition | None:
    if transaction.get("type") != "inline":
        return None
    fields = transaction.get("fields") or {}
    if not fields.get("path"):
        return None
    return CommentPosition(
        file_path=fields["path"],
        line_number=fields.get("line"),
        side="new" if fields.get("isNewFile", True) else "old",
    )


async def normalize_phabricator_transactions(
    transactions: Iterable[dict[str, Any]],
    identities: IdentityCache,
) -> CommentThread:
    """
    Flatten a ``transaction.search`` stream into comments.

    Metadata-only transactions (status changes, reviewer updates, empty
    comments) are rejected. Authors are resolved through ``identities`` in
    a single batched lookup for the whole stream.

    Args:
        transactions: Raw transactions for one revision
        identities: Identity cache scoped to the current call

    Returns:
        Ordered comment thread
    """
    kept = [tx for tx in transactions if is_comment_transaction(tx)]
    authors = await identities.resolve_many(tx.get("authorPHID") for tx in kept)

    comments = []
    for tx in kept:
        author_phid = tx.get("authorPHID")
        author = authors.get(author_phid) if author_phid else None
        if author is None:
            logger.debug("Unresolved comment author %s", author_phid)
            author = Author(name="Unknown", platform_id=author_phid)
        comments.append(
            Comment(
                id=tx["id"],
                author=author,
                body=_transaction_text(tx),
                created_at=seconds_to_epoch_ms(tx.get("dateCreated")),
                position=_phabricator_position(tx),
            )
        )

    return build_thread(comments)
