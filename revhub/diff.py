"""Split a raw unified diff into per-file sections.

Phabricator's ``differential.getrawdiff`` returns one text blob for the whole
revision; GitLab hands out structured file lists and never goes through here.
"""

import re

from revhub.types.revisions import DiffFile

DIFF_HEADER = "diff --git "

_HEADER_RE = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+?)\s*$")


def parse_header(line: str) -> tuple[str, str]:
    """Return ``(old_path, new_path)`` from a ``diff --git`` header line."""
    match = _HEADER_RE.match(line)
    if match:
        return match.group("old"), match.group("new")

    # Headers without a/ b/ prefixes (diff.noprefix) still carry two paths
    parts = line[len(DIFF_HEADER):].split()
    if len(parts) >= 2:
        return parts[0], parts[-1]
    path = parts[0] if parts else ""
    return path, path


def parse_diff(text: str | None) -> list[DiffFile]:
    """
    Parse a raw multi-file diff into ``DiffFile`` records.

    Every line after a header, up to the next header or the end of input,
    belongs to that header's file; line endings are kept so the sections
    concatenate back into the input minus the header lines. Text before
    the first header is ignored. A blob without headers yields ``[]``.

    The raw format carries no reliable per-file flags, so new, renamed and
    deleted are all reported as ``False``.

    Args:
        text: Raw diff text (``None`` is treated as empty)

    Returns:
        Files in the order they appear in the diff
    """
    if not text:
        return []

    files: list[DiffFile] = []
    current: tuple[str, str] | None = None
    body: list[str] = []

    for line in _split_lines(text):
        if line.startswith(DIFF_HEADER):
            if current is not None:
                files.append(_build(current, body))
            current = parse_header(line.rstrip("\r\n"))
            body = []
        elif current is not None:
            body.append(line)

    if current is not None:
        files.append(_build(current, body))

    return files


def _split_lines(text: str) -> list[str]:
    # Split on "\n" only and keep it; "\r" and other separators stay in the line
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def _build(paths: tuple[str, str], body: list[str]) -> DiffFile:
    old_path, new_path = paths
    return DiffFile(old_path=old_path, new_path=new_path, diff_text="".join(body))


def diff_file_from_gitlab(change: dict) -> DiffFile:
    """Map one entry of GitLab's ``changes`` list; flags come from the payload."""
    return DiffFile(
        old_path=change.get("old_path") or "",
        new_path=change.get("new_path") or "",
        diff_text=change.get("diff") or "",
        is_new_file=bool(change.get("new_file")),
        is_renamed_file=bool(change.get("renamed_file")),
        is_deleted_file=bool(change.get("deleted_file")),
    )
