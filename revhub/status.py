"""Display labels for platform status strings.

Statuses stay opaque on ``Revision``; this table is for presentation only.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class StatusPresentation:
    label: str
    tone: str  # "positive", "negative", "warning", "neutral" or "inactive"


UNKNOWN_STATUS = StatusPresentation("Unknown", "neutral")

STATUS_PRESENTATIONS: dict[str, StatusPresentation] = {
    # GitLab detailed_merge_status
    "requested_changes": StatusPresentation("Changes requested", "negative"),
    "not_approved": StatusPresentation("Waiting on approval", "warning"),
    "approved": StatusPresentation("Approved", "positive"),
    "unchecked": StatusPresentation("Unchecked", "warning"),
    "mergeable": StatusPresentation("Mergeable", "positive"),
    "conflict": StatusPresentation("Conflict", "negative"),
    "need_rebase": StatusPresentation("Need rebase", "warning"),
    "broken_status": StatusPresentation("Broken status", "neutral"),
    # Phabricator revision status
    "accepted": StatusPresentation("Approved", "positive"),
    "needs-review": StatusPresentation("Unchecked", "warning"),
    "needs-revision": StatusPresentation("Changes requested", "negative"),
    "abandoned": StatusPresentation("Abandoned", "inactive"),
}


def present_status(status: str | None) -> StatusPresentation:
    """Look up a status; unknown or missing statuses get ``UNKNOWN_STATUS``."""
    if not status:
        return UNKNOWN_STATUS
    return STATUS_PRESENTATIONS.get(status, UNKNOWN_STATUS)
