#!/usr/bin/env python3
"""
Basic revhub usage example.

Runs offline against the in-memory adapters from ``revhub.testing``; swap
them for ``AsyncRevHubClient.from_env()`` to talk to real instances.
Run with: python examples/basic_usage.py
"""

import asyncio

from revhub import (
    AsyncRevHubClient,
    RevHubError,
    RevisionFilter,
    RevisionScope,
    ServerError,
    configure_logging,
    present_status,
)
from revhub.testing import (
    MockGitLabClient,
    MockPhabricatorClient,
    create_gitlab_change,
    create_gitlab_merge_request,
    create_gitlab_note,
    create_phabricator_repository,
    create_phabricator_revision,
    create_phabricator_user,
    create_project,
)
from revhub.types import NewCommentPosition, Source


def build_gitlab() -> MockGitLabClient:
    gitlab = MockGitLabClient()
    gitlab.add_project(
        create_project(1, "team/api"),
        [create_gitlab_merge_request(101, 1, 1), create_gitlab_merge_request(102, 2, 1, "WIP tidy", draft=True)],
    )
    gitlab.add_project(create_project(2, "team/web"))
    gitlab.fail_project(2, ServerError(503, "Service Unavailable"))
    gitlab.set_changes(1, 1, [create_gitlab_change("src/login.py")])
    gitlab.set_notes(1, 1, [create_gitlab_note(300, "Needs a test")])
    return gitlab


def build_phabricator() -> MockPhabricatorClient:
    phabricator = MockPhabricatorClient()
    phabricator.add_user(create_phabricator_user())
    phabricator.add_repository(create_phabricator_repository())
    phabricator.add_revision(create_phabricator_revision(42))
    phabricator.set_raw_diff(42, "diff --git a/index.py b/index.py\n--- a/index.py\n+++ b/index.py\n@@ -1 +1 @@\n-a\n+b\n")
    return phabricator


async def main() -> None:
    configure_logging()
    print("=== revhub Basic Usage Example ===\n")

    async with AsyncRevHubClient(gitlab=build_gitlab(), phabricator=build_phabricator()) as client:
        # 1. Aggregate both platforms; one project fails without sinking the run
        print("1. Fetching open revisions...")
        result = await client.fetch_all_revisions(RevisionScope.all())
        for revision in result.revisions:
            status = present_status(revision.status)
            print(f"   [{revision.source.value}] {revision.title} ({status.label}) by {revision.author.name}")
        for error in result.errors:
            print(f"   failed: {error.source.value} scope={error.scope}: {error.message}")

        # 2. Narrow the list down client-side
        print("\n2. Filtering drafts...")
        for revision in RevisionFilter(drafts_only=True).apply(result.revisions):
            print(f"   draft: {revision.title}")

        # 3. Open one revision
        print("\n3. Fetching detail for D42...")
        detail = await client.fetch_revision_detail(Source.PHABRICATOR, "D42")
        print(f"   files: {[d.new_path for d in detail.diffs]}")

        # 4. Comment on a merge request
        print("\n4. Posting an inline comment...")
        try:
            comment = await client.post_comment(
                Source.GITLAB, 1, "Could this be a constant?", project_id=1,
                position=NewCommentPosition("src/login.py", new_line=1),
            )
            print(f"   posted comment {comment.id} on {comment.position.file_path}")
        except RevHubError as e:
            print(f"   could not comment: {e}")


if __name__ == "__main__":
    asyncio.run(main())
