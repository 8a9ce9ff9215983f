"""
Tests for the Phabricator (Conduit) adapter against a faked HTTP layer.
"""

from urllib.parse import parse_qs

import httpx
import pytest

from revhub.clients import PhabricatorClient
from revhub.clients.phabricator import flatten_params
from revhub.exceptions import ApiError, AuthenticationError, NotFoundError, UnsupportedOperationError, ValidationError
from revhub.testing import (
    create_phabricator_repository,
    create_phabricator_revision,
    create_phabricator_transaction,
    create_phabricator_user,
)
from revhub.transport import Credentials, RetryConfig
from revhub.types import NewCommentPosition, Source

CREDENTIALS = Credentials("https://phab.example.com", "api-abcdefghijklmnopqrstuvwxyz12")
FAST_RETRY = RetryConfig(backoff_base=0.0, jitter=0.0)


def ok(result) -> httpx.Response:
    return httpx.Response(200, json={"result": result, "error_code": None, "error_info": None})


def search_page(data, after=None) -> httpx.Response:
    return ok({"data": data, "cursor": {"after": after, "before": None, "limit": 100}})


def form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode(), keep_blank_values=True).items()}


def method(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1]


def make_client(handler, **kwargs) -> PhabricatorClient:
    return PhabricatorClient(
        CREDENTIALS,
        retry_config=FAST_RETRY,
        http_transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_flatten_params_uses_bracket_notation() -> None:
    flat = flatten_params(
        {
            "constraints": {"statuses": ["needs-review", "accepted"], "ids": [42]},
            "attachments": {"reviewers": True},
            "after": None,
        }
    )

    assert flat == {
        "constraints[statuses][0]": "needs-review",
        "constraints[statuses][1]": "accepted",
        "constraints[ids][0]": "42",
        "attachments[reviewers]": "true",
        "after": "",
    }


@pytest.mark.asyncio
async def test_list_open_items_sends_statuses_and_token() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return search_page([create_phabricator_revision(42)])

    async with make_client(handler) as client:
        revisions = await client.list_open_items()

    assert [r["id"] for r in revisions] == [42]
    sent = form(requests[0])
    assert requests[0].method == "POST"
    assert requests[0].url.path == "/api/differential.revision.search"
    assert sent["api.token"] == CREDENTIALS.token
    assert [sent[f"constraints[statuses][{i}]"] for i in range(3)] == ["needs-review", "needs-revision", "accepted"]


@pytest.mark.asyncio
async def test_search_follows_cursor() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(form(request))
        if "after" not in requests[-1]:
            return search_page([create_phabricator_revision(1)], after="1")
        return search_page([create_phabricator_revision(2)])

    async with make_client(handler) as client:
        revisions = await client.list_open_items()

    assert [r["id"] for r in revisions] == [1, 2]
    assert requests[1]["after"] == "1"


@pytest.mark.asyncio
async def test_conduit_error_envelope_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"result": None, "error_code": "ERR-CONDUIT-CORE", "error_info": "Unknown constraint"},
        )

    async with make_client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.list_open_items()

    assert exc_info.value.status == 200
    assert exc_info.value.error_code == "ERR-CONDUIT-CORE"
    assert "Unknown constraint" in exc_info.value.platform_message


@pytest.mark.asyncio
async def test_invalid_token_raises_authentication_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": None, "error_code": "ERR-INVALID-AUTH", "error_info": "bad"})

    async with make_client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.whoami()


@pytest.mark.asyncio
async def test_get_item_by_id_empty_result_is_not_found() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form(request))
        return search_page([])

    async with make_client(handler) as client:
        with pytest.raises(NotFoundError):
            await client.get_item_by_id("D404")

    assert seen[0]["constraints[ids][0]"] == "404"
    assert seen[0]["attachments[reviewers]"] == "true"


@pytest.mark.asyncio
async def test_get_diff_resolves_active_diff_then_raw_text() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(method(request))
        if method(request) == "differential.revision.search":
            return search_page([create_phabricator_revision(42)])
        if method(request) == "differential.diff.search":
            assert form(request)["constraints[phids][0]"] == "PHID-DIFF-42"
            return search_page([{"id": 1234, "phid": "PHID-DIFF-42"}])
        assert form(request)["diffID"] == "1234"
        return ok("diff --git a/x b/x\n+1\n")

    async with make_client(handler) as client:
        raw = await client.get_diff(42)

    assert raw == "diff --git a/x b/x\n+1\n"
    assert calls == ["differential.revision.search", "differential.diff.search", "differential.getrawdiff"]


@pytest.mark.asyncio
async def test_get_comments_uses_revision_identifier() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form(request))
        return search_page([create_phabricator_transaction()])

    async with make_client(handler) as client:
        transactions = await client.get_comments(42)

    assert len(transactions) == 1
    assert seen[0]["objectIdentifier"] == "D42"


@pytest.mark.asyncio
async def test_get_raw_diff_skips_revision_search() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(method(request))
        if method(request) == "differential.diff.search":
            return search_page([{"id": 1234, "phid": "PHID-DIFF-42"}])
        return ok("diff --git a/x b/x\n+1\n")

    async with make_client(handler) as client:
        assert await client.get_raw_diff("PHID-DIFF-42") == "diff --git a/x b/x\n+1\n"
        assert await client.get_raw_diff(None) == ""

    assert calls == ["differential.diff.search", "differential.getrawdiff"]


@pytest.mark.asyncio
async def test_get_comments_follows_cursor() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form(request))
        if "after" not in seen[-1]:
            return search_page([create_phabricator_transaction(1)], after="77")
        return search_page([create_phabricator_transaction(2)])

    async with make_client(handler) as client:
        transactions = await client.get_comments("D42")

    assert [t["id"] for t in transactions] == [1, 2]
    assert seen[1]["after"] == "77"
    assert all(s["objectIdentifier"] == "D42" for s in seen)


@pytest.mark.asyncio
async def test_resolve_authors_and_repositories() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if method(request) == "user.search":
            return search_page([create_phabricator_user()])
        return search_page([create_phabricator_repository()])

    async with make_client(handler) as client:
        authors = await client.resolve_authors(["PHID-USER-alice", "PHID-USER-ghost"])
        repositories = await client.search_repositories(["PHID-REPO-core"])

    assert list(authors) == ["PHID-USER-alice"]
    assert authors["PHID-USER-alice"].name == "Alice Liddell"
    assert repositories[0].source == Source.PHABRICATOR
    assert repositories[0].phid == "PHID-REPO-core"
    assert repositories[0].url == "https://phab.example.com/diffusion/5"


@pytest.mark.asyncio
async def test_post_general_comment_uses_edit_transaction() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen[method(request)] = form(request)
        if method(request) == "user.whoami":
            return ok({"phid": "PHID-USER-me", "userName": "me", "realName": "Me Myself"})
        return ok({"object": {"id": 42}, "transactions": [{"phid": "PHID-XACT-1"}]})

    async with make_client(handler) as client:
        comment = await client.post_comment("D42", None, "Looks good")

    edit = seen["differential.revision.edit"]
    assert edit["objectIdentifier"] == "D42"
    assert edit["transactions[0][type]"] == "comment"
    assert edit["transactions[0][value]"] == "Looks good"
    assert comment.id == "PHID-XACT-1"
    assert comment.author.name == "Me Myself"


@pytest.mark.asyncio
async def test_post_inline_comment_uses_createinline() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen[method(request)] = form(request)
        if method(request) == "user.whoami":
            return ok({"phid": "PHID-USER-me", "userName": "me", "realName": "Me Myself"})
        return ok({"id": "88", "phid": "PHID-XCMT-1"})

    async with make_client(handler) as client:
        comment = await client.post_comment(42, None, "why?", NewCommentPosition("lib/x.py", old_line=5))

    inline = seen["differential.createinline"]
    assert inline["revisionID"] == "42"
    assert inline["filePath"] == "lib/x.py"
    assert inline["isNewFile"] == "false"
    assert inline["lineNumber"] == "5"
    assert comment.position.side == "old"


@pytest.mark.asyncio
async def test_invalid_comment_and_delete() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with make_client(handler) as client:
        with pytest.raises(ValidationError):
            await client.post_comment(42, None, "")
        with pytest.raises(UnsupportedOperationError):
            await client.delete_comment(42, None, 1)
