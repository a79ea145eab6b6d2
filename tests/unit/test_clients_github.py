"""Unit tests for the GitHub API client."""

import base64
import re
from typing import Any

import pytest
from aioresponses import aioresponses
from yarl import URL

from histofy.clients.github import GitHubClient
from histofy.errors import (
    AuthenticationError,
    ConflictError,
    HostingAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
)
from histofy.models.config import GitHubConfig
from histofy.models.repository import GitSignature

API = "https://api.github.com"
REPO_API = f"{API}/repos/octocat/demo"

SIGNATURE = GitSignature(
    name="The Octocat", email="octocat@github.com", date="2024-02-01T12:00:00Z"
)


def sent(m: aioresponses, method: str, url: str) -> dict[str, Any]:
    """Keyword arguments of the last request sent to ``url``."""
    return m.requests[(method, URL(url))][-1].kwargs


class TestRequest:
    """Test request execution and error mapping."""

    @pytest.mark.asyncio
    async def test_missing_token_raises_before_request(self) -> None:
        """Test no request is made without a credential."""
        async with GitHubClient(None) as client:
            with aioresponses() as m:
                with pytest.raises(AuthenticationError):
                    await client.get_repository("octocat", "demo")
                assert m.requests == {}

    @pytest.mark.asyncio
    async def test_headers(self) -> None:
        """Test auth, media type and API version headers are sent."""
        async with GitHubClient("secret-token") as client:
            with aioresponses() as m:
                m.get(REPO_API, payload={"name": "demo", "full_name": "octocat/demo",
                                         "owner": {"login": "octocat"}})
                await client.get_repository("octocat", "demo")

                headers = sent(m, "GET", REPO_API)["headers"]
                assert headers["Authorization"] == "Bearer secret-token"
                assert headers["Accept"] == "application/vnd.github+json"
                assert headers["X-GitHub-Api-Version"] == "2022-11-28"

    @pytest.mark.asyncio
    async def test_custom_api_url(self) -> None:
        """Test requests go to the configured API root."""
        config = GitHubConfig(api_url="https://ghe.example.com/api/v3/")
        async with GitHubClient("token", config) as client:
            with aioresponses() as m:
                m.get(
                    "https://ghe.example.com/api/v3/user",
                    payload={"login": "octocat", "name": "Octo", "email": "o@example.com"},
                )
                identity = await client.get_current_identity()

        assert identity.email == "o@example.com"

    @pytest.mark.asyncio
    async def test_rate_limit_headers_tracked(self) -> None:
        """Test quota headers update the snapshot."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(
                    f"{API}/user",
                    payload={"login": "octocat"},
                    headers={
                        "X-RateLimit-Remaining": "4999",
                        "X-RateLimit-Limit": "5000",
                        "X-RateLimit-Reset": "1700000000",
                    },
                )
                await client.get_current_identity()

        assert client.rate_limit.remaining == 4999
        assert client.rate_limit.limit == 5000
        assert client.rate_limit.reset_time.timestamp() == 1700000000

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [
            (401, AuthenticationError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (409, ConflictError),
            (422, HostingAPIError),
            (500, HostingAPIError),
        ],
    )
    async def test_status_mapping(self, status: int, error_type: type) -> None:
        """Test status codes map to typed errors carrying the message."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(REPO_API, status=status, payload={"message": "Nope"})
                with pytest.raises(error_type) as exc_info:
                    await client.get_repository("octocat", "demo")

        assert exc_info.value.status == status
        assert exc_info.value.message == "Nope"

    @pytest.mark.asyncio
    async def test_403_with_exhausted_quota_is_rate_limit(self) -> None:
        """Test quota exhaustion is distinguished from permission errors."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(
                    REPO_API,
                    status=403,
                    payload={"message": "API rate limit exceeded for user"},
                    headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
                )
                with pytest.raises(RateLimitExceeded) as exc_info:
                    await client.get_repository("octocat", "demo")

        assert exc_info.value.reset_time is not None

    @pytest.mark.asyncio
    async def test_429_retry_after(self) -> None:
        """Test secondary limits carry their retry-after."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(REPO_API, status=429, payload={"message": "slow down"},
                      headers={"Retry-After": "30"})
                with pytest.raises(RateLimitExceeded) as exc_info:
                    await client.get_repository("octocat", "demo")

        assert exc_info.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_non_json_error_body(self) -> None:
        """Test plain text bodies become the error message."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(REPO_API, status=502, body="Bad Gateway")
                with pytest.raises(HostingAPIError) as exc_info:
                    await client.get_repository("octocat", "demo")

        assert exc_info.value.message == "Bad Gateway"


class TestOperations:
    """Test request bodies and response decoding."""

    @pytest.mark.asyncio
    async def test_identity_falls_back_to_noreply(self) -> None:
        """Test private emails fall back to the noreply address."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(f"{API}/user", payload={"login": "octocat", "name": None, "email": None})
                identity = await client.get_current_identity()

        assert identity.name == "octocat"
        assert identity.email == "octocat@users.noreply.github.com"

    @pytest.mark.asyncio
    async def test_create_repository_body(self) -> None:
        """Test repositories are created empty."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(
                    f"{API}/user/repos",
                    status=201,
                    payload={"name": "demo", "full_name": "octocat/demo",
                             "owner": {"login": "octocat"}, "default_branch": "main"},
                )
                repo = await client.create_repository("demo", "desc", private=True)

                body = sent(m, "POST", f"{API}/user/repos")["json"]

        assert repo.full_name == "octocat/demo"
        assert body["auto_init"] is False
        assert body["private"] is True
        assert body["description"] == "desc"

    @pytest.mark.asyncio
    async def test_get_branch_head(self) -> None:
        """Test the ref object SHA is returned."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(f"{REPO_API}/git/ref/heads/main",
                      payload={"ref": "refs/heads/main", "object": {"sha": "abc123"}})
                assert await client.get_branch_head("octocat", "demo", "main") == "abc123"

    @pytest.mark.asyncio
    async def test_create_blob_base64(self) -> None:
        """Test blob content is sent base64 encoded."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(f"{REPO_API}/git/blobs", status=201, payload={"sha": "blob1"})
                sha = await client.create_blob("octocat", "demo", "héllo")

                body = sent(m, "POST", f"{REPO_API}/git/blobs")["json"]

        assert sha == "blob1"
        assert body["encoding"] == "base64"
        assert base64.b64decode(body["content"]).decode("utf-8") == "héllo"

    @pytest.mark.asyncio
    async def test_create_tree_with_and_without_base(self) -> None:
        """Test base_tree is only sent when given."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(f"{REPO_API}/git/trees", status=201, payload={"sha": "tree1"})
                m.post(f"{REPO_API}/git/trees", status=201, payload={"sha": "tree2"})
                await client.create_tree("octocat", "demo", "contributions.md", "blob1")
                await client.create_tree("octocat", "demo", "contributions.md", "blob1", "tree1")

                calls = m.requests[("POST", URL(f"{REPO_API}/git/trees"))]

        first, second = (call.kwargs["json"] for call in calls)
        assert "base_tree" not in first
        assert second["base_tree"] == "tree1"
        assert first["tree"] == [
            {"path": "contributions.md", "mode": "100644", "type": "blob", "sha": "blob1"}
        ]

    @pytest.mark.asyncio
    async def test_root_commit_omits_parents(self) -> None:
        """Test a commit without parents sends no parents field."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(f"{REPO_API}/git/commits", status=201, payload={"sha": "c1"})
                await client.create_commit_object("octocat", "demo", "msg", "tree1", [], SIGNATURE)

                body = sent(m, "POST", f"{REPO_API}/git/commits")["json"]

        assert "parents" not in body
        assert body["author"] == body["committer"]
        assert body["author"]["date"] == "2024-02-01T12:00:00Z"

    @pytest.mark.asyncio
    async def test_commit_with_parent(self) -> None:
        """Test parents are sent for chained commits."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(f"{REPO_API}/git/commits", status=201, payload={"sha": "c2"})
                sha = await client.create_commit_object(
                    "octocat", "demo", "msg", "tree2", ["c1"], SIGNATURE
                )

                body = sent(m, "POST", f"{REPO_API}/git/commits")["json"]

        assert sha == "c2"
        assert body["parents"] == ["c1"]

    @pytest.mark.asyncio
    async def test_get_commit_object(self) -> None:
        """Test commit payloads are decoded."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(
                    f"{REPO_API}/git/commits/c2",
                    payload={"sha": "c2", "tree": {"sha": "tree2"},
                             "parents": [{"sha": "c1"}], "message": "msg"},
                )
                commit = await client.get_commit_object("octocat", "demo", "c2")

        assert commit.tree_sha == "tree2"
        assert commit.parents == ["c1"]

    @pytest.mark.asyncio
    async def test_ref_create_and_update(self) -> None:
        """Test ref bodies use the full ref name on create only."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.post(f"{REPO_API}/git/refs", status=201, payload={})
                m.patch(f"{REPO_API}/git/refs/heads/main", payload={})
                await client.create_ref("octocat", "demo", "main", "c1")
                await client.update_ref("octocat", "demo", "main", "c2")

                created = sent(m, "POST", f"{REPO_API}/git/refs")["json"]
                updated = sent(m, "PATCH", f"{REPO_API}/git/refs/heads/main")["json"]

        assert created == {"ref": "refs/heads/main", "sha": "c1"}
        assert updated == {"sha": "c2", "force": False}

    @pytest.mark.asyncio
    async def test_put_file_contents_without_branch(self) -> None:
        """Test bootstrap writes omit the branch."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.put(re.compile(rf"{REPO_API}/contents/.*"), status=201,
                      payload={"commit": {"sha": "boot"}})
                sha = await client.put_file_contents(
                    "octocat", "demo", "README.md", "# demo\n", "Initial commit"
                )

                body = sent(m, "PUT", f"{REPO_API}/contents/README.md")["json"]

        assert sha == "boot"
        assert "branch" not in body
        assert base64.b64decode(body["content"]).decode() == "# demo\n"

    @pytest.mark.asyncio
    async def test_get_rate_limit(self) -> None:
        """Test the quota endpoint refreshes the snapshot."""
        async with GitHubClient("token") as client:
            with aioresponses() as m:
                m.get(
                    f"{API}/rate_limit",
                    payload={"resources": {"core": {"limit": 5000, "remaining": 12,
                                                    "reset": 1700000000}}},
                )
                snapshot = await client.get_rate_limit()

        assert snapshot.remaining == 12
        assert not snapshot.exhausted
