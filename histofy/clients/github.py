"""Authenticated client for the GitHub REST and Git Data APIs.

The client executes single requests and maps failures to typed errors. It
never retries; callers wrap calls in a RetryPolicy where retrying is safe.
"""

import base64
import json
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

import aiohttp
from pydantic import BaseModel, Field

from histofy.constants import FILE_MODE_BLOB
from histofy.errors import (
    AuthenticationError,
    ConflictError,
    HostingAPIError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
)
from histofy.models.config import GitHubConfig
from histofy.models.repository import (
    GitCommit,
    GitSignature,
    Identity,
    RateLimitSnapshot,
    RepoDescriptor,
)
from histofy.utils.logging import get_logger

logger = get_logger(__name__)


class GitHubResponse(BaseModel):
    """Decoded API response."""

    status: int
    data: Any = None
    headers: dict[str, str] = Field(default_factory=dict)


def _encode_content(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


class GitHubClient:
    """Thin async wrapper around the hosting API."""

    def __init__(
        self,
        token: str | None,
        config: GitHubConfig | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            token: Bearer credential (None means unauthenticated)
            config: API connection settings
            session: Optional externally managed session
        """
        self.token = token
        self.config = config or GitHubConfig()
        self.rate_limit = RateLimitSnapshot()
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the owned HTTP session."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.config.api_version,
            "User-Agent": self.config.user_agent,
        }

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
    ) -> GitHubResponse:
        """
        Execute one authenticated request.

        Args:
            method: HTTP method
            path: API path (``/repos/...``) or absolute URL
            json_body: Optional JSON payload

        Returns:
            Decoded response for 2xx statuses

        Raises:
            AuthenticationError: No token configured, or HTTP 401
            RateLimitExceeded: Quota exhausted (403/429)
            PermissionDeniedError: Other HTTP 403
            NotFoundError: HTTP 404
            ConflictError: HTTP 409
            HostingAPIError: Any other non-2xx status
            aiohttp.ClientError: Network failures, propagated unchanged
        """
        if not self.token:
            raise AuthenticationError()

        url = path if path.startswith("http") else f"{self.config.api_url}{path}"
        session = self._get_session()

        async with session.request(method, url, json=json_body, headers=self._headers()) as response:
            headers = {k.lower(): v for k, v in response.headers.items()}
            text = await response.text()
            status = response.status

        self._update_rate_limit(headers)
        data = _decode_body(text)

        logger.debug("API request", method=method, path=path, status=status)

        if status >= 400:
            raise self._error_for_status(status, data, headers)

        if self.rate_limit.remaining == 0:
            logger.warning(
                "Rate limit exhausted",
                reset_time=str(self.rate_limit.reset_time),
            )

        return GitHubResponse(status=status, data=data, headers=headers)

    def _update_rate_limit(self, headers: dict[str, str]) -> None:
        remaining = headers.get("x-ratelimit-remaining")
        limit = headers.get("x-ratelimit-limit")
        reset = headers.get("x-ratelimit-reset")

        if remaining is not None and remaining.isdigit():
            self.rate_limit.remaining = int(remaining)
        if limit is not None and limit.isdigit():
            self.rate_limit.limit = int(limit)
        if reset is not None and reset.isdigit():
            self.rate_limit.reset_time = datetime.fromtimestamp(int(reset), UTC)

    def _error_for_status(
        self, status: int, data: Any, headers: dict[str, str]
    ) -> HostingAPIError:
        message = data.get("message") if isinstance(data, dict) else None
        message = message or (data if isinstance(data, str) and data else f"HTTP {status}")

        if status == 401:
            return AuthenticationError(message, status)

        if status in (403, 429):
            retry_after = headers.get("retry-after")
            quota_exhausted = headers.get("x-ratelimit-remaining") == "0"
            if quota_exhausted or retry_after is not None or "rate limit" in message.lower():
                return RateLimitExceeded(
                    message,
                    status=status,
                    reset_time=self.rate_limit.reset_time,
                    retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
                )
            if status == 403:
                return PermissionDeniedError(message, status)

        if status == 404:
            return NotFoundError(message, status)
        if status == 409:
            return ConflictError(message, status)
        return HostingAPIError(message, status)

    # ------------------------------------------------------------------
    # Repository and identity
    # ------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepoDescriptor:
        response = await self.request("GET", f"/repos/{owner}/{repo}")
        return RepoDescriptor.model_validate(response.data)

    async def create_repository(
        self, name: str, description: str = "", private: bool = False
    ) -> RepoDescriptor:
        """Create a repository for the authenticated user, never auto-initialised."""
        response = await self.request(
            "POST",
            "/user/repos",
            {
                "name": name,
                "description": description,
                "private": private,
                "auto_init": False,
                "has_issues": False,
                "has_projects": False,
                "has_wiki": False,
            },
        )
        logger.info("Repository created", repository=response.data.get("full_name", name))
        return RepoDescriptor.model_validate(response.data)

    async def get_current_identity(self) -> Identity:
        """
        Identity used as commit author.

        The email falls back to the noreply address when the account email is
        private, so commits are still attributed to the account.
        """
        response = await self.request("GET", "/user")
        login = response.data["login"]
        return Identity(
            login=login,
            name=response.data.get("name") or login,
            email=response.data.get("email") or f"{login}@users.noreply.{self.config.web_host}",
        )

    # ------------------------------------------------------------------
    # Git Data API
    # ------------------------------------------------------------------

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        response = await self.request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        return response.data["object"]["sha"]

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        response = await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            {"content": _encode_content(content), "encoding": "base64"},
        )
        return response.data["sha"]

    async def create_tree(
        self,
        owner: str,
        repo: str,
        path: str,
        blob_sha: str,
        base_tree: str | None = None,
    ) -> str:
        """Create a tree adding or replacing ``path`` on top of ``base_tree``."""
        body: dict[str, Any] = {
            "tree": [{"path": path, "mode": FILE_MODE_BLOB, "type": "blob", "sha": blob_sha}],
        }
        if base_tree:
            body["base_tree"] = base_tree
        response = await self.request("POST", f"/repos/{owner}/{repo}/git/trees", body)
        return response.data["sha"]

    async def create_commit_object(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parents: list[str],
        author: GitSignature,
        committer: GitSignature | None = None,
    ) -> str:
        body: dict[str, Any] = {
            "message": message,
            "tree": tree_sha,
            "author": author.model_dump(),
            "committer": (committer or author).model_dump(),
        }
        if parents:
            body["parents"] = parents
        response = await self.request("POST", f"/repos/{owner}/{repo}/git/commits", body)
        return response.data["sha"]

    async def get_commit_object(self, owner: str, repo: str, sha: str) -> GitCommit:
        response = await self.request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")
        data = response.data
        return GitCommit(
            sha=data["sha"],
            tree_sha=data["tree"]["sha"],
            parents=[p["sha"] for p in data.get("parents", [])],
            message=data.get("message", ""),
        )

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        await self.request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            {"ref": f"refs/heads/{branch}", "sha": sha},
        )

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        await self.request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            {"sha": sha, "force": force},
        )

    async def put_file_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str | None = None,
    ) -> str:
        """Write one file through the contents endpoint and return the commit SHA."""
        body: dict[str, Any] = {"message": message, "content": _encode_content(content)}
        if branch:
            body["branch"] = branch
        response = await self.request("PUT", f"/repos/{owner}/{repo}/contents/{path}", body)
        return response.data["commit"]["sha"]

    async def get_rate_limit(self) -> RateLimitSnapshot:
        """Refresh the rate limit snapshot from ``/rate_limit``."""
        response = await self.request("GET", "/rate_limit")
        core = response.data.get("resources", {}).get("core") or response.data.get("rate", {})
        if core:
            self.rate_limit = RateLimitSnapshot(
                remaining=core.get("remaining"),
                limit=core.get("limit"),
                reset_time=datetime.fromtimestamp(core["reset"], UTC) if "reset" in core else None,
            )
        return self.rate_limit


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text
