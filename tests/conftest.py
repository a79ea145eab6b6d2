"""Shared pytest fixtures and configuration."""

import hashlib
import json
import random
from collections import defaultdict
from pathlib import Path
from typing import Any

import pytest

from histofy.errors import ConflictError, HostingAPIError, NotFoundError
from histofy.models.changes import DateSelectionChange, new_date_selection
from histofy.models.config import DeployConfig
from histofy.models.repository import (
    GitCommit,
    GitSignature,
    Identity,
    RateLimitSnapshot,
    RepoDescriptor,
)
from histofy.store.pending import PendingChangeStore
from histofy.utils.retry import RetryPolicy


def _object_sha(kind: str, payload: Any) -> str:
    raw = kind + json.dumps(payload, sort_keys=True)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class FakeGitHubClient:
    """In-memory hosting API with content-addressed objects.

    Object SHAs are derived from their payload, so creating the same blob,
    tree or commit twice returns the same SHA, as on the real service.
    """

    def __init__(self, login: str = "octocat", email: str | None = None) -> None:
        self.rate_limit = RateLimitSnapshot()
        self.identity = Identity(
            login=login,
            name="The Octocat",
            email=email or f"{login}@users.noreply.github.com",
        )
        self.repositories: dict[str, RepoDescriptor] = {}
        self.refs: dict[tuple[str, str], str] = {}
        self.blobs: dict[str, str] = {}
        self.trees: dict[str, dict[str, str]] = {}
        self.commits: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self.last_description: str | None = None

        # Failure injection
        self.errors: dict[str, list[BaseException]] = defaultdict(list)
        self.persistent_errors: dict[str, BaseException] = {}
        self.lost_responses: dict[str, int] = defaultdict(int)
        self.fail_commit_from: int | None = None
        self.conflict_on_empty = False
        self.commit_calls = 0

    # -- helpers used by tests -------------------------------------------

    def add_repository(
        self,
        owner: str,
        name: str,
        default_branch: str = "main",
        push: bool = True,
        head: str | None = None,
    ) -> RepoDescriptor:
        repo = RepoDescriptor.model_validate(
            {
                "name": name,
                "full_name": f"{owner}/{name}",
                "owner": {"login": owner},
                "default_branch": default_branch,
                "html_url": f"https://github.com/{owner}/{name}",
                "permissions": {"admin": False, "push": push, "pull": True},
            }
        )
        self.repositories[repo.full_name] = repo
        if head is not None:
            self.refs[(repo.full_name, default_branch)] = head
        return repo

    def seed_commit(self, owner: str, name: str, path: str = "README.md") -> str:
        """Create an existing commit with one file and no parents."""
        blob = self._store_blob(f"# {name}\n")
        tree = self._store_tree(None, path, blob)
        return self._store_commit(
            {"message": "Initial commit", "tree": tree, "parents": [], "author": {}, "committer": {}}
        )

    def chain(self, full_name: str, branch: str = "main") -> list[dict[str, Any]]:
        """Commits reachable from the branch head, oldest first."""
        sha = self.refs.get((full_name, branch))
        commits = []
        while sha:
            commit = self.commits[sha]
            commits.append({"sha": sha, **commit})
            sha = commit["parents"][0] if commit["parents"] else None
        return list(reversed(commits))

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call == operation)

    # -- internals --------------------------------------------------------

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.errors[operation]:
            raise self.errors[operation].pop(0)
        if operation in self.persistent_errors:
            raise self.persistent_errors[operation]

    def _leave(self, operation: str) -> None:
        if self.lost_responses[operation] > 0:
            self.lost_responses[operation] -= 1
            raise TimeoutError(f"{operation}: response lost")

    def _store_blob(self, content: str) -> str:
        sha = _object_sha("blob", content)
        self.blobs[sha] = content
        return sha

    def _store_tree(self, base_tree: str | None, path: str, blob_sha: str) -> str:
        entries = dict(self.trees[base_tree]) if base_tree else {}
        entries[path] = blob_sha
        sha = _object_sha("tree", entries)
        self.trees[sha] = entries
        return sha

    def _store_commit(self, payload: dict[str, Any]) -> str:
        sha = _object_sha("commit", payload)
        self.commits[sha] = payload
        return sha

    def _repo(self, owner: str, name: str) -> RepoDescriptor:
        repo = self.repositories.get(f"{owner}/{name}")
        if repo is None:
            raise NotFoundError("Not Found")
        return repo

    # -- client surface -----------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepoDescriptor:
        self._enter("get_repository")
        return self._repo(owner, repo)

    async def create_repository(
        self, name: str, description: str = "", private: bool = False
    ) -> RepoDescriptor:
        self._enter("create_repository")
        repo = RepoDescriptor.model_validate(
            {
                "name": name,
                "full_name": f"{self.identity.login}/{name}",
                "owner": {"login": self.identity.login},
                "default_branch": "main",
                "private": private,
                "html_url": f"https://github.com/{self.identity.login}/{name}",
                "permissions": {"admin": True, "push": True, "pull": True},
            }
        )
        self.repositories[repo.full_name] = repo
        self.last_description = description
        return repo

    async def get_current_identity(self) -> Identity:
        self._enter("get_current_identity")
        return self.identity

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> str:
        self._enter("get_branch_head")
        descriptor = self._repo(owner, repo)
        sha = self.refs.get((descriptor.full_name, branch))
        if sha is None:
            has_refs = any(key == descriptor.full_name for key, _ in self.refs)
            if self.conflict_on_empty and not has_refs:
                raise ConflictError("Git Repository is empty.")
            raise NotFoundError("Not Found")
        return sha

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        self._enter("create_blob")
        sha = self._store_blob(content)
        self._leave("create_blob")
        return sha

    async def create_tree(
        self, owner: str, repo: str, path: str, blob_sha: str, base_tree: str | None = None
    ) -> str:
        self._enter("create_tree")
        sha = self._store_tree(base_tree, path, blob_sha)
        self._leave("create_tree")
        return sha

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
        self.commit_calls += 1
        if self.fail_commit_from is not None and self.commit_calls >= self.fail_commit_from:
            self.calls.append("create_commit_object")
            raise HostingAPIError("Server Error", 500)
        self._enter("create_commit_object")
        sha = self._store_commit(
            {
                "message": message,
                "tree": tree_sha,
                "parents": list(parents),
                "author": author.model_dump(),
                "committer": (committer or author).model_dump(),
            }
        )
        self._leave("create_commit_object")
        return sha

    async def get_commit_object(self, owner: str, repo: str, sha: str) -> GitCommit:
        self._enter("get_commit_object")
        commit = self.commits.get(sha)
        if commit is None:
            raise NotFoundError("Not Found")
        return GitCommit(
            sha=sha, tree_sha=commit["tree"], parents=commit["parents"], message=commit["message"]
        )

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        self._enter("create_ref")
        descriptor = self._repo(owner, repo)
        if (descriptor.full_name, branch) in self.refs:
            raise HostingAPIError("Reference already exists", 422)
        self.refs[(descriptor.full_name, branch)] = sha
        self._leave("create_ref")

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, force: bool = False
    ) -> None:
        self._enter("update_ref")
        descriptor = self._repo(owner, repo)
        key = (descriptor.full_name, branch)
        if key not in self.refs:
            raise NotFoundError("Reference does not exist")
        self.refs[key] = sha

    async def put_file_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str | None = None,
    ) -> str:
        self._enter("put_file_contents")
        descriptor = self._repo(owner, repo)
        blob = self._store_blob(content)
        tree = self._store_tree(None, path, blob)
        sha = self._store_commit(
            {"message": message, "tree": tree, "parents": [], "author": {}, "committer": {}}
        )
        self.refs[(descriptor.full_name, branch or descriptor.default_branch or "main")] = sha
        return sha


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_client() -> FakeGitHubClient:
    """In-memory hosting API."""
    return FakeGitHubClient()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Sleep that returns immediately."""
    return SleepRecorder()


@pytest.fixture
def deploy_config() -> DeployConfig:
    """Deployment config without real pauses."""
    return DeployConfig(
        inter_batch_delay_ms=0,
        post_create_delay_seconds=0,
        retry_base_delay_seconds=0,
    )


@pytest.fixture
def retry_policy(sleep_recorder: SleepRecorder) -> RetryPolicy:
    """Retry policy that never really sleeps."""
    return RetryPolicy(attempts=3, base_delay=1.0, max_delay=30.0, sleep=sleep_recorder)


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(42)


@pytest.fixture
def store(tmp_path: Path) -> PendingChangeStore:
    """Pending change store in a temporary directory."""
    return PendingChangeStore(tmp_path / "data" / "pending_changes.json")


@pytest.fixture
def sample_selection() -> DateSelectionChange:
    """Two unsorted dates at level 1 for octocat."""
    return new_date_selection({"2024-03-01": 1, "2024-02-01": 1}, username="octocat")
