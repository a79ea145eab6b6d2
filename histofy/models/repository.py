"""Repository and Git object models exchanged with the hosting API."""

import re
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator

from histofy.constants import REPOSITORY_NAME_PATTERN


class TargetRepository(BaseModel):
    """Remote repository that receives synthesized commits."""

    owner: str = Field(description="Repository owner login")
    name: str = Field(description="Repository name")

    @field_validator("owner", "name")
    @classmethod
    def _valid_identifier(cls, value: str) -> str:
        if not re.match(REPOSITORY_NAME_PATTERN, value):
            raise ValueError(f"Invalid repository owner or name: '{value}'")
        return value

    @property
    def key(self) -> str:
        """Grouping key ``owner/name``."""
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "TargetRepository":
        """Parse an ``owner/name`` string."""
        owner, sep, name = value.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Repository must be in 'owner/name' form, got '{value}'")
        return cls(owner=owner, name=name)


class RepoPermissions(BaseModel):
    """Permissions of the authenticated identity on a repository."""

    admin: bool = False
    push: bool = False
    pull: bool = True


class RepoOwner(BaseModel):
    """Owner block of a repository payload."""

    login: str


class RepoDescriptor(BaseModel):
    """Repository as returned by the hosting API (subset)."""

    name: str
    full_name: str
    owner: RepoOwner
    default_branch: str | None = None
    private: bool = False
    html_url: str = ""
    permissions: RepoPermissions | None = None

    @property
    def can_push(self) -> bool:
        """Whether commits can be pushed by the current identity."""
        if self.permissions is None:
            return False
        return self.permissions.push or self.permissions.admin


class Identity(BaseModel):
    """Authenticated account used as commit author and committer."""

    login: str
    name: str
    email: str


class GitSignature(BaseModel):
    """Author/committer block of a commit object."""

    name: str
    email: str
    date: str = Field(description="ISO-8601 UTC timestamp")


class GitCommit(BaseModel):
    """Low-level commit object."""

    sha: str
    tree_sha: str
    parents: list[str] = Field(default_factory=list)
    message: str = ""


class RateLimitSnapshot(BaseModel):
    """Last seen rate limit headers."""

    remaining: int | None = None
    limit: int | None = None
    reset_time: datetime | None = None

    @property
    def exhausted(self) -> bool:
        """True when the quota is used up and has not reset yet."""
        if self.remaining is None or self.remaining > 0:
            return False
        return self.reset_time is None or self.reset_time > datetime.now(UTC)

    def seconds_until_reset(self) -> float:
        """Seconds until ``reset_time`` (0 when unknown or past)."""
        if self.reset_time is None:
            return 0.0
        return max((self.reset_time - datetime.now(UTC)).total_seconds(), 0.0)
