"""Deployment state, plans and result models."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from histofy.models.changes import ContributionLevel
from histofy.models.repository import TargetRepository


class DeploymentState(StrEnum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    RESOLVING = "resolving"
    BRANCHING = "branching"
    COMMITTING = "committing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_running(self) -> bool:
        return self not in (DeploymentState.IDLE, DeploymentState.COMPLETED, DeploymentState.FAILED)


class CommitChainState(BaseModel):
    """Running head of the commit chain for one repository in one run."""

    branch: str
    head_sha: str | None = Field(default=None, description="None means no commits yet")
    ref_exists: bool = Field(default=False, description="Whether refs/heads/<branch> exists")
    synced_sha: str | None = Field(default=None, description="SHA the branch ref points to")

    def advance(self, sha: str) -> None:
        """Move the head to a newly created commit."""
        self.head_sha = sha

    @property
    def has_unsynced_commits(self) -> bool:
        return self.head_sha is not None and self.head_sha != self.synced_sha


class DatePlan(BaseModel):
    """Pre-generated commit inputs for a single date."""

    date: str
    contribution: ContributionLevel
    commit_count: int = Field(ge=0)
    contents: list[str] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)

    @property
    def level(self) -> int:
        return self.contribution.level


class CommitRecord(BaseModel):
    """A successfully created commit."""

    date: str
    sha: str
    level: int
    commit_index: int = Field(ge=1)
    total_commits: int = Field(ge=1)


class DateFailure(BaseModel):
    """A date whose commits could not all be created."""

    date: str
    error: str
    commits_created: int = Field(default=0, ge=0)


class DateOutcome(BaseModel):
    """What happened to one date during a run."""

    date: str
    level: int
    planned_commits: int = 0
    status: Literal["success", "partial", "failed", "skipped", "cancelled"]
    commits: list[CommitRecord] = Field(default_factory=list)
    error: str | None = None


class RepositoryWorkload(BaseModel):
    """Dates merged from every pending change aimed at one repository."""

    target: TargetRepository
    contributions: dict[str, ContributionLevel] = Field(default_factory=dict)
    change_ids: list[str] = Field(default_factory=list)

    def sorted_dates(self) -> list[str]:
        """Dates in chronological order."""
        return sorted(self.contributions)


class RepositoryDeploymentResult(BaseModel):
    """Result for one target repository."""

    repository: str
    branch: str | None = None
    created: bool = Field(default=False, description="Whether the repository was created")
    bootstrapped: bool = Field(default=False, description="Whether a bootstrap commit was made")
    successful: list[CommitRecord] = Field(default_factory=list)
    failed: list[DateFailure] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    cancelled: list[str] = Field(default_factory=list)
    head_sha: str | None = Field(default=None, description="SHA the branch ref points to")
    error: str | None = Field(default=None, description="Setup error that aborted the repository")
    ref_update_error: str | None = None
    unreferenced_head_sha: str | None = Field(
        default=None, description="Created but unreferenced head when the ref update failed"
    )

    def absorb(self, outcome: DateOutcome) -> None:
        """Record a date outcome."""
        self.successful.extend(outcome.commits)
        if outcome.status in ("failed", "partial"):
            self.failed.append(
                DateFailure(
                    date=outcome.date,
                    error=outcome.error or "unknown error",
                    commits_created=len(outcome.commits),
                )
            )
        elif outcome.status == "skipped":
            self.skipped.append(outcome.date)
        elif outcome.status == "cancelled":
            self.cancelled.append(outcome.date)

    @property
    def fully_successful(self) -> bool:
        return (
            self.error is None
            and self.ref_update_error is None
            and not self.failed
            and not self.cancelled
        )


class DeploymentResult(BaseModel):
    """Aggregated result of a deployment run."""

    successful: list[CommitRecord] = Field(default_factory=list)
    failed: list[DateFailure] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    cancelled: list[str] = Field(default_factory=list)
    repositories: dict[str, RepositoryDeploymentResult] = Field(default_factory=dict)
    removed_changes: list[str] = Field(default_factory=list)
    unresolved_changes: list[str] = Field(
        default_factory=list, description="Changes left queued because no target could be resolved"
    )
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    def add_repository(self, repo_result: RepositoryDeploymentResult) -> None:
        self.repositories[repo_result.repository] = repo_result
        self.successful.extend(repo_result.successful)
        self.failed.extend(repo_result.failed)
        self.skipped.extend(repo_result.skipped)
        self.cancelled.extend(repo_result.cancelled)

    def add_unresolved(self, change_id: str, dates: list[str], error: str) -> None:
        """Record a change whose target repository could not be resolved."""
        self.unresolved_changes.append(change_id)
        self.failed.extend(DateFailure(date=d, error=error) for d in dates)

    @property
    def success(self) -> bool:
        return not self.unresolved_changes and all(
            r.fully_successful for r in self.repositories.values()
        )

    @property
    def total_commits(self) -> int:
        return len(self.successful)


class LogEntry(BaseModel):
    """Deployment log line exposed to progress observers."""

    timestamp: datetime = Field(default_factory=datetime.now)
    level: Literal["debug", "info", "success", "warning", "error"] = "info"
    message: str


class DeploymentStatus(BaseModel):
    """Progress snapshot emitted after each phase transition."""

    state: DeploymentState = DeploymentState.IDLE
    step: str | None = None
    percent: float = Field(default=0.0, ge=0.0, le=100.0)
    logs: list[LogEntry] = Field(default_factory=list)
