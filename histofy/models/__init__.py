"""Pydantic data models for the deployer."""

from histofy.models.changes import (
    ContributionLevel,
    DateSelectionChange,
    DeleteCommitChange,
    ModifyTimestampChange,
    MoveCommitChange,
    PendingChange,
    PendingChangeQueue,
    new_date_selection,
)
from histofy.models.config import (
    DeployConfig,
    GitHubConfig,
    HistofyConfig,
    LoggingConfig,
    StoreConfig,
)
from histofy.models.deployment import (
    CommitChainState,
    CommitRecord,
    DateFailure,
    DateOutcome,
    DatePlan,
    DeploymentResult,
    DeploymentState,
    DeploymentStatus,
    LogEntry,
    RepositoryDeploymentResult,
    RepositoryWorkload,
)
from histofy.models.repository import (
    GitCommit,
    GitSignature,
    Identity,
    RateLimitSnapshot,
    RepoDescriptor,
    TargetRepository,
)

__all__ = [
    # Changes
    "ContributionLevel",
    "DateSelectionChange",
    "ModifyTimestampChange",
    "MoveCommitChange",
    "DeleteCommitChange",
    "PendingChange",
    "PendingChangeQueue",
    "new_date_selection",
    # Repository
    "TargetRepository",
    "RepoDescriptor",
    "Identity",
    "GitSignature",
    "GitCommit",
    "RateLimitSnapshot",
    # Deployment
    "DeploymentState",
    "CommitChainState",
    "DatePlan",
    "CommitRecord",
    "DateFailure",
    "DateOutcome",
    "RepositoryWorkload",
    "RepositoryDeploymentResult",
    "DeploymentResult",
    "LogEntry",
    "DeploymentStatus",
    # Config
    "GitHubConfig",
    "DeployConfig",
    "StoreConfig",
    "LoggingConfig",
    "HistofyConfig",
]
