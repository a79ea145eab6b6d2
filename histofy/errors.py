"""Exception hierarchy for the deployer."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from histofy.models.deployment import CommitRecord, DateOutcome


class HistofyError(Exception):
    """Base exception for deployer errors."""


class HostingAPIError(HistofyError):
    """Non-2xx response from the hosting API."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        self.message = message
        super().__init__(f"{status}: {message}" if status is not None else message)


class AuthenticationError(HostingAPIError):
    """Missing or rejected credential. Fatal for the whole run."""

    def __init__(self, message: str = "No GitHub token configured", status: int | None = 401):
        super().__init__(message, status)


class PermissionDeniedError(HostingAPIError):
    """Authenticated, but not allowed to write to the target repository."""

    def __init__(self, message: str, status: int | None = 403):
        super().__init__(message, status)


class NotFoundError(HostingAPIError):
    """Repository, ref or object does not exist."""

    def __init__(self, message: str, status: int | None = 404):
        super().__init__(message, status)


class ConflictError(HostingAPIError):
    """Ref/branch conflict, typically right after repository creation."""

    def __init__(self, message: str, status: int | None = 409):
        super().__init__(message, status)


class RateLimitExceeded(HostingAPIError):
    """Request quota exhausted until ``reset_time``."""

    def __init__(
        self,
        message: str,
        status: int | None = 403,
        reset_time: datetime | None = None,
        retry_after: float | None = None,
    ):
        self.reset_time = reset_time
        self._retry_after = retry_after
        super().__init__(message, status)

    @property
    def retry_after(self) -> float:
        """Seconds until the quota resets (0 when unknown)."""
        if self._retry_after is not None:
            return max(self._retry_after, 0.0)
        if self.reset_time is None:
            return 0.0
        return max((self.reset_time - datetime.now(UTC)).total_seconds(), 0.0)


class ConcurrentDeploymentError(HistofyError):
    """A deployment is already in flight on this orchestrator."""


class CommitCreationError(HistofyError):
    """Commit ``index`` of ``total`` for ``date`` could not be created."""

    def __init__(
        self,
        date: str,
        index: int,
        total: int,
        cause: BaseException,
        created: "list[CommitRecord] | None" = None,
    ):
        self.date = date
        self.index = index
        self.total = total
        self.cause = cause
        self.created = created or []
        super().__init__(f"Failed to create commit {index}/{total} for {date}: {cause}")


class RepositoryAbortedError(HistofyError):
    """Commit creation hit an error that rules out the rest of the repository.

    ``outcomes`` holds one outcome per date of the batch, the failing date
    and every date after it included.
    """

    def __init__(self, cause: BaseException, outcomes: "list[DateOutcome]"):
        self.cause = cause
        self.outcomes = outcomes
        super().__init__(f"Repository deployment aborted: {cause}")
