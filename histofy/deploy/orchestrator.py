"""Deployment orchestration.

Consumes the pending change queue, groups date selections by target
repository, makes sure each repository and branch exist, drives the commit
graph builder batch by batch, moves the branch ref and drains the queue of
fully deployed changes.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import assert_never

import aiohttp

from histofy.constants import MAX_STATUS_LOG_ENTRIES
from histofy.deploy.cancellation import CancellationToken
from histofy.deploy.commit_graph import CommitGraphBuilder
from histofy.deploy.content import build_bootstrap_content
from histofy.errors import (
    AuthenticationError,
    ConcurrentDeploymentError,
    ConflictError,
    HostingAPIError,
    NotFoundError,
    PermissionDeniedError,
    RepositoryAbortedError,
)
from histofy.models.changes import (
    DateSelectionChange,
    DeleteCommitChange,
    ModifyTimestampChange,
    MoveCommitChange,
    PendingChange,
)
from histofy.models.config import DeployConfig
from histofy.models.deployment import (
    CommitChainState,
    DateFailure,
    DeploymentResult,
    DeploymentState,
    DeploymentStatus,
    LogEntry,
    RepositoryDeploymentResult,
    RepositoryWorkload,
)
from histofy.models.repository import RepoDescriptor, TargetRepository
from histofy.store.pending import PendingChangeStore
from histofy.utils.logging import get_logger
from histofy.utils.messages import describe_error
from histofy.utils.retry import RetryPolicy
from histofy.utils.slug import is_valid_repository_name, sanitize_repository_name

logger = get_logger(__name__)

StatusObserver = Callable[[DeploymentStatus], None]

# Errors that abort one repository's setup without ending the run
SETUP_ERRORS = (HostingAPIError, aiohttp.ClientError, TimeoutError)


class DeploymentOrchestrator:
    """Runs one deployment at a time over the pending change queue."""

    def __init__(
        self,
        client,
        store: PendingChangeStore,
        config: DeployConfig | None = None,
        builder: CommitGraphBuilder | None = None,
        retry_policy: RetryPolicy | None = None,
        observers: list[StatusObserver] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            client: Hosting API client (GitHubClient or a compatible fake)
            store: Pending change queue
            config: Deployment tunables
            builder: Commit graph builder (created from client/config if omitted)
            retry_policy: Policy for setup calls and commits
            observers: Callables receiving a DeploymentStatus after each phase
            sleep: Awaitable sleep for inter-batch and post-create pauses
            rng: Random source handed to a builder created here
        """
        self.client = client
        self.store = store
        self.config = config or DeployConfig()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config, sleep=sleep)
        self.builder = builder or CommitGraphBuilder(
            client, self.config, retry_policy=self.retry_policy, rng=rng, sleep=sleep
        )
        self.observers: list[StatusObserver] = list(observers or [])
        self._sleep = sleep
        self.state = DeploymentState.IDLE
        self.status = DeploymentStatus()

    # ------------------------------------------------------------------
    # State and progress
    # ------------------------------------------------------------------

    def subscribe(self, observer: StatusObserver) -> None:
        self.observers.append(observer)

    def _begin(self) -> None:
        # Must run before the first await of deploy()
        if self.state.is_running:
            raise ConcurrentDeploymentError(f"Deployment already in progress ({self.state})")
        self.state = DeploymentState.ANALYZING
        self.status = DeploymentStatus(state=self.state)

    def _transition(self, state: DeploymentState) -> None:
        logger.debug("Deployment state", previous=str(self.state), state=str(state))
        self.state = state
        self.status.state = state

    def _log(self, level: str, message: str, **context) -> None:
        getattr(logger, level)(message, **context)
        self.status.logs.append(LogEntry(level=level, message=message))
        if len(self.status.logs) > MAX_STATUS_LOG_ENTRIES:
            del self.status.logs[: len(self.status.logs) - MAX_STATUS_LOG_ENTRIES]

    def _update_status(self, step: str, percent: float) -> None:
        self.status.step = step
        self.status.percent = max(0.0, min(percent, 100.0))
        snapshot = self.status.model_copy(deep=True)
        for observer in self.observers:
            try:
                observer(snapshot)
            except Exception as e:
                logger.warning("Progress observer failed", observer=repr(observer), error=str(e))

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def deploy(
        self,
        target_repository: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> DeploymentResult:
        """
        Deploy every pending date selection.

        Per-date and per-repository failures are captured in the result.

        Args:
            target_repository: Optional ``owner/name`` override for all changes
            cancel_token: Cooperative cancellation, checked between dates and batches

        Returns:
            Aggregated DeploymentResult

        Raises:
            ConcurrentDeploymentError: A deployment is already running
            AuthenticationError: Credential missing or rejected
        """
        self._begin()
        result = DeploymentResult()

        try:
            self._update_status("Analyzing pending changes...", 5)
            changes = self.store.list_pending()
            workloads = await self.analyze(changes, target_repository, result)

            if not workloads:
                self._log("info", "No pending date selections to deploy")
            total = len(workloads)

            for position, workload in enumerate(workloads.values()):
                self._update_status(
                    f"Processing repository: {workload.target.key}",
                    15 + position * 75 / total,
                )
                repo_result = await self._deploy_repository(
                    workload, cancel_token, 15 + position * 75 / total, 75 / total
                )
                result.add_repository(repo_result)

            result.removed_changes = self._drain(workloads, result)

            self._transition(DeploymentState.COMPLETED)
            self._update_status("Deployment completed!", 100)
            self._log(
                "success" if result.success else "warning",
                "Deployment finished",
                commits=result.total_commits,
                failed_dates=len(result.failed),
                skipped_dates=len(result.skipped),
                cancelled_dates=len(result.cancelled),
            )
            return result

        except BaseException as e:
            self._transition(DeploymentState.FAILED)
            self._log("error", "Deployment failed", error=str(e))
            self._update_status(describe_error(e), self.status.percent)
            raise

        finally:
            result.finished_at = result.finished_at or datetime.now()
            self.builder.reset()

    # ------------------------------------------------------------------
    # Analyze
    # ------------------------------------------------------------------

    async def analyze(
        self,
        changes: list[PendingChange],
        target_repository: str | None = None,
        result: DeploymentResult | None = None,
    ) -> dict[str, RepositoryWorkload]:
        """
        Group date selections by target repository.

        Dates from several changes for one repository are merged, a later
        change winning a date. Other change kinds stay queued. A change
        whose target cannot be resolved stays queued and, when ``result``
        is given, is recorded there as unresolved.
        """
        override = target_repository or self.config.target_repository
        override_target = TargetRepository.parse(override) if override else None
        workloads: dict[str, RepositoryWorkload] = {}

        for change in changes:
            match change:
                case DateSelectionChange():
                    if not change.dates:
                        continue
                    try:
                        target = override_target or await self._target_for(change)
                    except AuthenticationError:
                        raise
                    except SETUP_ERRORS as e:
                        self._log(
                            "error",
                            "Target repository unresolved, change left queued",
                            id=change.id,
                            error=str(e),
                        )
                        if result is not None:
                            result.add_unresolved(change.id, change.dates, describe_error(e))
                        continue
                    workload = workloads.setdefault(
                        target.key, RepositoryWorkload(target=target)
                    )
                    for day in change.dates:
                        workload.contributions[day] = change.contribution_for(day)
                    workload.change_ids.append(change.id)
                case ModifyTimestampChange() | MoveCommitChange() | DeleteCommitChange():
                    logger.debug("Change kind not deployable, left queued", id=change.id, type=change.type)
                case _:
                    assert_never(change)

        self._update_status("Analyzing deployment target...", 10)
        for key, workload in workloads.items():
            self._log(
                "info",
                "Repository scheduled",
                repository=key,
                dates=len(workload.contributions),
            )
        return workloads

    async def _target_for(self, change: DateSelectionChange) -> TargetRepository:
        fallback = self.config.fallback_repository_name

        try:
            if change.repository and "/" in change.repository:
                return TargetRepository.parse(change.repository)
            if change.username:
                name = change.repository or fallback
                if not is_valid_repository_name(name):
                    name = sanitize_repository_name(name, fallback)
                return TargetRepository(owner=change.username, name=name)
        except ValueError as e:
            self._log(
                "warning",
                "Change context is not a repository, using the fallback repository",
                id=change.id,
                username=change.username,
                repository=change.repository,
                error=str(e),
            )

        identity = await self.builder.get_identity()
        return TargetRepository(owner=identity.login, name=fallback)

    # ------------------------------------------------------------------
    # Per repository
    # ------------------------------------------------------------------

    async def _deploy_repository(
        self,
        workload: RepositoryWorkload,
        cancel_token: CancellationToken | None,
        percent_start: float,
        percent_span: float,
    ) -> RepositoryDeploymentResult:
        target = workload.target
        dates = workload.sorted_dates()
        repo_result = RepositoryDeploymentResult(repository=target.key)
        self._log("info", "Starting deployment", repository=target.key, dates=len(dates))

        try:
            self._transition(DeploymentState.RESOLVING)
            descriptor, repo_result.created = await self.resolve_repository(target)

            self._transition(DeploymentState.BRANCHING)
            branch = descriptor.default_branch or self.config.default_branch
            repo_result.branch = branch
            chain, repo_result.bootstrapped = await self.resolve_branch_head(target, branch)
            # Commit author, cached for the rest of the run
            await self.builder.get_identity()
        except AuthenticationError:
            raise
        except SETUP_ERRORS as e:
            message = f"{describe_error(e, target.key)} ({e})"
            self._log("error", "Repository setup failed", repository=target.key, error=str(e))
            repo_result.error = message
            repo_result.failed = [DateFailure(date=d, error=message) for d in dates]
            return repo_result

        self._transition(DeploymentState.COMMITTING)
        plans = [self.builder.plan_date(d, workload.contributions[d]) for d in dates]
        batch_size = self.config.batch_size
        batches = [plans[i : i + batch_size] for i in range(0, len(plans), batch_size)]

        for number, batch in enumerate(batches, start=1):
            cancelled = cancel_token is not None and cancel_token.cancelled
            if number > 1 and not cancelled:
                await self._sleep(self.config.inter_batch_delay_ms / 1000)

            self._update_status(
                f"Processing batch {number}/{len(batches)}...",
                percent_start + percent_span * (number - 1) / len(batches),
            )
            try:
                outcomes = await self.builder.build(target, batch, chain, cancel_token)
            except RepositoryAbortedError as e:
                for outcome in e.outcomes:
                    repo_result.absorb(outcome)
                message = f"{describe_error(e.cause, target.key)} ({e.cause})"
                self._log(
                    "error",
                    "Repository deployment aborted",
                    repository=target.key,
                    error=str(e.cause),
                )
                repo_result.error = message
                repo_result.failed.extend(
                    DateFailure(date=plan.date, error=f"Not attempted: {e.cause}")
                    for later in batches[number:]
                    for plan in later
                )
                break
            for outcome in outcomes:
                repo_result.absorb(outcome)

            if self.config.ref_update_policy == "per_batch":
                await self._sync_ref(target, chain, repo_result)

        self._transition(DeploymentState.FINALIZING)
        await self._sync_ref(target, chain, repo_result)
        repo_result.head_sha = chain.synced_sha

        self._log(
            "success" if repo_result.fully_successful else "warning",
            "Completed deployment",
            repository=target.key,
            successful=len(repo_result.successful),
            failed=len(repo_result.failed),
            head=repo_result.head_sha,
        )
        return repo_result

    async def resolve_repository(self, target: TargetRepository) -> tuple[RepoDescriptor, bool]:
        """
        Look up the target repository, creating it when allowed.

        Returns:
            (descriptor, created)

        Raises:
            PermissionDeniedError: No push access, or the namespace belongs to someone else
            NotFoundError: Missing and creation disabled
        """
        try:
            repo = await self.retry_policy.run(
                self.client.get_repository, target.owner, target.name, operation="get repository"
            )
        except NotFoundError:
            if not self.config.create_if_missing:
                raise NotFoundError(f"Repository {target.key} not found") from None

            identity = await self.builder.get_identity()
            if identity.login.lower() != target.owner.lower():
                raise PermissionDeniedError(
                    f"Repository {target.key} not found and cannot be created for a different user"
                ) from None

            description = self.config.description_template.replace(
                "{date}", date.today().isoformat()
            )
            # Not retried: a repeated create would fail on the existing name
            repo = await self.client.create_repository(
                target.name, description=description, private=self.config.private
            )
            self._log("success", "Created repository", repository=repo.full_name, url=repo.html_url)
            await self._sleep(self.config.post_create_delay_seconds)
            return repo, True

        if not repo.can_push:
            raise PermissionDeniedError(f"Insufficient permissions to push to {target.key}")

        self._log("info", "Using existing repository", repository=repo.full_name)
        return repo, False

    async def resolve_branch_head(
        self, target: TargetRepository, branch: str
    ) -> tuple[CommitChainState, bool]:
        """
        Read the branch head, bootstrapping the repository on a conflict.

        A missing ref (404) means an empty repository and a chain without a
        head. A conflict (409) triggers one bootstrap commit through the
        contents endpoint followed by a second head read.

        Returns:
            (chain state, bootstrapped)

        Raises:
            ConflictError: Bootstrap failed; message keeps both errors
        """
        chain = CommitChainState(branch=branch)
        bootstrapped = False

        try:
            head = await self.retry_policy.run(
                self.client.get_branch_head, target.owner, target.name, branch,
                operation="read branch head",
            )
        except NotFoundError:
            self._log("info", "Repository is empty, first commit starts a new tree", repository=target.key)
            return chain, False
        except ConflictError as conflict:
            self._log("warning", "Branch conflict, creating bootstrap commit", repository=target.key)
            try:
                await self.client.put_file_contents(
                    target.owner,
                    target.name,
                    self.config.bootstrap_file,
                    build_bootstrap_content(target.key),
                    "Initial commit",
                )
                head = await self.retry_policy.run(
                    self.client.get_branch_head, target.owner, target.name, branch,
                    operation="read branch head",
                )
            except AuthenticationError:
                raise
            except SETUP_ERRORS as e:
                raise ConflictError(
                    f"Branch conflict on {target.key}: {conflict.message}; bootstrap failed: {e}",
                    status=conflict.status,
                ) from e
            bootstrapped = True

        chain.head_sha = head
        chain.synced_sha = head
        chain.ref_exists = True
        logger.info("Branch head resolved", repository=target.key, branch=branch, head=head)
        return chain, bootstrapped

    async def _sync_ref(
        self,
        target: TargetRepository,
        chain: CommitChainState,
        repo_result: RepositoryDeploymentResult,
    ) -> None:
        """Point the branch ref at the chain head, creating the ref if missing."""
        if not chain.has_unsynced_commits:
            return

        head = chain.head_sha
        try:
            if chain.ref_exists:
                await self._update_ref(target, chain.branch, head)
            else:
                try:
                    await self.retry_policy.run(
                        self.client.create_ref, target.owner, target.name, chain.branch, head,
                        operation="create ref",
                    )
                except HostingAPIError as e:
                    # 422: the ref exists already, e.g. an earlier attempt succeeded
                    if e.status != 422:
                        raise
                    await self._update_ref(target, chain.branch, head)
                chain.ref_exists = True
        except AuthenticationError:
            raise
        except SETUP_ERRORS as e:
            self._log(
                "error",
                "Branch ref update failed, commits exist but are unreferenced",
                repository=target.key,
                head=head,
                error=str(e),
            )
            repo_result.ref_update_error = describe_error(e, target.key)
            repo_result.unreferenced_head_sha = head
            return

        chain.synced_sha = head
        repo_result.ref_update_error = None
        repo_result.unreferenced_head_sha = None
        logger.info("Branch ref updated", repository=target.key, branch=chain.branch, head=head)

    async def _update_ref(self, target: TargetRepository, branch: str, sha: str) -> None:
        await self.retry_policy.run(
            self.client.update_ref, target.owner, target.name, branch, sha,
            force=False, operation="update ref",
        )

    # ------------------------------------------------------------------
    # Queue drain
    # ------------------------------------------------------------------

    def _drain(
        self, workloads: dict[str, RepositoryWorkload], result: DeploymentResult
    ) -> list[str]:
        removed: list[str] = []
        for key, workload in workloads.items():
            repo_result = result.repositories.get(key)
            if repo_result is None or not repo_result.fully_successful:
                continue
            for change_id in workload.change_ids:
                if self.store.remove(change_id):
                    removed.append(change_id)
        if removed:
            logger.info("Deployed changes removed from queue", count=len(removed))
        return removed
