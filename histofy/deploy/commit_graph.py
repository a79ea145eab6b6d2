"""Commit graph synthesis.

Turns chronologically sorted (date, level) plans into a linear chain of
commit objects through the Git Data API: blob, then tree on top of the
parent's tree, then commit. Each created commit becomes the parent of the
next one, so commits for a date are created strictly in order.

Retries reuse frozen inputs (same content, same parent, same dates). Blobs,
trees and commits are content-addressed, so a retry after a lost response
yields the same SHA instead of a second commit.
"""

import asyncio
import hashlib
import random
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime

from histofy.constants import LEVEL_COMMIT_RANGES, PINNED_COMMIT_TIME
from histofy.deploy.cancellation import CancellationToken
from histofy.deploy.content import (
    build_base_content,
    build_commit_content,
    build_commit_message,
)
from histofy.errors import (
    AuthenticationError,
    CommitCreationError,
    PermissionDeniedError,
    RepositoryAbortedError,
)
from histofy.models.changes import ContributionLevel
from histofy.models.config import DeployConfig
from histofy.models.deployment import CommitChainState, CommitRecord, DateOutcome, DatePlan
from histofy.models.repository import GitCommit, GitSignature, Identity, TargetRepository
from histofy.utils.cache import BoundedCache
from histofy.utils.logging import get_logger
from histofy.utils.retry import RetryPolicy

logger = get_logger(__name__)


def commit_count_for_level(level: int, rng: random.Random | None = None) -> int:
    """
    Number of real commits to synthesize for a contribution level.

    Args:
        level: Contribution level 0-4
        rng: Random source (module random when omitted)

    Returns:
        0 for level 0, otherwise a value inside the level's calibrated range

    Raises:
        ValueError: For unknown levels
    """
    if level not in LEVEL_COMMIT_RANGES:
        raise ValueError(f"Unknown contribution level: {level}")
    low, high = LEVEL_COMMIT_RANGES[level]
    if high == 0:
        return 0
    return (rng or random).randint(low, high)


def pinned_commit_date(day: str) -> str:
    """ISO timestamp for ``day`` pinned to noon UTC."""
    return f"{date.fromisoformat(day).isoformat()}T{PINNED_COMMIT_TIME}Z"


class CommitGraphBuilder:
    """Creates commit chains for dates, caching lookups within one run."""

    def __init__(
        self,
        client,
        config: DeployConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize builder.

        Args:
            client: Hosting API client (GitHubClient or a compatible fake)
            config: Deployment tunables
            retry_policy: Policy applied to every commit
            rng: Random source for commit counts and uniqueness tokens
            sleep: Awaitable sleep used for rate limit pauses
            clock: Current time provider for content timestamps
        """
        self.client = client
        self.config = config or DeployConfig()
        self.retry_policy = retry_policy or RetryPolicy.from_config(self.config, sleep=sleep)
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(UTC))

        max_entries = self.config.cache_max_entries
        self.commit_cache: BoundedCache[str, GitCommit] = BoundedCache("commits", max_entries)
        self.blob_cache: BoundedCache[str, str] = BoundedCache("blobs", max_entries)
        self.tree_cache: BoundedCache[str, str] = BoundedCache("trees", max_entries)
        self._identity: Identity | None = None

    def reset(self) -> None:
        """Drop every cached object and the cached identity."""
        self.commit_cache.clear()
        self.blob_cache.clear()
        self.tree_cache.clear()
        self._identity = None

    # ------------------------------------------------------------------
    # Cached lookups
    # ------------------------------------------------------------------

    async def get_identity(self) -> Identity:
        if self._identity is None:
            self._identity = await self.retry_policy.run(
                self.client.get_current_identity, operation="identity"
            )
            logger.info("Commit author resolved", login=self._identity.login, email=self._identity.email)
        return self._identity

    async def get_commit_cached(self, target: TargetRepository, sha: str) -> GitCommit:
        key = f"{target.key}:{sha}"
        commit = self.commit_cache.get(key)
        if commit is None:
            commit = await self.client.get_commit_object(target.owner, target.name, sha)
            self.commit_cache.put(key, commit)
        return commit

    async def create_blob_cached(self, target: TargetRepository, content: str) -> str:
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        key = f"{target.key}:{digest}"
        blob_sha = self.blob_cache.get(key)
        if blob_sha is None:
            blob_sha = await self.client.create_blob(target.owner, target.name, content)
            self.blob_cache.put(key, blob_sha)
        return blob_sha

    async def create_tree_cached(
        self, target: TargetRepository, base_tree: str | None, blob_sha: str
    ) -> str:
        path = self.config.contribution_file
        key = f"{target.key}:{base_tree or '-'}:{path}:{blob_sha}"
        tree_sha = self.tree_cache.get(key)
        if tree_sha is None:
            tree_sha = await self.client.create_tree(
                target.owner, target.name, path, blob_sha, base_tree=base_tree
            )
            self.tree_cache.put(key, tree_sha)
        return tree_sha

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_date(self, day: str, contribution: ContributionLevel) -> DatePlan:
        """Pre-generate commit count, contents and messages for one date."""
        count = commit_count_for_level(contribution.level, self.rng)
        base_content = build_base_content(day, contribution)
        now = self._clock()
        return DatePlan(
            date=day,
            contribution=contribution,
            commit_count=count,
            contents=[
                build_commit_content(base_content, day, i, count, self.rng, now)
                for i in range(1, count + 1)
            ],
            messages=[build_commit_message(day, contribution, i, count) for i in range(1, count + 1)],
        )

    # ------------------------------------------------------------------
    # Commit creation
    # ------------------------------------------------------------------

    async def _create_commit_once(
        self,
        target: TargetRepository,
        plan: DatePlan,
        index: int,
        parent_sha: str | None,
        signature: GitSignature,
    ) -> str:
        base_tree = None
        if parent_sha is not None:
            base_tree = (await self.get_commit_cached(target, parent_sha)).tree_sha

        blob_sha = await self.create_blob_cached(target, plan.contents[index - 1])
        tree_sha = await self.create_tree_cached(target, base_tree, blob_sha)
        parents = [parent_sha] if parent_sha else []
        message = plan.messages[index - 1]

        sha = await self.client.create_commit_object(
            target.owner,
            target.name,
            message,
            tree_sha,
            parents,
            author=signature,
            committer=signature,
        )
        self.commit_cache.put(
            f"{target.key}:{sha}",
            GitCommit(sha=sha, tree_sha=tree_sha, parents=parents, message=message),
        )
        return sha

    async def _prewarm_blobs(self, target: TargetRepository, plan: DatePlan) -> None:
        semaphore = asyncio.Semaphore(self.config.max_concurrent_blobs)

        async def create_with_limit(content: str) -> str:
            async with semaphore:
                return await self.retry_policy.run(
                    self.create_blob_cached, target, content, operation="blob"
                )

        results = await asyncio.gather(
            *[create_with_limit(content) for content in plan.contents],
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, AuthenticationError):
                raise result
        failures = sum(1 for r in results if isinstance(r, BaseException))
        logger.debug("Blobs pre-created", date=plan.date, total=len(results), failed=failures)

    async def create_date_commits(
        self,
        target: TargetRepository,
        plan: DatePlan,
        state: CommitChainState,
    ) -> list[CommitRecord]:
        """
        Create the planned commits for one date, in order.

        ``state.head_sha`` advances after every successful commit and keeps
        the last good SHA when a commit fails.

        Raises:
            AuthenticationError: Credential missing or rejected
            CommitCreationError: A commit failed after retries
        """
        if plan.commit_count == 0:
            return []

        try:
            identity = await self.get_identity()
        except AuthenticationError:
            raise
        except Exception as e:
            raise CommitCreationError(plan.date, 1, plan.commit_count, e) from e
        commit_date = pinned_commit_date(plan.date)
        signature = GitSignature(name=identity.name, email=identity.email, date=commit_date)

        if plan.commit_count >= self.config.parallel_blob_threshold:
            await self._prewarm_blobs(target, plan)

        records: list[CommitRecord] = []
        for index in range(1, plan.commit_count + 1):
            try:
                sha = await self.retry_policy.run(
                    self._create_commit_once,
                    target,
                    plan,
                    index,
                    state.head_sha,
                    signature,
                    operation=f"commit {plan.date} {index}/{plan.commit_count}",
                )
            except AuthenticationError:
                raise
            except Exception as e:
                raise CommitCreationError(plan.date, index, plan.commit_count, e, records) from e

            state.advance(sha)
            records.append(
                CommitRecord(
                    date=plan.date,
                    sha=sha,
                    level=plan.level,
                    commit_index=index,
                    total_commits=plan.commit_count,
                )
            )

        logger.info(
            "Date committed",
            repository=target.key,
            date=plan.date,
            level=plan.level,
            commits=len(records),
            head=state.head_sha,
        )
        return records

    async def respect_rate_limit(self) -> None:
        """Pause until the quota resets when the last response exhausted it."""
        snapshot = self.client.rate_limit
        if not snapshot.exhausted:
            return
        wait = min(snapshot.seconds_until_reset(), self.config.rate_limit_max_wait_seconds)
        logger.warning("Rate limit exhausted, pausing", wait_seconds=round(wait, 1))
        await self._sleep(wait)

    async def build(
        self,
        target: TargetRepository,
        plans: list[DatePlan],
        state: CommitChainState,
        cancel_token: CancellationToken | None = None,
    ) -> list[DateOutcome]:
        """
        Create commits for ``plans`` in order and report one outcome per date.

        A failed date never stops the following dates, unless the failure
        is a permission error: no later commit could succeed either.

        Args:
            target: Repository receiving the commits
            plans: Date plans, already in chronological order
            state: Running chain head, advanced in place
            cancel_token: Checked before every date

        Returns:
            One DateOutcome per plan, in plan order

        Raises:
            AuthenticationError: Credential missing or rejected
            RepositoryAbortedError: Write access denied; carries every outcome of ``plans``
        """
        outcomes: list[DateOutcome] = []

        for position, plan in enumerate(plans):
            if cancel_token is not None and cancel_token.cancelled:
                outcomes.append(
                    DateOutcome(
                        date=plan.date,
                        level=plan.level,
                        planned_commits=plan.commit_count,
                        status="cancelled",
                        error=cancel_token.reason,
                    )
                )
                continue

            if plan.commit_count == 0:
                logger.debug("Skipping level 0 date", date=plan.date)
                outcomes.append(
                    DateOutcome(date=plan.date, level=plan.level, status="skipped")
                )
                continue

            await self.respect_rate_limit()

            try:
                records = await self.create_date_commits(target, plan, state)
            except CommitCreationError as e:
                logger.error(
                    "Date failed",
                    repository=target.key,
                    date=plan.date,
                    commit=f"{e.index}/{e.total}",
                    created=len(e.created),
                    error=str(e.cause),
                )
                outcomes.append(
                    DateOutcome(
                        date=plan.date,
                        level=plan.level,
                        planned_commits=plan.commit_count,
                        status="partial" if e.created else "failed",
                        commits=e.created,
                        error=str(e),
                    )
                )
                if isinstance(e.cause, PermissionDeniedError):
                    outcomes.extend(
                        DateOutcome(
                            date=rest.date,
                            level=rest.level,
                            planned_commits=rest.commit_count,
                            status="failed",
                            error=f"Not attempted: {e.cause}",
                        )
                        for rest in plans[position + 1 :]
                    )
                    raise RepositoryAbortedError(e.cause, outcomes) from e
                continue

            outcomes.append(
                DateOutcome(
                    date=plan.date,
                    level=plan.level,
                    planned_commits=plan.commit_count,
                    status="success",
                    commits=records,
                )
            )

        return outcomes
