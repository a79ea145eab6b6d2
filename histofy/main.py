#!/usr/bin/env python3
"""Command line entry point for the Histofy deployer.

Commands:
- add: queue a date selection (dates painted at a contribution level)
- pending: list queued changes
- clear: empty the queue
- deploy: turn queued date selections into dated commits

Usage:
    histofy add --date 2024-02-01 --date 2024-03-01 --level 2
    histofy deploy --target octocat/histofy-contributions
    python -m histofy.main deploy --config config/histofy.yaml
"""

import asyncio
import os
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv

from histofy.clients.github import GitHubClient
from histofy.constants import MAX_ERROR_DISPLAY
from histofy.deploy.cancellation import CancellationToken
from histofy.deploy.orchestrator import DeploymentOrchestrator
from histofy.errors import AuthenticationError, ConcurrentDeploymentError
from histofy.models.changes import DateSelectionChange, new_date_selection
from histofy.models.config import HistofyConfig
from histofy.models.deployment import DeploymentResult, DeploymentStatus
from histofy.store.pending import PendingChangeStore
from histofy.utils.config_loader import load_histofy_config
from histofy.utils.logging import get_logger, setup_logging
from histofy.utils.messages import describe_error

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

app = typer.Typer(help="Paint a contribution calendar and deploy it as dated commits.")

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to configuration file"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging"),
]


def print_header(title: str) -> None:
    """Print a formatted header."""
    print("\n" + "=" * 80)
    print(f"  {title}")
    print("=" * 80 + "\n")


def print_stats(label: str, value: Any) -> None:
    """Print a formatted stat line."""
    print(f"  • {label}: {value}")


def print_progress(status: DeploymentStatus) -> None:
    if status.step:
        print(f"  [{status.percent:5.1f}%] {status.step}")


def print_summary(result: DeploymentResult, elapsed_time: float) -> None:
    """Print final deployment summary."""
    print_header("📈 Deployment Summary")

    for key, repo in result.repositories.items():
        print(f"{key}:")
        print_stats("Status", "✅ Success" if repo.fully_successful else "❌ Incomplete")
        if repo.created:
            print_stats("Repository created", "✅")
        if repo.bootstrapped:
            print_stats("Bootstrap commit", "✅")
        print_stats("Branch", repo.branch or "-")
        print_stats("Commits created", len(repo.successful))
        print_stats("Failed dates", len(repo.failed))
        if repo.skipped:
            print_stats("Skipped dates (level 0)", len(repo.skipped))
        if repo.cancelled:
            print_stats("Cancelled dates", len(repo.cancelled))
        if repo.head_sha:
            print_stats("Branch head", repo.head_sha)
        if repo.error:
            print_stats("⚠️  Repository error", repo.error)
        if repo.ref_update_error:
            print_stats("⚠️  Ref update failed", repo.ref_update_error)
            print_stats("Unreferenced head", repo.unreferenced_head_sha)
        print()

    if result.failed:
        print("⚠️  Failed dates:")
        for failure in result.failed[:MAX_ERROR_DISPLAY]:
            print(f"  • {failure.date}: {failure.error}")
        if len(result.failed) > MAX_ERROR_DISPLAY:
            print(f"  • ... and {len(result.failed) - MAX_ERROR_DISPLAY} more")

    print_stats("Total commits", result.total_commits)
    print_stats("Changes removed from queue", len(result.removed_changes))
    if result.unresolved_changes:
        print_stats("Changes without a target", len(result.unresolved_changes))

    print("\n" + "=" * 80)
    print(f"⏱️  Total execution time: {elapsed_time:.2f}s")
    print("=" * 80)


def _load(config_file: Path | None, verbose: bool) -> HistofyConfig:
    config = load_histofy_config(config_file)
    setup_logging(config.logging, verbose=verbose)
    return config


def cancel_on_interrupt(token: CancellationToken) -> bool:
    """
    Turn the first Ctrl+C of a running deployment into a cooperative cancel.

    The current date finishes and the branch ref is moved to the last
    created commit. A second Ctrl+C interrupts immediately.

    Returns:
        Whether the handler was installed (not on every platform)
    """
    loop = asyncio.get_running_loop()

    def handle_interrupt() -> None:
        print("\n\n⚠️  Cancelling after the current date, press Ctrl+C again to abort")
        token.cancel("Interrupted by user")
        loop.remove_signal_handler(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, handle_interrupt)
    except (NotImplementedError, RuntimeError) as e:
        logger.debug("Ctrl+C aborts immediately, no signal handler", error=str(e))
        return False
    return True


async def run_deployment(config: HistofyConfig, target: str | None = None) -> int:
    """
    Run one deployment over the pending queue.

    Args:
        config: Complete configuration
        target: Optional ``owner/name`` override

    Returns:
        Exit code (0 = every repository fully deployed, 1 otherwise)
    """
    start_time = datetime.now()
    store = PendingChangeStore(config.store.path)
    token = os.getenv(config.github.token_env)

    cancel_token = CancellationToken()
    interruptible = cancel_on_interrupt(cancel_token)

    async with GitHubClient(token, config.github) as client:
        orchestrator = DeploymentOrchestrator(
            client, store, config.deploy, observers=[print_progress]
        )
        try:
            result = await orchestrator.deploy(target_repository=target, cancel_token=cancel_token)
        except (AuthenticationError, ConcurrentDeploymentError) as e:
            logger.error("Deployment aborted", error=str(e))
            print(f"\n❌ {describe_error(e)}")
            if isinstance(e, AuthenticationError):
                print(f"   Set {config.github.token_env} to a token with the 'repo' and 'user' scopes.")
            return 1
        finally:
            if interruptible:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    elapsed = (datetime.now() - start_time).total_seconds()
    if not result.repositories and not result.unresolved_changes:
        print("\nNothing to deploy: the pending queue has no date selections.")
        return 0

    print_summary(result, elapsed)
    if result.success:
        print("\n✅ Deployment completed successfully!")
        print("   Contributions may take up to 24 hours to appear on the profile.")
        return 0

    print("\n⚠️  Deployment completed with failures; failed changes stay queued.")
    return 1


@app.command()
def deploy(
    config_file: ConfigOption = None,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="Target repository as owner/name"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Deploy queued date selections as commits."""
    try:
        config = _load(config_file, verbose)
        print_header("🚀 Histofy Deployment")
        print(f"  Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print(f"  Queue: {config.store.path}")
        print(f"  Target: {target or config.deploy.target_repository or 'from queued changes'}")
        print(f"  Ref updates: {config.deploy.ref_update_policy}")
        print()

        exit_code = asyncio.run(run_deployment(config, target))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\n\n⚠️  Deployment interrupted by user")
        logger.warning("Deployment interrupted by user")
        sys.exit(130)  # Standard exit code for SIGINT

    except Exception as e:
        logger.exception("Failed to run deployment")
        print(f"\n❌ Failed to run deployment: {describe_error(e)}")
        sys.exit(1)


@app.command()
def add(
    dates: Annotated[
        list[str],
        typer.Option("--date", "-d", help="Date to paint (YYYY-MM-DD), repeatable"),
    ],
    level: Annotated[
        int,
        typer.Option("--level", "-l", min=0, max=4, help="Contribution level 0-4"),
    ] = 1,
    username: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Profile owner the dates belong to"),
    ] = None,
    repository: Annotated[
        str | None,
        typer.Option("--repo", "-r", help="Repository name or owner/name"),
    ] = None,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Queue a date selection."""
    config = _load(config_file, verbose)
    try:
        change = new_date_selection(
            dict.fromkeys(dates, level), username=username, repository=repository
        )
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(2)

    change_id = PendingChangeStore(config.store.path).add(change)
    if change_id is None:
        print(f"Cleared {len(change.dates)} date(s) from the queue (level 0).")
    else:
        print(f"✅ Queued {len(change.dates)} date(s) at level {level} as {change_id}")


@app.command()
def pending(config_file: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """List queued changes."""
    config = _load(config_file, verbose)
    changes = PendingChangeStore(config.store.path).list_pending()

    print_header(f"📋 Pending changes ({len(changes)})")
    for change in changes:
        print(f"{change.id} [{change.type}] {change.timestamp:%Y-%m-%d %H:%M}")
        if isinstance(change, DateSelectionChange):
            for day in sorted(change.dates):
                contribution = change.contribution_for(day)
                print_stats(day, f"{contribution.name} (level {contribution.level})")


@app.command()
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Remove every queued change."""
    config = _load(config_file, verbose)
    if not yes and not typer.confirm("Clear all pending changes? This cannot be undone."):
        print("Aborted.")
        return

    count = PendingChangeStore(config.store.path).clear()
    print(f"🗑️  Removed {count} pending change(s)")


if __name__ == "__main__":
    app()
