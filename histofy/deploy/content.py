"""File content and commit message generation for synthesized commits."""

import random
import string
from datetime import UTC, datetime

from histofy.constants import LEVEL_COMMIT_RANGES
from histofy.models.changes import ContributionLevel

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits

COMMIT_MESSAGE_TEMPLATES = (
    "Update contribution pattern for {date}",
    "Add {level_name} activity for {date}",
    "Contribute to project on {date}",
    "Development work on {date}",
    "Code updates for {date}",
    "Feature work on {date}",
    "Project maintenance on {date}",
    "Documentation updates for {date}",
)


def _level_table() -> str:
    lines = []
    for level, (low, high) in LEVEL_COMMIT_RANGES.items():
        if level == 0:
            continue
        span = f"{low}-{high}" if low != high else str(low)
        lines.append(f"| {ContributionLevel.from_level(level).name} | {span} |")
    return "\n".join(lines)


def build_base_content(date: str, contribution: ContributionLevel) -> str:
    """Deterministic file body for one date and level."""
    return (
        "# Contribution History\n"
        "\n"
        "This repository holds a contribution pattern generated by Histofy.\n"
        "\n"
        "| Level | Commits per day |\n"
        "| --- | --- |\n"
        f"{_level_table()}\n"
        "\n"
        f"## {date}\n"
        "\n"
        f"- Contribution level: {contribution.name} ({contribution.commits} commits)\n"
    )


def uniqueness_suffix(
    date: str,
    commit_index: int,
    total_commits: int,
    rng: random.Random,
    now: datetime | None = None,
) -> str:
    """
    Trailer that makes every commit's tree distinct.

    Two commits for the same date must never produce an identical tree, or
    the hosting side collapses them.
    """
    generated_at = (now or datetime.now(UTC)).isoformat()
    token = "".join(rng.choices(_TOKEN_ALPHABET, k=13))
    return (
        f"\n<!-- Commit {commit_index}/{total_commits} for {date} -->\n"
        f"<!-- Generated at: {generated_at} -->\n"
        f"<!-- Unique ID: {token}_{commit_index} -->\n"
    )


def build_commit_content(
    base_content: str,
    date: str,
    commit_index: int,
    total_commits: int,
    rng: random.Random,
    now: datetime | None = None,
) -> str:
    return base_content + uniqueness_suffix(date, commit_index, total_commits, rng, now)


def build_commit_message(
    date: str, contribution: ContributionLevel, commit_index: int, total_commits: int
) -> str:
    """Rotating activity message with an ``(i/N)`` suffix when N > 1."""
    template = COMMIT_MESSAGE_TEMPLATES[commit_index % len(COMMIT_MESSAGE_TEMPLATES)]
    message = template.format(date=date, level_name=contribution.name.lower())
    if total_commits > 1:
        return f"{message} ({commit_index}/{total_commits})"
    return message


def build_bootstrap_content(repository: str) -> str:
    """README written when an empty repository rejects ref reads."""
    return (
        f"# {repository}\n"
        "\n"
        "Contribution pattern generated by Histofy.\n"
    )
