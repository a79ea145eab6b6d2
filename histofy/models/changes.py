"""Pending change models queued by the user before deployment."""

import re
import uuid
from datetime import date as calendar_date
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from histofy.constants import (
    CONTRIBUTION_LEVEL_NAMES,
    DEFAULT_CONTRIBUTION_LEVEL,
    LEVEL_COMMIT_RANGES,
    REPOSITORY_NAME_PATTERN,
)
from histofy.models.repository import TargetRepository


def generate_change_id() -> str:
    """Generate a unique pending change identifier."""
    return f"chg_{uuid.uuid4().hex[:16]}"


def _validate_date(value: str) -> str:
    try:
        return calendar_date.fromisoformat(value).isoformat()
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


class ContributionLevel(BaseModel):
    """Intensity bucket a calendar date is painted with."""

    level: int = Field(ge=0, le=4, description="Intensity 0-4 (0 = none)")
    name: str = Field(description="Human label")
    commits: str = Field(description="Display range, not authoritative")

    @classmethod
    def from_level(cls, level: int) -> "ContributionLevel":
        """Build the canonical contribution level for ``level``."""
        if level not in LEVEL_COMMIT_RANGES:
            raise ValueError(f"Unknown contribution level: {level}")
        low, high = LEVEL_COMMIT_RANGES[level]
        commits = str(low) if low == high else f"{low}-{high}"
        return cls(level=level, name=CONTRIBUTION_LEVEL_NAMES[level], commits=commits)


class BaseChange(BaseModel):
    """Fields shared by every pending change."""

    id: str = Field(default_factory=generate_change_id)
    timestamp: datetime = Field(default_factory=datetime.now)


class DateSelectionChange(BaseChange):
    """Dates painted on the contribution calendar. The only kind deployed."""

    type: Literal["date_selection"] = "date_selection"
    dates: list[str] = Field(default_factory=list, description="Calendar dates (YYYY-MM-DD)")
    contributions: dict[str, ContributionLevel] = Field(default_factory=dict)
    username: str | None = Field(default=None, description="Profile the dates were painted on")
    repository: str | None = Field(default=None, description="Repository page context")
    year: int | None = Field(default=None)

    @field_validator("dates")
    @classmethod
    def _unique_dates(cls, value: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for item in value:
            seen[_validate_date(item)] = None
        return list(seen)

    @field_validator("contributions")
    @classmethod
    def _normalize_contribution_dates(
        cls, value: dict[str, ContributionLevel]
    ) -> dict[str, ContributionLevel]:
        return {_validate_date(key): level for key, level in value.items()}

    @model_validator(mode="after")
    def _include_contribution_dates(self) -> "DateSelectionChange":
        # A level entry implies the date is selected
        for key in self.contributions:
            if key not in self.dates:
                self.dates.append(key)
        return self

    def contribution_for(self, date: str) -> ContributionLevel:
        """Contribution level for ``date`` (Low when not specified)."""
        return self.contributions.get(date) or ContributionLevel.from_level(
            DEFAULT_CONTRIBUTION_LEVEL
        )

    def has_commits(self) -> bool:
        """Whether any selected date maps to a non-zero level."""
        return any(self.contribution_for(d).level > 0 for d in self.dates)


class ModifyTimestampChange(BaseChange):
    """Recorded request to re-date an existing commit (not deployed)."""

    type: Literal["modify_timestamp"] = "modify_timestamp"
    owner: str
    repo: str
    commit_sha: str
    new_timestamp: datetime
    original_timestamp: datetime | None = None


class MoveCommitChange(BaseChange):
    """Recorded request to move an existing commit to another date (not deployed)."""

    type: Literal["move_commit"] = "move_commit"
    owner: str
    repo: str
    commit_sha: str
    target_date: str
    original_date: str | None = None


class DeleteCommitChange(BaseChange):
    """Recorded request to remove a commit (not deployed)."""

    type: Literal["delete_commit"] = "delete_commit"
    owner: str
    repo: str
    commit_sha: str


PendingChange = Annotated[
    DateSelectionChange | ModifyTimestampChange | MoveCommitChange | DeleteCommitChange,
    Field(discriminator="type"),
]


class PendingChangeQueue(BaseModel):
    """On-disk representation of the pending change queue."""

    changes: list[PendingChange] = Field(default_factory=list)


def new_date_selection(
    levels: dict[str, int],
    username: str | None = None,
    repository: str | None = None,
) -> DateSelectionChange:
    """
    Create a date selection change from a date -> level mapping.

    Args:
        levels: Mapping of YYYY-MM-DD dates to contribution levels (0-4)
        username: Optional profile context
        repository: Optional repository context, a name or ``owner/name``

    Returns:
        New DateSelectionChange with generated id and timestamp

    Raises:
        ValueError: Invalid date, level, username or ``owner/name`` repository
    """
    if username is not None and not re.match(REPOSITORY_NAME_PATTERN, username):
        raise ValueError(f"Invalid username '{username}'")
    if repository and "/" in repository:
        TargetRepository.parse(repository)

    contributions = {d: ContributionLevel.from_level(level) for d, level in levels.items()}
    years = {calendar_date.fromisoformat(d).year for d in levels}
    return DateSelectionChange(
        dates=sorted(levels),
        contributions=contributions,
        username=username,
        repository=repository,
        year=years.pop() if len(years) == 1 else None,
    )
