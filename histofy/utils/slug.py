"""Repository name sanitising."""

import re

from slugify import slugify

from histofy.constants import FALLBACK_REPOSITORY_NAME, REPOSITORY_NAME_PATTERN

# Hosting-side limit for repository names
MAX_REPOSITORY_NAME_LENGTH = 100


def sanitize_repository_name(text: str, fallback: str = FALLBACK_REPOSITORY_NAME) -> str:
    """Turn free text into a valid repository name.

    Args:
        text: Input text (e.g., a user supplied name)
        fallback: Name used when nothing valid remains

    Returns:
        Name matching ``[A-Za-z0-9._-]+``

    Examples:
        >>> sanitize_repository_name("My Contributions 2024")
        'my-contributions-2024'
        >>> sanitize_repository_name("???")
        'histofy-contributions'
    """
    name = slugify(
        text,
        max_length=MAX_REPOSITORY_NAME_LENGTH,
        word_boundary=True,
        separator="-",
        regex_pattern=r"[^-a-z0-9._]+",
    )
    name = name.strip(".-")
    return name or fallback


_RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


def is_valid_repository_name(name: str) -> bool:
    """Check a repository name against the hosting naming rules."""
    if not name or len(name) > MAX_REPOSITORY_NAME_LENGTH:
        return False
    if name[0] in ".-" or name[-1] in ".-":
        return False
    if not re.match(REPOSITORY_NAME_PATTERN, name):
        return False
    return name.upper() not in _RESERVED_NAMES
