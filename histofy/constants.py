"""Application-wide constants.

Contains the contribution calibration table and the defaults used across the
deployer to avoid magic numbers and keep the hosting-side assumptions in one
place.
"""

# Contribution levels: level -> (label, display range)
CONTRIBUTION_LEVEL_NAMES = {
    0: "None",
    1: "Low",
    2: "Medium",
    3: "High",
    4: "Very High",
}

# Level -> inclusive (min, max) number of real commits to synthesize.
# Counts 4-9 and 15-19 render at the lower intensity on the hosting
# calendar, so those gaps must never be produced.
LEVEL_COMMIT_RANGES = {
    0: (0, 0),
    1: (1, 3),
    2: (10, 14),
    3: (20, 24),
    4: (25, 32),
}
DEFAULT_CONTRIBUTION_LEVEL = 1  # Used for dates without an explicit level
MAX_CONTRIBUTION_LEVEL = 4

# Commit synthesis
PINNED_COMMIT_TIME = "12:00:00"  # UTC time-of-day for every synthesized commit
CONTRIBUTION_FILE_PATH = "contributions.md"
BOOTSTRAP_FILE_PATH = "README.md"
FILE_MODE_BLOB = "100644"

# Repository defaults
FALLBACK_REPOSITORY_NAME = "histofy-contributions"
DEFAULT_BRANCH = "main"
DEFAULT_DESCRIPTION_TEMPLATE = "Custom GitHub contribution pattern created with Histofy on {date}"
REPOSITORY_NAME_PATTERN = r"^[A-Za-z0-9._-]+$"
POST_CREATE_DELAY_SECONDS = 3.0  # Hosting side needs a moment before refs are usable

# Hosting API
GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_HOST = "github.com"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "histofy/1.0"
HTTP_TIMEOUT_SECONDS = 30

# Batching and retries
DEFAULT_BATCH_SIZE = 10  # Dates per batch
DEFAULT_INTER_BATCH_DELAY_MS = 100  # Courtesy pause against secondary rate limits
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_DELAY = 1.0  # Seconds, doubled on every attempt
DEFAULT_RETRY_MAX_DELAY = 30.0
DEFAULT_RATE_LIMIT_MAX_WAIT = 300.0  # Longest pause while waiting for a quota reset

# Caching
DEFAULT_CACHE_MAX_ENTRIES = 100
PARALLEL_BLOB_THRESHOLD = 10  # Commits per date before blobs are pre-created concurrently
MAX_CONCURRENT_BLOBS = 4

# Progress reporting
MAX_STATUS_LOG_ENTRIES = 500
MAX_ERROR_DISPLAY = 5  # Maximum number of errors to print in the CLI summary
