"""Configuration models for the deployer."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from histofy.constants import (
    BOOTSTRAP_FILE_PATH,
    CONTRIBUTION_FILE_PATH,
    DEFAULT_BATCH_SIZE,
    DEFAULT_BRANCH,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_DESCRIPTION_TEMPLATE,
    DEFAULT_INTER_BATCH_DELAY_MS,
    DEFAULT_RATE_LIMIT_MAX_WAIT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    FALLBACK_REPOSITORY_NAME,
    GITHUB_API_URL,
    GITHUB_API_VERSION,
    GITHUB_WEB_HOST,
    HTTP_TIMEOUT_SECONDS,
    MAX_CONCURRENT_BLOBS,
    PARALLEL_BLOB_THRESHOLD,
    POST_CREATE_DELAY_SECONDS,
    USER_AGENT,
)
from histofy.models.repository import TargetRepository


class GitHubConfig(BaseModel):
    """Hosting API connection settings."""

    api_url: str = Field(default=GITHUB_API_URL)
    web_host: str = Field(default=GITHUB_WEB_HOST, description="Host used for noreply emails")
    api_version: str = Field(default=GITHUB_API_VERSION)
    token_env: str = Field(default="GITHUB_TOKEN", description="Environment variable holding the token")
    user_agent: str = Field(default=USER_AGENT)
    timeout_seconds: int = Field(default=HTTP_TIMEOUT_SECONDS, ge=1)

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class DeployConfig(BaseModel):
    """Deployment behaviour and tunables."""

    target_repository: str | None = Field(
        default=None, description="Override target as 'owner/name'"
    )
    create_if_missing: bool = Field(default=True)
    private: bool = Field(default=False, description="Visibility of created repositories")
    description_template: str = Field(default=DEFAULT_DESCRIPTION_TEMPLATE)
    default_branch: str = Field(default=DEFAULT_BRANCH)
    fallback_repository_name: str = Field(default=FALLBACK_REPOSITORY_NAME)
    contribution_file: str = Field(default=CONTRIBUTION_FILE_PATH)
    bootstrap_file: str = Field(default=BOOTSTRAP_FILE_PATH)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, le=100)
    inter_batch_delay_ms: int = Field(default=DEFAULT_INTER_BATCH_DELAY_MS, ge=0)
    post_create_delay_seconds: float = Field(default=POST_CREATE_DELAY_SECONDS, ge=0.0)
    retry_attempts: int = Field(default=DEFAULT_RETRY_ATTEMPTS, ge=1, le=10)
    retry_base_delay_seconds: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0.0)
    retry_max_delay_seconds: float = Field(default=DEFAULT_RETRY_MAX_DELAY, ge=0.0)
    rate_limit_max_wait_seconds: float = Field(default=DEFAULT_RATE_LIMIT_MAX_WAIT, ge=0.0)
    cache_max_entries: int = Field(default=DEFAULT_CACHE_MAX_ENTRIES, ge=1)
    parallel_blob_threshold: int = Field(default=PARALLEL_BLOB_THRESHOLD, ge=1)
    max_concurrent_blobs: int = Field(default=MAX_CONCURRENT_BLOBS, ge=1)
    ref_update_policy: Literal["per_batch", "end_of_run"] = Field(
        default="per_batch",
        description="Update the branch ref after every batch or once at the end",
    )

    @field_validator("target_repository")
    @classmethod
    def _valid_target(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return TargetRepository.parse(value).key


class StoreConfig(BaseModel):
    """Pending change store settings."""

    path: str = Field(default="data/pending_changes.json")


class LoggingConfig(BaseModel):
    """Logging configuration for loguru."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    serialize: bool = Field(default=False, description="Serialize file logs to JSON")
    colorize: bool = Field(default=True, description="Colorize console output")
    file_path: str = Field(default="logs/histofy.log")
    rotation: str = Field(default="50 MB", description="Log rotation size/time")
    retention: str = Field(default="30 days", description="Log retention period")
    compression: str = Field(default="zip", description="Compression format for rotated logs")


class HistofyConfig(BaseModel):
    """Complete configuration."""

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
