"""Unit tests for configuration models."""

import pytest
from pydantic import ValidationError

from histofy.models.config import (
    DeployConfig,
    GitHubConfig,
    HistofyConfig,
    LoggingConfig,
    StoreConfig,
)


class TestGitHubConfig:
    """Test GitHubConfig model."""

    def test_defaults(self) -> None:
        """Test default API settings."""
        config = GitHubConfig()
        assert config.api_url == "https://api.github.com"
        assert config.token_env == "GITHUB_TOKEN"
        assert config.api_version == "2022-11-28"

    def test_trailing_slash_stripped(self) -> None:
        """Test api_url is normalized."""
        config = GitHubConfig(api_url="https://github.example.com/api/v3/")
        assert config.api_url == "https://github.example.com/api/v3"

    def test_timeout_must_be_positive(self) -> None:
        """Test timeout validation."""
        with pytest.raises(ValidationError):
            GitHubConfig(timeout_seconds=0)


class TestDeployConfig:
    """Test DeployConfig model."""

    def test_defaults(self) -> None:
        """Test default deployment settings."""
        config = DeployConfig()
        assert config.batch_size == 10
        assert config.inter_batch_delay_ms == 100
        assert config.retry_attempts == 3
        assert config.ref_update_policy == "per_batch"
        assert config.create_if_missing is True
        assert config.target_repository is None
        assert config.contribution_file == "contributions.md"

    def test_target_repository_validated(self) -> None:
        """Test the override target must be owner/name."""
        assert DeployConfig(target_repository=" octocat/demo ").target_repository == "octocat/demo"
        with pytest.raises(ValidationError):
            DeployConfig(target_repository="just-a-name")

    def test_blank_target_repository_is_none(self) -> None:
        """Test an empty override means no override."""
        assert DeployConfig(target_repository="  ").target_repository is None

    def test_batch_size_bounds(self) -> None:
        """Test batch size validation."""
        with pytest.raises(ValidationError):
            DeployConfig(batch_size=0)
        with pytest.raises(ValidationError):
            DeployConfig(batch_size=101)

    def test_ref_update_policy_values(self) -> None:
        """Test only known ref policies are accepted."""
        assert DeployConfig(ref_update_policy="end_of_run").ref_update_policy == "end_of_run"
        with pytest.raises(ValidationError):
            DeployConfig(ref_update_policy="never")

    def test_retry_attempts_bounds(self) -> None:
        """Test at least one attempt is required."""
        with pytest.raises(ValidationError):
            DeployConfig(retry_attempts=0)


class TestLoggingConfig:
    """Test LoggingConfig model."""

    def test_defaults(self) -> None:
        """Test default logging settings."""
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.rotation == "50 MB"
        assert config.serialize is False

    def test_invalid_level(self) -> None:
        """Test unknown levels are rejected."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")


class TestHistofyConfig:
    """Test HistofyConfig model."""

    def test_nested_sections(self) -> None:
        """Test sections are built from plain mappings."""
        config = HistofyConfig.model_validate(
            {
                "deploy": {"batch_size": 5, "private": True},
                "store": {"path": "queue.json"},
            }
        )
        assert config.deploy.batch_size == 5
        assert config.deploy.private is True
        assert config.store == StoreConfig(path="queue.json")
        assert config.github == GitHubConfig()
