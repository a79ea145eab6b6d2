"""Utility functions and helpers."""

from histofy.utils.cache import BoundedCache
from histofy.utils.config_loader import load_histofy_config, load_yaml_config
from histofy.utils.logging import get_logger, setup_logging
from histofy.utils.messages import describe_error
from histofy.utils.retry import RetryPolicy, is_transient_error
from histofy.utils.slug import is_valid_repository_name, sanitize_repository_name

__all__ = [
    "BoundedCache",
    "setup_logging",
    "get_logger",
    "load_yaml_config",
    "load_histofy_config",
    "describe_error",
    "RetryPolicy",
    "is_transient_error",
    "sanitize_repository_name",
    "is_valid_repository_name",
]
