"""Configuration loading utilities."""

from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from pydantic import BaseModel, ValidationError

from histofy.utils.logging import get_logger

if TYPE_CHECKING:
    from histofy.models.config import HistofyConfig

logger = get_logger(__name__)


def load_yaml_config[T: BaseModel](file_path: Path | str, model_class: type[T]) -> T:
    """
    Load and validate YAML configuration file.

    Args:
        file_path: Path to YAML configuration file
        model_class: Pydantic model class to validate against

    Returns:
        Validated configuration instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
        yaml.YAMLError: If YAML is malformed
    """
    path = Path(file_path)

    if not path.exists():
        logger.error("Configuration file not found", path=str(path))
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with path.open("r") as f:
            raw_config = yaml.safe_load(f)

        # An empty file means "all defaults"
        config = model_class.model_validate(raw_config or {})
        logger.info("Configuration loaded", path=str(path), model=model_class.__name__)
        return config

    except yaml.YAMLError as e:
        logger.error("Invalid YAML syntax", path=str(path), error=str(e))
        raise

    except ValidationError as e:
        logger.error("Configuration validation failed", path=str(path), error=str(e))
        raise


def load_histofy_config(file_path: Path | str | None = None) -> "HistofyConfig":
    """
    Load the deployer configuration.

    Without a path, ``config/histofy.yaml`` is used when it exists and the
    built-in defaults otherwise.

    Args:
        file_path: Optional explicit path to a YAML file

    Returns:
        HistofyConfig instance
    """
    from histofy.models.config import HistofyConfig

    if file_path is not None:
        return load_yaml_config(file_path, HistofyConfig)

    default_path = Path("config/histofy.yaml")
    if default_path.exists():
        return load_yaml_config(default_path, HistofyConfig)

    logger.debug("No configuration file, using defaults")
    return HistofyConfig()
