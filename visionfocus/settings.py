"""
Configuration loading.

Settings live in a YAML document with one section per concern
(model, camera, latency, processing, announcement).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

from visionfocus.core.errors import ConfigurationError


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(
            f"Configuration {path} must be a mapping, got {type(document).__name__}"
        )

    logger.info(f"Loaded configuration from {path}")
    return document


def load_config(
    config_path: Optional[str | Path] = None,
    default_path: Path = DEFAULT_CONFIG_PATH,
) -> Dict[str, Any]:
    """
    Load configuration from file.

    Args:
        config_path: Explicit configuration file; ignored if it does not exist
        default_path: Fallback location

    Returns:
        The configuration mapping, or {} when no file exists

    Raises:
        ConfigurationError: The document is unreadable or not a mapping
    """
    if config_path and Path(config_path).exists():
        return _read_yaml(Path(config_path))

    if config_path:
        logger.warning(f"Configuration {config_path} not found, trying defaults")

    if default_path.exists():
        return _read_yaml(default_path)

    return {}
