"""
config_loader.py
- Loads and previews YAML files used by the adapter (config.yml, branding.yml).
- Raises ConfigError instead of returning partial data so callers fail fast.
"""

import os
import yaml
from loguru import logger

from core.errors import ConfigError


def load_yaml(path, name=None):
    """
    Load a YAML file and return the parsed mapping.

    Args:
        path (str): File to read.
        name (str): Label used in error messages (defaults to the path).

    Returns:
        dict: Parsed document, {} for an empty file.

    Raises:
        ConfigError: If the file is missing, unreadable, not YAML, or not a mapping.
    """
    label = name or path
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"{label} not found at {path}")
    except OSError as e:
        raise ConfigError(f"Cannot read {label} at {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"{label} at {path} is not valid YAML: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{label} at {path} must contain a mapping, got {type(data).__name__}")
    return data


def preview_yaml(path, name=None):
    """
    Log a human-readable preview of a YAML file at DEBUG level.
    Only used for files that carry no secrets.
    """
    if not os.path.exists(path):
        logger.debug(f"[config] File not found: {path}")
        return

    try:
        with open(path, "r") as f:
            contents = f.read()
        logger.debug(f"\n📄 Loaded {name or path}:\n" + "\n".join(f"│ {line}" for line in contents.strip().splitlines()))
    except OSError as e:
        logger.warning(f"[config] Could not preview {path}: {e}")
