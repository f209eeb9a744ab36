"""
config.py
- Defines adapter configuration: defaults, the optional config.yml, and environment overrides.
- Environment variables win over the file, the file wins over the defaults.
"""

import os
from dataclasses import dataclass

from loguru import logger

from core.config_loader import load_yaml, preview_yaml
from core.constants import DEFAULT_REQUEST_TIMEOUT, DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_BACKOFF
from core.errors import ConfigError

# --- Config Paths ---
CONFIG_FILE = os.getenv("CONFIG_FILE", "/etc/homarr-container-adapter/config.yml")

DEFAULTS = {
    "homarr_url": "http://localhost:7575",
    "state_file": "/var/lib/homarr-container-adapter/state.json",
    "branding_file": "/etc/halos-homarr-branding/branding.yml",
    "docker_socket": "unix:///var/run/docker.sock",
    "request_timeout": DEFAULT_REQUEST_TIMEOUT,
    "retry_attempts": DEFAULT_RETRY_ATTEMPTS,
    "retry_backoff": DEFAULT_RETRY_BACKOFF,
    "debug": False,
    "dry_run": False,
}

ENV_OVERRIDES = {
    "homarr_url": "HOMARR_URL",
    "state_file": "STATE_FILE",
    "branding_file": "BRANDING_FILE",
    "docker_socket": "DOCKER_SOCKET",
    "request_timeout": "REQUEST_TIMEOUT",
    "retry_attempts": "RETRY_ATTEMPTS",
    "retry_backoff": "RETRY_BACKOFF",
    "debug": "DEBUG",
    "dry_run": "DRY_RUN",
}


@dataclass
class AdapterConfig:
    homarr_url: str
    state_file: str
    branding_file: str
    docker_socket: str
    request_timeout: float
    retry_attempts: int
    retry_backoff: float
    debug: bool = False
    dry_run: bool = False


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _coerce(key, value):
    try:
        if key in ("debug", "dry_run"):
            return _as_bool(value)
        if key == "retry_attempts":
            attempts = int(value)
            if attempts < 1:
                raise ValueError("must be at least 1")
            return attempts
        if key in ("request_timeout", "retry_backoff"):
            number = float(value)
            if number < 0:
                raise ValueError("must not be negative")
            return number
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key!r}: {value!r} ({e})")
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Invalid value for {key!r}: expected a non-empty string")
    return value.strip()


def load_config(path=None, environ=None):
    """
    Build the adapter configuration.

    Args:
        path (str): config.yml location; a missing file means "use defaults".
        environ (dict): Environment mapping, defaults to os.environ.

    Returns:
        AdapterConfig: Fully resolved configuration.
    """
    path = path or CONFIG_FILE
    environ = os.environ if environ is None else environ

    values = dict(DEFAULTS)
    if os.path.exists(path):
        preview_yaml(path, name="config.yml")
        for key, value in load_yaml(path, name="adapter config").items():
            if key not in DEFAULTS:
                logger.warning(f"[config] Ignoring unknown option {key!r} in {path}")
                continue
            values[key] = value
    else:
        logger.debug(f"[config] No config file at {path}, using defaults.")

    for key, env_name in ENV_OVERRIDES.items():
        if env_name in environ:
            values[key] = environ[env_name]

    resolved = {key: _coerce(key, value) for key, value in values.items()}
    resolved["homarr_url"] = resolved["homarr_url"].rstrip("/")
    return AdapterConfig(**resolved)
