"""
branding.py
- Loads the branding file (identity, theme, board layout, onboarding credentials).
- Fills in documented defaults; required keys are checked lazily by the step that needs them.
"""

import copy
import hashlib
import json

from core.config_loader import load_yaml
from core.errors import ConfigError

DEFAULT_BRANDING = {
    "identity": {"product_name": "HaLOS"},
    "theme": {"default_color_scheme": "dark"},
    "board": {
        "name": "default",
        "column_count": 10,
        "is_public": True,
        "cockpit": {
            "enabled": False,
            "name": "Cockpit",
            "description": "System administration",
            "icon_url": "",
            "href": "",
            "width": 1,
            "height": 1,
        },
    },
    "credentials": {},
    "settings": {
        "analytics": {
            "enable_general": False,
            "enable_widget_data": False,
            "enable_integration_data": False,
            "enable_user_data": False,
        },
        "crawling": {
            "no_index": True,
            "no_follow": True,
            "no_translate": True,
            "no_sitelinks_search_box": True,
        },
    },
    "federated_login": None,
}


def _merge(defaults, overrides):
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_branding(path):
    """
    Load branding.yml and merge it over DEFAULT_BRANDING.

    Raises:
        ConfigError: If the file is missing or malformed.
    """
    data = load_yaml(path, name="branding file")
    for section in ("identity", "theme", "board", "credentials", "settings"):
        if section in data and not isinstance(data[section], dict):
            raise ConfigError(f"branding file section {section!r} must be a mapping")
    return _merge(DEFAULT_BRANDING, data)


def require(branding, dotted_key):
    """
    Return a required branding value, e.g. require(b, "credentials.admin_password").

    Raises:
        ConfigError: Naming the missing key when absent or empty.
    """
    node = branding
    for part in dotted_key.split("."):
        if not isinstance(node, dict) or node.get(part) in (None, ""):
            raise ConfigError(f"branding file is missing required value {dotted_key!r}")
        node = node[part]
    return node


def bootstrap_credential(branding):
    """The bootstrap API key, or None when the branding file no longer carries one."""
    return branding.get("credentials", {}).get("bootstrap_api_key") or None


def federated_settings(branding):
    settings = branding.get("federated_login")
    if not settings:
        return None
    if not isinstance(settings, dict):
        raise ConfigError("branding file section 'federated_login' must be a mapping")
    return settings


def settings_digest(settings):
    """Stable sha256 of a settings mapping, used to detect unpushed changes."""
    encoded = json.dumps(settings, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
