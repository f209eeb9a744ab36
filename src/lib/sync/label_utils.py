"""
label_utils.py
- Encapsulates logic for:
    - Deciding whether a container opted in to the dashboard (homarr.enable)
    - Deriving a stable app id for a container
    - Parsing the homarr.* label set into an AppDescriptor

Used by discovery; every parse problem raises LabelParseError for that one container only.
"""

import re
from dataclasses import dataclass

from core.constants import COCKPIT_APP_ID, COMPOSE_SERVICE_LABEL, ENABLE_LABEL, LABEL_PREFIX, TRUTHY_VALUES

_SLUG_INVALID = re.compile(r"[^a-z0-9._-]+")


class LabelParseError(ValueError):
    pass


@dataclass(frozen=True)
class AppDescriptor:
    app_id: str
    name: str
    url: str
    container_id: str = ""
    container_name: str = ""
    description: str = None
    icon_url: str = None
    category: str = None
    ping_url: str = None
    width: int = 1
    height: int = 1


@dataclass(frozen=True)
class DiscoveryFailure:
    container_name: str
    reason: str


def is_enabled(labels):
    value = labels.get(ENABLE_LABEL)
    return value is not None and value.strip().lower() in TRUTHY_VALUES


def slugify(value):
    return _SLUG_INVALID.sub("-", value.strip().lower()).strip("-")


def derive_app_id(container_id, container_name, labels):
    """
    Stable identifier for a container's tile.

    Preference: homarr.id label, compose service name, container name, short container id.
    """
    for candidate in (
        labels.get(f"{LABEL_PREFIX}id"),
        labels.get(COMPOSE_SERVICE_LABEL),
        container_name,
        (container_id or "")[:12],
    ):
        if candidate and slugify(candidate):
            app_id = slugify(candidate)
            if app_id == COCKPIT_APP_ID:
                raise LabelParseError(f"app id {app_id!r} is reserved for the Cockpit tile; set a different homarr.id")
            return app_id
    raise LabelParseError("cannot derive an app id (no homarr.id, compose service, name, or id)")


def _optional(labels, key):
    value = labels.get(f"{LABEL_PREFIX}{key}")
    if value is None:
        return None
    value = value.strip()
    return value or None


def _required(labels, key):
    value = _optional(labels, key)
    if value is None:
        raise LabelParseError(f"missing required label {LABEL_PREFIX}{key}")
    return value


def _url(labels, key, required):
    value = _required(labels, key) if required else _optional(labels, key)
    if value is not None and not value.lower().startswith(("http://", "https://")):
        raise LabelParseError(f"{LABEL_PREFIX}{key} must be an http(s) URL, got {value!r}")
    return value


def _dimension(labels, key):
    value = _optional(labels, key)
    if value is None:
        return 1
    try:
        number = int(value)
    except ValueError:
        raise LabelParseError(f"{LABEL_PREFIX}{key} must be an integer, got {value!r}")
    if number < 1:
        raise LabelParseError(f"{LABEL_PREFIX}{key} must be positive, got {number}")
    return number


def parse_homarr_labels(container_id, container_name, labels):
    """
    Parse homarr.* labels from a container.

    Args:
        container_id (str): Full container id.
        container_name (str): Engine-reported container name.
        labels (dict): Container label map.

    Returns:
        AppDescriptor: The parsed descriptor.

    Raises:
        LabelParseError: If a required label is missing or a value is malformed.
    """
    return AppDescriptor(
        app_id=derive_app_id(container_id, container_name, labels),
        name=_required(labels, "name"),
        url=_url(labels, "url", required=True),
        container_id=container_id or "",
        container_name=container_name or "",
        description=_optional(labels, "description"),
        icon_url=_optional(labels, "icon"),
        category=_optional(labels, "category"),
        ping_url=_url(labels, "ping_url", required=False),
        width=_dimension(labels, "width"),
        height=_dimension(labels, "height"),
    )
