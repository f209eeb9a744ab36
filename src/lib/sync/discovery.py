"""
discovery.py
- Inspects running containers for homarr.* labels and turns opted-in ones into AppDescriptors.
- One misconfigured container is reported as a DiscoveryFailure and never blocks the rest.
"""

from loguru import logger

from lib.common.docker_helpers import container_labels, list_running_containers
from lib.sync.label_utils import DiscoveryFailure, LabelParseError, is_enabled, parse_homarr_labels


def discover_apps(client):
    """
    Discover apps from Docker containers with homarr.enable set.

    Args:
        client: Docker SDK client

    Returns:
        tuple[list[AppDescriptor], list[DiscoveryFailure]]: Parsed apps and per-container failures.

    Raises:
        ConnectionFailure: If the engine cannot be queried.
    """
    apps, failures = [], []
    seen = {}

    for container in list_running_containers(client):
        labels = container_labels(container)
        if not is_enabled(labels):
            continue

        name = container.name or (container.id or "")[:12]
        try:
            app = parse_homarr_labels(container.id, container.name, labels)
        except LabelParseError as e:
            logger.warning(f"[discovery] Skipping container {name}: {e}")
            failures.append(DiscoveryFailure(name, str(e)))
            continue

        if app.app_id in seen:
            reason = f"app id {app.app_id!r} already used by container {seen[app.app_id]}"
            logger.warning(f"[discovery] Skipping container {name}: {reason}")
            failures.append(DiscoveryFailure(name, reason))
            continue

        seen[app.app_id] = name
        logger.debug(f"[discovery] Discovered app {app.app_id} ({app.name}) from {name}")
        apps.append(app)

    logger.info(f"[discovery] Discovered {len(apps)} app(s), {len(failures)} invalid container(s)")
    return apps, failures
