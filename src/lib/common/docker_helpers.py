"""
docker_helpers.py
- Low-level helpers around the Docker SDK used by container discovery.
- Listing is retried on transient engine errors and then surfaced as ConnectionFailure.
"""

import requests
from docker.errors import APIError, DockerException
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.constants import DOCKER_LIST_ATTEMPTS
from core.errors import ConnectionFailure


@retry(
    reraise=True,
    stop=stop_after_attempt(DOCKER_LIST_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((APIError, requests.exceptions.ConnectionError, requests.exceptions.Timeout)),
)
def _list_containers(client):
    return client.containers.list()


def list_running_containers(client):
    """
    Return the running containers visible to the engine.

    Args:
        client: Docker SDK client

    Returns:
        list: docker.models.containers.Container objects (running only).

    Raises:
        ConnectionFailure: If the engine stays unreachable after retries.
    """
    try:
        containers = _list_containers(client)
    except (DockerException, requests.exceptions.RequestException) as e:
        raise ConnectionFailure(f"Failed to list containers: {e}")
    logger.debug(f"[docker_helpers] Engine reports {len(containers)} running container(s)")
    return containers


def container_labels(container):
    """Label map of a container, {} when the engine reports none."""
    return container.labels or {}
