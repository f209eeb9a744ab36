"""
docker_client.py
- Builds a Docker SDK client for the configured engine socket.
- Connection problems surface as ConnectionFailure so callers treat them like an unreachable dashboard.
"""

import docker
from docker.errors import DockerException

from core.errors import ConnectionFailure


def get_client(base_url, timeout=120):
    """
    Connect to the Docker engine.

    Args:
        base_url (str): Engine socket, e.g. unix:///var/run/docker.sock.
        timeout (int): Per-request timeout in seconds.

    Returns:
        docker.DockerClient: Ready-to-use client.
    """
    try:
        return docker.DockerClient(base_url=base_url, timeout=timeout)
    except DockerException as e:
        raise ConnectionFailure(f"Failed to connect to Docker at {base_url}: {e}")
