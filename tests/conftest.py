"""Shared pytest fixtures for adapter tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from loguru import logger

from core.config import AdapterConfig
from tests.mocks import BOOTSTRAP_KEY, PERMANENT_KEY, FakeHomarrClient

BOARD_NAME = "HaLOS"


def make_branding(**overrides) -> dict:
    branding = {
        "identity": {"product_name": "HaLOS"},
        "theme": {"default_color_scheme": "dark"},
        "board": {"name": BOARD_NAME, "column_count": 12, "is_public": True},
        "credentials": {
            "bootstrap_api_key": BOOTSTRAP_KEY,
            "admin_username": "admin",
            "admin_password": "correct-horse",
        },
    }
    branding.update(overrides)
    return branding


def write_branding(path: Path, branding: dict) -> None:
    path.write_text(yaml.safe_dump(branding))


def write_state(path: Path, document: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document))


def read_state(path: Path) -> dict:
    return json.loads(path.read_text())


def bootstrapped_state(**overrides) -> dict:
    """A state document for a dashboard whose first boot already completed."""
    document = {
        "version": "1.0",
        "permanent_credential": PERMANENT_KEY,
        "bootstrap_revoked": True,
        "first_boot_completed": True,
        "board_id": "board-1",
        "federated_login_digest": None,
        "discovered_apps": {},
        "removed_apps": [],
        "last_sync_at": None,
    }
    document.update(overrides)
    return document


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "state.json"


@pytest.fixture
def branding_file(tmp_path: Path) -> Path:
    path = tmp_path / "branding.yml"
    write_branding(path, make_branding())
    return path


@pytest.fixture
def config(state_file: Path, branding_file: Path) -> AdapterConfig:
    return AdapterConfig(
        homarr_url="http://homarr.test",
        state_file=str(state_file),
        branding_file=str(branding_file),
        docker_socket="unix:///nonexistent/docker.sock",
        request_timeout=1,
        retry_attempts=1,
        retry_backoff=0.0,
    )


@pytest.fixture
def homarr() -> FakeHomarrClient:
    return FakeHomarrClient()


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
