#!/usr/bin/env python3
"""
sync.py
- One sync cycle: discover opted-in containers and make sure each has a dashboard tile.
- Runs first-boot setup first when it has not completed yet.
- Additive only: tiles of containers that disappear are left alone.
"""

from dataclasses import dataclass

from loguru import logger

from core.branding import load_branding, require
from core.docker_client import get_client
from core.errors import AdapterError, SetupError
from core.state import load_state, save_state
from lib.homarr.homarr_client import HomarrClient
from lib.sync import app_manager
from lib.sync.discovery import discover_apps
from runner.setup import run_setup


@dataclass
class SyncReport:
    created: int = 0
    existing: int = 0
    excluded: int = 0
    failed: int = 0
    invalid: int = 0
    evicted: int = 0

    @property
    def partial(self):
        return self.failed > 0 or self.invalid > 0

    def record(self, outcome):
        setattr(self, outcome, getattr(self, outcome) + 1)


def resolve_board_id(client, state, config):
    if state.board_id:
        return state.board_id

    name = require(load_branding(config.branding_file), "board.name")
    board = client.get_board_by_name(name)
    if not board:
        raise SetupError(f"Board '{name}' does not exist on the dashboard; run setup first")
    state.board_id = board["id"]
    return state.board_id


def relocate_board(client, state, config, missing_board_id):
    """
    Forget a board id the dashboard no longer knows and look the board up by name again.

    Raises:
        SetupError: If no board with the branding name exists any more. State gathered so far is saved first.
    """
    logger.warning(f"[sync] Board {missing_board_id} was deleted from the dashboard, looking it up by name")
    state.board_id = None
    try:
        board_id = resolve_board_id(client, state, config)
        if board_id == missing_board_id:
            raise SetupError(f"Board {missing_board_id} is listed by name but cannot be loaded")
    except AdapterError:
        if not config.dry_run:
            save_state(state, config.state_file)
        raise
    logger.info(f"[sync] Using board {board_id}")
    return board_id


def run_sync(config, client=None, docker_client=None):
    """
    Run a single sync cycle.

    Returns:
        SyncReport: Per-outcome counts; `partial` is set when any app failed.

    Raises:
        AdapterError: When setup fails, Docker is unreachable, or no board can be resolved.
    """
    state = load_state(config.state_file)

    if not state.first_boot_completed:
        logger.info("[sync] First boot not completed, running setup first")
        setup = run_setup(config, client=client)
        if not setup.completed:
            raise SetupError(f"First-boot setup failed at step '{setup.step}': {setup.error}")
        state = load_state(config.state_file)

    client = client or HomarrClient.from_config(config)
    client.credential = state.permanent_credential

    logger.info("[sync] Scanning Docker containers")
    apps, failures = discover_apps(docker_client or get_client(config.docker_socket))
    report = SyncReport(invalid=len(failures))

    board_id = resolve_board_id(client, state, config)
    report.evicted = app_manager.evict_deleted_tiles(client, state, dry_run=config.dry_run)

    logger.info("[sync] Updating Homarr dashboard")
    for app in apps:
        try:
            outcome = app_manager.sync_app(client, state, app, board_id, dry_run=config.dry_run)
        except app_manager.BoardMissing as e:
            board_id = relocate_board(client, state, config, e.board_id)
            outcome = app_manager.attach_tile(client, state, app, e.tile_id, board_id)
        report.record(outcome)

    if config.dry_run:
        logger.info("[sync] (Dry Run) State not saved")
    else:
        state.update_sync_time()
        save_state(state, config.state_file)

    logger.info(
        f"[sync] Sync complete: {report.created} created, {report.existing} existing, "
        f"{report.excluded} excluded, {report.failed} failed, {report.invalid} invalid"
    )
    return report
